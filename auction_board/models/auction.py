from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func  # For default timestamps

from ..database import Base

# The board drives exactly one auction; its row always uses this key.
AUCTION_ROW_ID = 1

DEFAULT_AUCTION_NAME = "Your Awesome Auction Name"
DEFAULT_ASK_ME_TITLE = "Ask Me Spotlight"


class Auction(Base):
    __tablename__ = "auctions"

    id = Column(Integer, primary_key=True, default=AUCTION_ROW_ID)
    name = Column(String(200), nullable=False, default=DEFAULT_AUCTION_NAME)
    end_date_time = Column(String, nullable=True)  # stored verbatim as submitted
    announcements = Column(JSON, nullable=False, default=list)
    ask_me_mode = Column(Boolean, nullable=False, default=False)
    ask_me_title = Column(String(120), nullable=False, default=DEFAULT_ASK_ME_TITLE)
    ask_me_message = Column(Text, nullable=False, default="")
    ask_me_total = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    incentives = relationship(
        "Incentive",
        order_by="Incentive.order_index",
        cascade="all, delete-orphan",
        back_populates="auction",
    )


class Incentive(Base):
    __tablename__ = "incentives"

    incentive_id = Column(String, primary_key=True, index=True)
    auction_id = Column(
        Integer,
        ForeignKey("auctions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order_index = Column(Integer, nullable=False, default=0)
    name = Column(String(200), nullable=False, default="")
    target = Column(Float, nullable=False, default=0.0)
    active = Column(Boolean, nullable=False, default=False)
    display_now = Column(Boolean, nullable=False, default=False)
    display_until_met = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    auction = relationship("Auction", back_populates="incentives")
