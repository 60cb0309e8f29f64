# Import models to make them accessible via auction_board.models
# and ensure they are registered with SQLAlchemy's Base metadata
from .auction import Auction, Incentive, AUCTION_ROW_ID

__all__ = [
    "Auction",
    "Incentive",
    "AUCTION_ROW_ID",
]
