from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from auction_board.database import get_db
from auction_board.models.auction import (
    AUCTION_ROW_ID,
    DEFAULT_ASK_ME_TITLE,
    DEFAULT_AUCTION_NAME,
    Auction,
    Incentive,
)
from auction_board.services.incentive_catalog import (
    Incentive as CatalogIncentive,
    new_incentive_id,
    normalize,
)

logger = logging.getLogger(__name__)

# Request field -> Auction column for the scalar settings.
_SCALAR_FIELDS = {
    "name": "name",
    "endDateTime": "end_date_time",
    "announcements": "announcements",
    "askMeMode": "ask_me_mode",
    "askMeTitle": "ask_me_title",
    "askMeMessage": "ask_me_message",
    "askMeTotal": "ask_me_total",
}

# Incentive state flag -> Incentive column.
_STATE_FIELDS = {
    "displayNow": "display_now",
    "displayUntilMet": "display_until_met",
    "active": "active",
}


def _incentive_to_catalog(row: Incentive) -> CatalogIncentive:
    return CatalogIncentive(
        id=row.incentive_id,
        name=row.name or "",
        target=float(row.target or 0.0),
        active=bool(row.active),
        display_now=bool(row.display_now),
        display_until_met=bool(row.display_until_met),
    )


class AuctionManager:
    """Persistence for the single auction configuration and its incentives."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_auction(self) -> Auction:
        auction = self.db.get(Auction, AUCTION_ROW_ID)
        if auction is None:
            auction = Auction(
                id=AUCTION_ROW_ID,
                name=DEFAULT_AUCTION_NAME,
                end_date_time=None,
                announcements=[],
                ask_me_mode=False,
                ask_me_title=DEFAULT_ASK_ME_TITLE,
                ask_me_message="",
                ask_me_total=0.0,
            )
            self.db.add(auction)
            self.db.commit()
            self.db.refresh(auction)
            logger.info("Created default auction configuration.")
        return auction

    def to_payload(self, auction: Auction) -> Dict[str, Any]:
        return {
            "name": auction.name or DEFAULT_AUCTION_NAME,
            "endDateTime": auction.end_date_time,
            "announcements": list(auction.announcements or []),
            "askMeMode": bool(auction.ask_me_mode),
            "askMeTitle": auction.ask_me_title or DEFAULT_ASK_ME_TITLE,
            "askMeMessage": auction.ask_me_message or "",
            "askMeTotal": float(auction.ask_me_total or 0.0),
            "incentives": [
                _incentive_to_catalog(row).to_payload() for row in auction.incentives
            ],
        }

    def get_payload(self) -> Dict[str, Any]:
        return self.to_payload(self.get_auction())

    def update_auction(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a partial update; fields missing from ``changes`` are left alone."""
        incentives: Optional[List[CatalogIncentive]] = None
        if "incentives" in changes:
            incentives = self._normalize_incentives(changes["incentives"])

        auction = self.get_auction()
        for field_name, column in _SCALAR_FIELDS.items():
            if field_name not in changes:
                continue
            value = changes[field_name]
            if field_name == "announcements":
                value = list(value)
            elif field_name == "askMeTotal":
                value = float(value)
            setattr(auction, column, value)

        if incentives is not None:
            self._replace_incentives(auction, incentives)

        self.db.commit()
        self.db.refresh(auction)
        return self.to_payload(auction)

    def get_announcements(self) -> List[str]:
        return list(self.get_auction().announcements or [])

    def set_announcements(self, announcements: List[str]) -> List[str]:
        auction = self.get_auction()
        auction.announcements = list(announcements)
        self.db.commit()
        self.db.refresh(auction)
        return list(auction.announcements or [])

    def update_incentive_state(
        self, incentive_id: str, updates: Dict[str, bool]
    ) -> Dict[str, Any]:
        self.get_auction()
        row = self.db.get(Incentive, incentive_id)
        if row is None or row.auction_id != AUCTION_ROW_ID:
            raise HTTPException(status_code=404, detail="incentive not found")
        for field_name, column in _STATE_FIELDS.items():
            if field_name in updates:
                setattr(row, column, bool(updates[field_name]))
        self.db.commit()
        self.db.refresh(row)
        return _incentive_to_catalog(row).to_payload()

    def _normalize_incentives(self, raw_items: List[Dict[str, Any]]) -> List[CatalogIncentive]:
        normalized = normalize(raw_items, new_incentive_id)
        for index, incentive in enumerate(normalized):
            if not incentive.has_name:
                raise HTTPException(
                    status_code=400,
                    detail=f"incentive at index {index} must have a name",
                )
        return normalized

    def _replace_incentives(
        self, auction: Auction, incentives: List[CatalogIncentive]
    ) -> None:
        # Rows are updated in place by id so a resubmitted list keeps its primary keys.
        existing = {row.incentive_id: row for row in auction.incentives}
        rows: List[Incentive] = []
        for index, incentive in enumerate(incentives):
            row = existing.pop(incentive.id, None)
            if row is None:
                row = Incentive(incentive_id=incentive.id, auction_id=auction.id)
            row.order_index = index
            row.name = incentive.name
            row.target = incentive.target
            row.active = incentive.active
            row.display_now = incentive.display_now
            row.display_until_met = incentive.display_until_met
            rows.append(row)
        auction.incentives = rows
        if existing:
            logger.info("Removed incentives: %s", sorted(existing))


def get_auction_manager(db: Session = Depends(get_db)) -> AuctionManager:
    """Dependency provider for AuctionManager."""
    return AuctionManager(db=db)
