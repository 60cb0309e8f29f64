import logging
from typing import List

from fastapi import APIRouter, Depends

from auction_board.data.auction_manager import AuctionManager, get_auction_manager
from auction_board.schemas.auction import (
    AnnouncementsUpdate,
    AuctionResponse,
    AuctionUpdate,
    IncentiveResponse,
    IncentiveStateUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auction"])


@router.get("/auction", response_model=AuctionResponse)
async def get_auction(manager: AuctionManager = Depends(get_auction_manager)):
    return manager.get_payload()


@router.put("/auction", response_model=AuctionResponse)
async def update_auction(
    payload: AuctionUpdate,
    manager: AuctionManager = Depends(get_auction_manager),
):
    changes = payload.provided()
    result = manager.update_auction(changes)
    logger.info("Auction settings updated: %s", sorted(changes))
    return result


@router.get("/announcements", response_model=List[str])
async def get_announcements(manager: AuctionManager = Depends(get_auction_manager)):
    return manager.get_announcements()


@router.put("/announcements", response_model=List[str])
async def update_announcements(
    payload: AnnouncementsUpdate,
    manager: AuctionManager = Depends(get_auction_manager),
):
    return manager.set_announcements(payload.announcements)


@router.post("/incentives/{incentive_id}/state", response_model=IncentiveResponse)
async def update_incentive_state(
    incentive_id: str,
    payload: IncentiveStateUpdate,
    manager: AuctionManager = Depends(get_auction_manager),
):
    """Set display flags on one incentive; the board uses this to clear them once honored."""
    return manager.update_incentive_state(incentive_id, payload.provided())
