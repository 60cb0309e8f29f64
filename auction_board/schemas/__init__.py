from .auction import (
    AnnouncementsUpdate,
    AuctionResponse,
    AuctionUpdate,
    IncentiveResponse,
    IncentiveStateUpdate,
)

__all__ = [
    "AnnouncementsUpdate",
    "AuctionResponse",
    "AuctionUpdate",
    "IncentiveResponse",
    "IncentiveStateUpdate",
]
