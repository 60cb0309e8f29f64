"""
Data access layer for the auction configuration store.
"""

from .auction_manager import AuctionManager

__all__ = ["AuctionManager"]
