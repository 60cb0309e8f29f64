from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from auction_board.services.board_view import parse_currency_value
from auction_board.services.display_scheduler import DisplaySnapshot
from auction_board.services.effects import UpdateIncentiveFlags
from auction_board.services.flag_outbox import FlagDeliveryError

logger = logging.getLogger(__name__)

_NO_CACHE_HEADERS = {"Accept": "application/json", "Cache-Control": "no-store"}

# ConfigStore field -> auction facts key used by the board.
_CONFIG_FACTS = {
    "name": "auctionName",
    "endDateTime": "endDateTime",
    "announcements": "announcements",
    "incentives": "incentives",
}
_ASK_ME_FIELDS = ("askMeMode", "askMeTitle", "askMeMessage", "askMeTotal")


class ConfigStoreClient:
    """HTTP client for the ConfigStore API."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def get_auction(self) -> Dict[str, Any]:
        response = await self._client.get("/api/auction", headers=_NO_CACHE_HEADERS)
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("ConfigStore returned a non-object auction payload")
        return payload

    async def update_incentive_state(
        self, command: UpdateIncentiveFlags
    ) -> Optional[Dict[str, Any]]:
        path = f"/api/incentives/{quote(command.incentive_id, safe='')}/state"
        try:
            response = await self._client.post(path, json=dict(command.updates))
        except httpx.RequestError as exc:
            raise FlagDeliveryError(
                f"Could not reach ConfigStore: {exc}", retryable=True
            ) from exc
        if response.status_code >= 400:
            raise FlagDeliveryError(
                f"ConfigStore rejected flag update with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError:
            logger.warning(
                "ConfigStore applied flag update for %s but sent a non-JSON body",
                command.incentive_id,
            )
            return None


class StatusFeed:
    """Reads the external auction status document (items and totals)."""

    def __init__(self, client: httpx.AsyncClient, status_url: str) -> None:
        self._client = client
        self.status_url = status_url

    async def fetch(self) -> Dict[str, Any]:
        response = await self._client.get(self.status_url, headers=_NO_CACHE_HEADERS)
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Status feed at {self.status_url} is not a JSON object")
        return payload


@dataclass(frozen=True)
class BoardSnapshot:
    total_raised: float
    items: List[Dict[str, Any]] = field(default_factory=list)
    auction_facts: Dict[str, Any] = field(default_factory=dict)
    ask_me: Optional[Dict[str, Any]] = None
    refreshed_at: Optional[str] = None
    url: Optional[str] = None
    status_ok: bool = True
    config_ok: bool = True

    @property
    def incentives(self) -> Any:
        return self.auction_facts.get("incentives")

    def display_snapshot(self) -> DisplaySnapshot:
        return DisplaySnapshot.from_raw(self.total_raised, self.incentives)


class SnapshotAssembler:
    """
    Combines the status feed with the ConfigStore into one ``BoardSnapshot``.

    Either source may fail independently. A failed status feed keeps the last
    total and items; a failed ConfigStore falls back to the last good
    configuration. When both fail there is nothing new to show and ``poll``
    returns ``None``.
    """

    def __init__(self, feed: StatusFeed, store: ConfigStoreClient) -> None:
        self.feed = feed
        self.store = store
        self._last_status: Optional[Dict[str, Any]] = None
        self._last_config: Optional[Dict[str, Any]] = None
        self._last_total = 0.0

    async def poll(self) -> Optional[BoardSnapshot]:
        status, config = await asyncio.gather(self._fetch_status(), self._fetch_config())
        if status is None and config is None:
            logger.warning("Status feed and ConfigStore both unavailable; skipping refresh.")
            return None

        status_ok = status is not None
        config_ok = config is not None
        if status is not None:
            self._last_status = status
            self._last_total = parse_currency_value(status.get("total_raised"))
        if config is not None:
            self._last_config = config

        source_status = status if status is not None else (self._last_status or {})
        facts = dict(source_status.get("auction_facts") or {})
        effective_config = config if config is not None else self._last_config
        if effective_config:
            for config_key, facts_key in _CONFIG_FACTS.items():
                value = effective_config.get(config_key)
                if facts_key in ("announcements", "incentives"):
                    if isinstance(value, list):
                        facts[facts_key] = value
                elif value:
                    facts[facts_key] = value

        items = source_status.get("items")
        return BoardSnapshot(
            total_raised=self._last_total,
            items=list(items) if isinstance(items, list) else [],
            auction_facts=facts,
            ask_me=(
                {key: effective_config.get(key) for key in _ASK_ME_FIELDS}
                if effective_config
                else None
            ),
            refreshed_at=source_status.get("refreshed_at"),
            url=source_status.get("url"),
            status_ok=status_ok,
            config_ok=config_ok,
        )

    async def _fetch_status(self) -> Optional[Dict[str, Any]]:
        try:
            return await self.feed.fetch()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Error fetching status feed %s: %s", self.feed.status_url, exc)
            return None

    async def _fetch_config(self) -> Optional[Dict[str, Any]]:
        try:
            return await self.store.get_auction()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Error fetching auction configuration: %s", exc)
            return None
