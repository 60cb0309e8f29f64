"""Read-only view model handed to render adapters."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from auction_board.services.celebration import STAGE_IDLE, STAGE_PROGRESS
from auction_board.services.display_scheduler import OrchestratorState
from auction_board.services.incentive_catalog import DEFAULT_DISPLAY_NAME, Incentive

REGION_SCROLLER = "scroller"
REGION_INCENTIVE = "incentive"
REGION_CELEBRATION = "celebration"

DEFAULT_ASK_ME_TITLE = "Ask Me Spotlight"
DEFAULT_ASK_ME_MESSAGE = "Ask us about our featured cause!"

MILESTONE_STEP = 1000
FEATURED_PAGE_SIZE = 6
FEATURED_MAX_BIDS = 2
COUNTDOWN_TENTHS_WINDOW_MS = 5 * 60 * 1000

_CURRENCY_STRIP = re.compile(r"[^0-9.\-]")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_currency(amount: Any) -> str:
    try:
        value = float(amount)
    except (TypeError, ValueError):
        value = 0.0
    if not math.isfinite(value):
        value = 0.0
    return f"${_round_half_up(value):,}"


def parse_currency_value(value: Any) -> float:
    """Read a feed amount such as ``"$1,234.50"``; anything unusable is 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    if isinstance(value, str):
        try:
            parsed = float(_CURRENCY_STRIP.sub("", value))
        except ValueError:
            return 0.0
        return parsed if math.isfinite(parsed) else 0.0
    return 0.0


@dataclass(frozen=True)
class IncentiveCard:
    id: str
    name: str
    goal: float
    raised: float
    progress: float
    percent_label: str
    target_text: str


def build_incentive_card(
    incentive: Incentive,
    total_raised: float,
    *,
    override_raised: Optional[float] = None,
    override_goal: Optional[float] = None,
) -> IncentiveCard:
    goal = override_goal if override_goal is not None else incentive.target
    raised = override_raised if override_raised is not None else total_raised
    raw_progress = (raised / goal) * 100 if goal > 0 else 100.0
    progress = max(0.0, min(raw_progress, 100.0))
    if goal > 0 and raised < goal:
        label = math.floor(max(0.0, min(raw_progress, 99.999)))
    else:
        label = max(0, _round_half_up(progress))
    if goal > 0:
        target_text = f"{format_currency(raised)} / {format_currency(goal)}"
    else:
        target_text = format_currency(raised)
    return IncentiveCard(
        id=incentive.id,
        name=incentive.display_name,
        goal=goal,
        raised=raised,
        progress=round(progress, 3),
        percent_label=f"{min(999, label)}%",
        target_text=target_text,
    )


@dataclass(frozen=True)
class Countdown:
    text: str
    ended: bool = False


def _parse_end(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        # Naive end times are wall-clock times where the board runs.
        parsed = parsed.astimezone()
    return parsed


def countdown_text(end_date_time: Any, now: Optional[datetime] = None) -> Countdown:
    end = _parse_end(end_date_time)
    if end is None:
        return Countdown(text="--:--:--")
    current = now or datetime.now(UTC)
    if current.tzinfo is None:
        current = current.astimezone()
    diff_ms = max(0, int((end - current).total_seconds() * 1000))
    if diff_ms <= 0:
        return Countdown(text="00:00:00", ended=True)
    hours = diff_ms // 3_600_000
    minutes = (diff_ms // 60_000) % 60
    seconds = (diff_ms // 1000) % 60
    text = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    if diff_ms <= COUNTDOWN_TENTHS_WINDOW_MS:
        text = f"{text}.{(diff_ms % 1000) // 100}"
    return Countdown(text=text)


class MilestoneTracker:
    """Reports each new multiple of ``step`` the total reaches."""

    def __init__(self, step: int = MILESTONE_STEP) -> None:
        self.step = step
        self.last_k = 0

    def observe(self, total: float) -> Optional[int]:
        if not math.isfinite(total):
            return None
        k = int(math.floor(total / self.step))
        if k > self.last_k:
            self.last_k = k
            return k * self.step
        return None


@dataclass(frozen=True)
class AskMeView:
    enabled: bool
    title: str
    message: str
    total: float
    total_text: str
    delta: Optional[float] = None
    thank_you: bool = False


class AskMeTracker:
    def __init__(self) -> None:
        self.active = False
        self.last_total: Optional[float] = None
        self.last_config: Optional[Dict[str, Any]] = None

    def observe(self, config: Optional[Mapping[str, Any]]) -> AskMeView:
        if config is None:
            config = self.last_config or {}
        enabled = bool(config.get("askMeMode"))
        raw_title = config.get("askMeTitle")
        title = raw_title.strip() if isinstance(raw_title, str) and raw_title.strip() else DEFAULT_ASK_ME_TITLE
        raw_message = config.get("askMeMessage")
        message = raw_message if isinstance(raw_message, str) and raw_message.strip() else DEFAULT_ASK_ME_MESSAGE
        try:
            total = float(config.get("askMeTotal") or 0)
        except (TypeError, ValueError):
            total = 0.0
        if not math.isfinite(total):
            total = 0.0

        delta: Optional[float] = None
        thank_you = False
        if enabled:
            if self.active and self.last_total is not None and total != self.last_total:
                delta = total - self.last_total
            self.active = True
        else:
            thank_you = self.active
            self.active = False
        self.last_total = total
        self.last_config = {
            "askMeMode": enabled,
            "askMeTitle": title,
            "askMeMessage": raw_message if isinstance(raw_message, str) else "",
            "askMeTotal": total,
        }
        return AskMeView(
            enabled=enabled,
            title=title,
            message=message,
            total=total,
            total_text=format_currency(total),
            delta=delta,
            thank_you=thank_you,
        )


def _bid_count(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def select_featured_items(items: Sequence[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    """Items with a listed value and few bids; every item when none qualify."""
    featured = []
    for item in items:
        bids = _bid_count(item.get("bids"))
        if item.get("value") is not None and bids is not None and 0 <= bids <= FEATURED_MAX_BIDS:
            featured.append(item)
    return featured or list(items)


def _item_key(item: Mapping[str, Any]) -> str:
    return "|".join(str(item.get(key)) for key in ("title", "price", "value", "bids"))


class FeaturedRotator:
    """Pages through featured items, keeping the lead item in view across refreshes."""

    def __init__(self, page_size: int = FEATURED_PAGE_SIZE) -> None:
        self.page_size = page_size
        self.items: List[Mapping[str, Any]] = []
        self.index = 0
        self._key = ""

    def update(self, items: Sequence[Mapping[str, Any]]) -> bool:
        chosen = select_featured_items(items)
        key = "||".join(_item_key(item) for item in chosen)
        if key == self._key:
            return False
        lead = self.items[self.index % len(self.items)] if self.items else None
        self.items = chosen
        self._key = key
        self.index = 0
        if lead is not None:
            lead_key = _item_key(lead)
            for position, item in enumerate(chosen):
                if _item_key(item) == lead_key:
                    self.index = position
                    break
        return True

    def advance(self) -> None:
        if self.items:
            self.index = (self.index + self.page_size) % len(self.items)

    def page(self) -> List[Mapping[str, Any]]:
        if not self.items:
            return []
        return [
            self.items[(self.index + offset) % len(self.items)]
            for offset in range(self.page_size)
        ]


@dataclass(frozen=True)
class BoardView:
    mode: str
    region: str
    total_raised: float
    total_text: str
    card: Optional[IncentiveCard] = None
    celebration: Optional[Dict[str, Any]] = None
    celebration_stage: str = STAGE_IDLE
    auction_name: Optional[str] = None
    announcements: List[str] = field(default_factory=list)
    countdown: Optional[Countdown] = None
    ask_me: Optional[AskMeView] = None
    milestone: Optional[int] = None
    featured: List[Mapping[str, Any]] = field(default_factory=list)


def _celebration_card(state: OrchestratorState) -> Optional[IncentiveCard]:
    payload = state.celebration.active
    if payload is None:
        return None
    match = state.find(payload.id)
    goal = payload.goal if payload.goal > 0 else (match.target if match else 0.0)
    raised = max(payload.amount if payload.amount > 0 else 0.0, state.total_raised, goal)
    incentive = match or Incentive(
        id=payload.id,
        name=payload.name or DEFAULT_DISPLAY_NAME,
        target=goal,
        active=True,
    )
    return build_incentive_card(
        incentive,
        state.total_raised,
        override_raised=raised,
        override_goal=goal,
    )


def build_board_view(state: OrchestratorState) -> BoardView:
    stage = state.celebration.stage
    payload = state.celebration.active
    card: Optional[IncentiveCard] = None
    celebration: Optional[Dict[str, Any]] = None

    if payload is not None and stage == STAGE_PROGRESS:
        region = REGION_INCENTIVE
        card = _celebration_card(state)
    elif payload is not None:
        region = REGION_CELEBRATION
        celebration = dict(payload.to_payload(), amountText=format_currency(payload.amount))
    else:
        current = state.find(state.current_id)
        if current is not None:
            region = REGION_INCENTIVE
            card = build_incentive_card(current, state.total_raised)
        else:
            region = REGION_SCROLLER

    return BoardView(
        mode=state.mode,
        region=region,
        total_raised=state.total_raised,
        total_text=format_currency(state.total_raised),
        card=card,
        celebration=celebration,
        celebration_stage=stage,
    )
