from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Set
from uuid import uuid4

NAME_MAX_LENGTH = 200
DEFAULT_DISPLAY_NAME = "Incentive"

IdFactory = Callable[[int], str]

_FALSE_STRINGS = {"", "0", "false", "no", "off"}


@dataclass(frozen=True)
class Incentive:
    id: str
    name: str = ""
    target: float = 0.0
    active: bool = False
    display_now: bool = False
    display_until_met: bool = False

    @property
    def display_name(self) -> str:
        return self.name.strip() or DEFAULT_DISPLAY_NAME

    @property
    def has_name(self) -> bool:
        return bool(self.name.strip())

    def to_payload(self) -> Dict[str, Any]:
        """Return the camelCase wire form shared by the API and the board."""
        return {
            "id": self.id,
            "name": self.name,
            "target": self.target,
            "active": self.active,
            "displayNow": self.display_now,
            "displayUntilMet": self.display_until_met,
        }


def new_incentive_id(_index: int = 0) -> str:
    return str(uuid4())


def positional_incentive_id(index: int) -> str:
    """Deterministic fallback so an id-less record keeps its identity across polls."""
    return f"incentive-{index}"


def coerce_target(value: Any) -> float:
    if isinstance(value, str):
        value = value.strip() or 0
    try:
        candidate = float(value if value is not None else 0)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(candidate) or candidate < 0:
        return 0.0
    return candidate


def coerce_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def coerce_name(value: Any) -> str:
    return value[:NAME_MAX_LENGTH] if isinstance(value, str) else ""


def normalize_incentive(
    raw: Any,
    index: int = 0,
    id_factory: Optional[IdFactory] = None,
) -> Incentive:
    if isinstance(raw, Incentive):
        raw = raw.to_payload()
    record: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
    factory = id_factory or new_incentive_id

    raw_id = record.get("id")
    incentive_id = raw_id if isinstance(raw_id, str) and raw_id else factory(index)
    return Incentive(
        id=incentive_id,
        name=coerce_name(record.get("name")),
        target=coerce_target(record.get("target")),
        active=coerce_flag(record.get("active")),
        display_now=coerce_flag(record.get("displayNow")),
        display_until_met=coerce_flag(record.get("displayUntilMet")),
    )


def normalize(raw_list: Any, id_factory: Optional[IdFactory] = None) -> List[Incentive]:
    """
    Normalize raw incentive records into the canonical list.

    Never raises. Malformed entries become default records at the same index
    instead of being dropped, and duplicate ids are replaced so ids stay unique.
    """
    if not isinstance(raw_list, (list, tuple)):
        return []
    factory = id_factory or new_incentive_id
    seen: Set[str] = set()
    normalized: List[Incentive] = []
    for index, raw in enumerate(raw_list):
        incentive = normalize_incentive(raw, index, factory)
        if incentive.id in seen:
            replacement = factory(index)
            attempt = 1
            while replacement in seen:
                replacement = f"{factory(index)}-{attempt}"
                attempt += 1
            incentive = replace(incentive, id=replacement)
        seen.add(incentive.id)
        normalized.append(incentive)
    return normalized
