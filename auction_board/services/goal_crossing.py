from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence

from auction_board.services.incentive_catalog import Incentive

SOURCE_TRANSITION = "transition"
SOURCE_UNTIL_MET = "until_met"


@dataclass(frozen=True)
class UntilMetEntry:
    """Remembered goal of an incentive flagged display-until-met."""

    name: str
    target: float
    absent_polls: int = 0


@dataclass(frozen=True)
class CrossingEvent:
    incentive_id: str
    name: str
    target: float
    source: str = SOURCE_TRANSITION
    clear_until_flag: bool = False


@dataclass(frozen=True)
class CrossingResult:
    met_status: Dict[str, bool]
    events: List[CrossingEvent] = field(default_factory=list)
    rearmed_ids: FrozenSet[str] = frozenset()
    departed_ids: FrozenSet[str] = frozenset()
    until_memory: Dict[str, UntilMetEntry] = field(default_factory=dict)
    evicted_ids: FrozenSet[str] = frozenset()


def goal_met(target: float, total: float) -> bool:
    """A zero goal means "no goal" and is met from the start."""
    return target <= 0 or total >= target


def is_met(incentive: Incentive, total: float) -> bool:
    return incentive.active and goal_met(incentive.target, total)


def detect_goal_crossings(
    previous_met: Mapping[str, bool],
    previous_total: float,
    current_total: float,
    incentives: Sequence[Incentive],
    *,
    initialized: bool,
    until_memory: Optional[Mapping[str, UntilMetEntry]] = None,
    max_absent_polls: Optional[int] = None,
) -> CrossingResult:
    """
    Work out which incentives just reached their goal.

    A crossing is reported when an incentive with a positive goal moves from
    not-met to met, or when an incentive is seen for the first time after the
    catalog was initialized and the total stepped over its goal during this
    poll. Remembered display-until-met goals also cross once the total reaches
    them, even if the incentive is no longer listed.

    The function does not suppress repeats; callers keep their own record of
    what has already been celebrated.
    """
    met_status: Dict[str, bool] = {}
    events: List[CrossingEvent] = []
    rearmed: set[str] = set()
    memory: Dict[str, UntilMetEntry] = dict(until_memory or {})
    present: set[str] = set()

    for item in incentives:
        present.add(item.id)
        goal = item.target
        seen_before = item.id in previous_met
        was_met = bool(previous_met.get(item.id, False))
        met = is_met(item, current_total)
        met_status[item.id] = met

        if goal > current_total:
            rearmed.add(item.id)

        if goal > 0 and met:
            stepped_over = previous_total < goal <= current_total
            if (seen_before and not was_met) or (
                not seen_before and initialized and stepped_over
            ):
                events.append(
                    CrossingEvent(
                        incentive_id=item.id,
                        name=item.display_name,
                        target=goal,
                    )
                )

        if item.display_until_met:
            memory[item.id] = UntilMetEntry(name=item.display_name, target=goal)
        elif goal > current_total:
            memory.pop(item.id, None)

        remembered = memory.get(item.id)
        if remembered is None:
            continue
        if remembered.absent_polls:
            remembered = UntilMetEntry(name=remembered.name, target=remembered.target)
            memory[item.id] = remembered
        check_target = remembered.target if remembered.target > 0 else goal
        if 0 < check_target <= current_total:
            events.append(
                CrossingEvent(
                    incentive_id=item.id,
                    name=remembered.name or item.display_name,
                    target=check_target,
                    source=SOURCE_UNTIL_MET,
                    clear_until_flag=True,
                )
            )
            memory.pop(item.id, None)

    evicted: set[str] = set()
    for incentive_id, remembered in list(memory.items()):
        if incentive_id in present:
            continue
        if 0 < remembered.target <= current_total:
            events.append(
                CrossingEvent(
                    incentive_id=incentive_id,
                    name=remembered.name,
                    target=remembered.target,
                    source=SOURCE_UNTIL_MET,
                )
            )
            memory.pop(incentive_id, None)
            continue
        absent_polls = remembered.absent_polls + 1
        if max_absent_polls is not None and absent_polls > max_absent_polls:
            memory.pop(incentive_id, None)
            evicted.add(incentive_id)
            continue
        memory[incentive_id] = UntilMetEntry(
            name=remembered.name,
            target=remembered.target,
            absent_polls=absent_polls,
        )

    departed = frozenset(key for key in previous_met if key not in present)
    return CrossingResult(
        met_status=met_status,
        events=events,
        rearmed_ids=frozenset(rearmed),
        departed_ids=departed,
        until_memory=memory,
        evicted_ids=frozenset(evicted),
    )
