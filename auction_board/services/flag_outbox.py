from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from auction_board.services.effects import UpdateIncentiveFlags

logger = logging.getLogger(__name__)

CommandKey = Tuple[str, Tuple[str, ...]]
FlagSender = Callable[[UpdateIncentiveFlags], Awaitable[Any]]

_DEFAULT_RETRYABLE_STATUSES = (429, 502, 503, 504)


class FlagDeliveryError(Exception):
    """A flag update could not be stored; ``retryable`` says whether to try again."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


@dataclass
class _OutboxEntry:
    command: UpdateIncentiveFlags
    attempts: int = 0
    last_error: Optional[str] = None


@dataclass
class DeliveryReport:
    delivered: List[CommandKey] = field(default_factory=list)
    retrying: List[CommandKey] = field(default_factory=list)
    dropped: List[CommandKey] = field(default_factory=list)


class FlagOutbox:
    """
    Pending incentive flag updates awaiting delivery to the ConfigStore.

    Commands are keyed by incentive id plus the sorted field names, so asking
    twice for the same clear while the first is still queued or on the wire
    is a no-op.
    """

    def __init__(
        self,
        *,
        retryable_statuses: Iterable[int] = _DEFAULT_RETRYABLE_STATUSES,
        max_retries: int = 2,
    ) -> None:
        self.retryable_statuses = frozenset(int(status) for status in retryable_statuses)
        self.max_retries = max(0, int(max_retries))
        self._pending: Dict[CommandKey, _OutboxEntry] = {}
        self._in_flight: Dict[CommandKey, _OutboxEntry] = {}

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "FlagOutbox":
        return cls(
            retryable_statuses=settings.get(
                "retryable_statuses", _DEFAULT_RETRYABLE_STATUSES
            ),
            max_retries=settings.get("max_retries", 2),
        )

    def submit(self, command: UpdateIncentiveFlags) -> bool:
        key = command.key
        if key in self._pending or key in self._in_flight:
            logger.debug("Flag update %s already queued; skipping.", key)
            return False
        self._pending[key] = _OutboxEntry(command=command)
        return True

    def is_pending(self, key: CommandKey) -> bool:
        return key in self._pending or key in self._in_flight

    def has_pending(self) -> bool:
        return bool(self._pending)

    def pending_commands(self) -> List[UpdateIncentiveFlags]:
        return [entry.command for entry in self._pending.values()]

    def __len__(self) -> int:
        return len(self._pending) + len(self._in_flight)

    async def deliver_pending(self, sender: FlagSender) -> DeliveryReport:
        report = DeliveryReport()
        batch = list(self._pending.items())
        for key, entry in batch:
            self._pending.pop(key, None)
            self._in_flight[key] = entry
            entry.attempts += 1
            try:
                await sender(entry.command)
            except Exception as exc:  # noqa: BLE001
                self._in_flight.pop(key, None)
                entry.last_error = str(exc)
                if self._should_retry(exc, entry):
                    self._pending.setdefault(key, entry)
                    report.retrying.append(key)
                    logger.warning(
                        "Flag update %s for incentive %s failed (attempt %d); will retry: %s",
                        sorted(entry.command.updates),
                        entry.command.incentive_id,
                        entry.attempts,
                        exc,
                    )
                else:
                    report.dropped.append(key)
                    logger.error(
                        "Dropping flag update %s for incentive %s after %d attempt(s): %s",
                        sorted(entry.command.updates),
                        entry.command.incentive_id,
                        entry.attempts,
                        exc,
                    )
                continue
            self._in_flight.pop(key, None)
            report.delivered.append(key)
        return report

    def _should_retry(self, exc: Exception, entry: _OutboxEntry) -> bool:
        if entry.attempts > self.max_retries:
            return False
        if isinstance(exc, FlagDeliveryError):
            if exc.status_code is not None:
                return exc.status_code in self.retryable_statuses
            return exc.retryable
        return False
