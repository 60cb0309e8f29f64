"""Board orchestration services for the auction display."""

from .celebration import CelebrationPayload, CelebrationSequencer, CelebrationTimings
from .display_scheduler import (
    DisplayModeScheduler,
    DisplaySnapshot,
    OrchestratorState,
    SchedulerSettings,
    on_scroller_cycle,
    on_timer,
    reconcile,
)
from .flag_outbox import FlagDeliveryError, FlagOutbox
from .incentive_catalog import Incentive, normalize

__all__ = [
    "CelebrationPayload",
    "CelebrationSequencer",
    "CelebrationTimings",
    "DisplayModeScheduler",
    "DisplaySnapshot",
    "FlagDeliveryError",
    "FlagOutbox",
    "Incentive",
    "OrchestratorState",
    "SchedulerSettings",
    "normalize",
    "on_scroller_cycle",
    "on_timer",
    "reconcile",
]
