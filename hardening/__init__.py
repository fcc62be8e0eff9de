"""ubuntu-harden - idempotent check/apply/verify hardening for Ubuntu hosts."""

from .config import HardeningConfig, load_config
from .errors import (
    ActionFailure,
    HardeningError,
    ObservationFailure,
    PrerequisiteMissing,
    ValidationFailure,
)
from .reconciler import (
    Action,
    Collaborator,
    Comparator,
    Fact,
    Judgment,
    Plan,
    Reconciler,
    RunMode,
    RunResult,
    Target,
)

__all__ = [
    "HardeningConfig",
    "load_config",
    "ActionFailure",
    "HardeningError",
    "ObservationFailure",
    "PrerequisiteMissing",
    "ValidationFailure",
    "Action",
    "Collaborator",
    "Comparator",
    "Fact",
    "Judgment",
    "Plan",
    "Reconciler",
    "RunMode",
    "RunResult",
    "Target",
]
