"""Error taxonomy for hardening runs."""

import shutil
from typing import Optional


class HardeningError(Exception):
    """Base class for failures raised by collaborators."""

    fatal = False


class ObservationFailure(HardeningError):
    """A fact's current value could not be determined."""


class ActionFailure(HardeningError):
    """A corrective action did not succeed."""


class PrerequisiteMissing(HardeningError):
    """A tool required by a mandatory action is not installed."""

    fatal = True

    def __init__(self, tool: str, purpose: Optional[str] = None):
        self.tool = tool
        message = f"{tool} not found"
        if purpose:
            message += f" - cannot {purpose}"
        super().__init__(message)


class ValidationFailure(HardeningError):
    """Written configuration failed its syntax check."""

    fatal = True

    def __init__(self, message: str, output: str = ""):
        self.output = output
        super().__init__(message)


def require_tool(tool: str, purpose: Optional[str] = None) -> str:
    """Return the path of a tool, raising PrerequisiteMissing if absent."""
    path = shutil.which(tool)
    if path is None:
        raise PrerequisiteMissing(tool, purpose)
    return path
