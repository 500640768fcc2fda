"""Error taxonomy for chartdesk.

Every command rejection is local and recoverable: handlers raise one of the
CommandRejected subclasses before any new state is computed, and the session
controller turns it into a failed CommandResult. LoadFailure is the only
condition that blocks a session from opening.
"""

from __future__ import annotations


class ChartdeskError(Exception):
    """Base class for all chartdesk errors."""


class CommandRejected(ChartdeskError):
    """A command failed validation; the record is left untouched."""

    code = "REJECTED"

    def __init__(self, message: str, command: str = ""):
        super().__init__(message)
        self.message = message
        self.command = command

    def to_dict(self) -> dict:
        return {"code": self.code, "command": self.command, "message": self.message}


class InvalidSelection(CommandRejected):
    """Empty or ineligible charge/event selection."""

    code = "INVALID_SELECTION"


class NotModifiable(CommandRejected):
    """Appointment command on a past or terminal-status event."""

    code = "NOT_MODIFIABLE"


class EmptyInput(CommandRejected):
    """Blank memo text or cancellation reason."""

    code = "EMPTY_INPUT"


class CommandInFlight(CommandRejected):
    """A command was issued while another one was still being applied."""

    code = "COMMAND_IN_FLIGHT"


class LoadFailure(ChartdeskError):
    """The data source could not produce a patient record."""

    def __init__(self, message: str, source: str = ""):
        super().__init__(message)
        self.message = message
        self.source = source
