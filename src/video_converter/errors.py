# Fehler-Taxonomie der Engine.
# Alle Fehler erben von ConverterError, damit Aufrufer sie gesammelt abfangen koennen.

from __future__ import annotations


class ConverterError(Exception):
    """Base class for every error raised by the engine."""


class ValidationError(ConverterError):
    """Arguments rejected before a command is sent to the backend."""


class BackendCallError(ConverterError):
    """The command channel failed or the backend answered with an error."""

    def __init__(self, command: str, message: str) -> None:
        self.command = command
        self.message = message
        super().__init__(f"{command}: {message}")


# Name used by the backend protocol docs.
BackendError = BackendCallError


class EventDecodeError(ConverterError):
    """A pushed event or message payload could not be decoded."""


class NotFoundError(ConverterError):
    """An operation referenced a job id that is not known locally."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")
