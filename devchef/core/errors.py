"""
Error taxonomy — every failure devchef raises on purpose.

The CLI catches ``DevchefError`` at the top and prints the message;
anything else is a bug and surfaces with a traceback.

"Not found" is never an error here: lookups return ``None``.
"""

from __future__ import annotations


class DevchefError(Exception):
    """Base class for all expected devchef failures."""


class ConfigurationInvalid(DevchefError):
    """Malformed recipe, unknown plugin type, missing plugin manifest, ..."""


class TransportFailure(DevchefError):
    """Network-level failure (DNS, refused connection, timeout)."""

    retryable = True


class RemoteRejection(DevchefError):
    """A remote answered, but with a status we cannot use.

    Rate limits (403/429), auth errors (401) and server errors (5xx)
    land here; the HTTP status is kept for the caller.
    """

    retryable = True

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class FetchExhausted(DevchefError):
    """Every fetch strategy failed with a retryable error."""

    def __init__(self, what: str, errors: list[str]):
        self.what = what
        self.errors = list(errors)
        detail = "; ".join(self.errors) if self.errors else "no strategy applicable"
        super().__init__(f"All fetch strategies failed for {what}: {detail}")


class ExternalProcessFailure(DevchefError):
    """A subprocess (docker, git, php in a container) exited non-zero."""

    def __init__(self, command: list[str] | str, returncode: int, output: str = ""):
        self.command = command if isinstance(command, str) else " ".join(command)
        self.returncode = returncode
        self.output = output
        message = f"Command failed (exit {returncode}): {self.command}"
        if output:
            message += f"\n{output.strip()}"
        super().__init__(message)


class ResourceConflict(DevchefError):
    """A host resource (usually a port) is held by another container."""


class DatabaseNotReady(DevchefError):
    """The database container never answered within the wait limit."""
