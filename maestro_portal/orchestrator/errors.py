ERR_VALIDATION = "ERR_VALIDATION"
ERR_NOT_FOUND = "ERR_NOT_FOUND"
ERR_TRANSPORT = "ERR_TRANSPORT"
ERR_COMMAND = "ERR_COMMAND"
ERR_UNKNOWN = "ERR_UNKNOWN"


class PortalError(Exception):
    code = ERR_UNKNOWN


class ValidationError(PortalError):
    """Missing identifiers, or a command the current status does not allow.

    Raised before any network call is made.
    """
    code = ERR_VALIDATION


class NotFoundError(PortalError):
    code = ERR_NOT_FOUND


class TransportError(PortalError):
    """Network failure or 5xx from the registry. Retried by the next poll tick."""
    code = ERR_TRANSPORT


class CommandError(PortalError):
    """A pause/resume/cancel call failed or was rejected by the registry."""
    code = ERR_COMMAND


def error_code(exc: BaseException | None) -> str | None:
    if exc is None:
        return None
    return getattr(exc, "code", ERR_UNKNOWN)
