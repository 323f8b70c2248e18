"""Exceptions raised by envfacade."""


class EnvironmentFacadeError(Exception):
    """Base class for every failure reported by an Environment."""


class InvalidArgumentError(EnvironmentFacadeError, ValueError):
    """An argument was None, empty, out of range or not a known enum value."""


class NotFoundError(EnvironmentFacadeError, FileNotFoundError):
    """A directory or other resource does not exist."""


class PermissionDeniedError(EnvironmentFacadeError, PermissionError):
    """The caller lacks the rights for the operation."""


class NotSupportedError(EnvironmentFacadeError):
    """The operation has no meaning on this platform."""


class PlatformNotSupportedError(NotSupportedError):
    """The running platform is not one envfacade knows how to handle."""


class PlatformIOError(EnvironmentFacadeError, OSError):
    """The underlying storage or device failed."""


class PlatformError(EnvironmentFacadeError, RuntimeError):
    """The runtime could not produce a value (e.g. no machine name)."""


def translate_os_error(exc: OSError, message: str) -> EnvironmentFacadeError:
    """Map a built-in OSError onto the facade's taxonomy."""
    if isinstance(exc, (FileNotFoundError, NotADirectoryError)):
        return NotFoundError(message)
    if isinstance(exc, PermissionError):
        return PermissionDeniedError(message)
    return PlatformIOError(message)
