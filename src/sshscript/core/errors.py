"""Exception hierarchy for remote provisioning"""

from typing import Optional

# Text reported by SSH clients once every offered authentication method was rejected
FATAL_AUTH_MARKER = "no supported methods remain"


class ProvisionError(Exception):
    """Base class for all provisioning errors"""


class ConfigError(ProvisionError, ValueError):
    """Invalid configuration value"""


class TransportError(ProvisionError):
    """A remote command or file operation failed

    Carries whatever output the remote side produced before failing.
    """

    def __init__(self, message: str, stdout: str = "", stderr: str = "",
                 exit_status: Optional[int] = None):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr
        self.exit_status = exit_status


class CommandTimeout(TransportError):
    """Remote command produced no data within the command timeout"""


class AuthenticationError(TransportError):
    """Every authentication method was rejected by the remote host"""


class LocalFileError(ProvisionError):
    """A local source file could not be opened or inspected"""

    def __init__(self, message: str, path: str):
        super().__init__(message)
        self.path = path


class OperationCancelled(ProvisionError):
    """The caller's context finished while an operation was still retrying"""

    def __init__(self, message: str, reason: str, last_error: Optional[BaseException] = None,
                 stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.reason = reason
        self.last_error = last_error
        self.stdout = stdout
        self.stderr = stderr


def is_fatal_error(error: BaseException) -> bool:
    """Return True for errors that must never be retried"""
    if isinstance(error, AuthenticationError):
        return True
    return FATAL_AUTH_MARKER in str(error)
