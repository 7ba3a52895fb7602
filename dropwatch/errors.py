"""Exit codes and the errors that map to them."""

from enum import IntEnum
from typing import TYPE_CHECKING, NoReturn

if TYPE_CHECKING:
    from dropwatch.api import DigitalOceanAPIError


class ExitCode(IntEnum):
    """Process exit statuses shared by both commands."""

    SUCCESS = 0
    GENERIC_ERROR = 1
    INVALID_AUTHENTICATION = 2
    INVALID_PARAMETERS_NUMBER = 3
    PROVIDER_ERROR = -2


class DropwatchError(Exception):
    """Base error; the CLI prints the message and exits with ``exit_code``."""

    exit_code = ExitCode.GENERIC_ERROR

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class InvalidParametersNumberError(DropwatchError):
    """Raised when a command gets the wrong number of positional arguments."""

    exit_code = ExitCode.INVALID_PARAMETERS_NUMBER

    def __init__(self):
        super().__init__("Wrong number of parameters.")


class InvalidAuthenticationError(DropwatchError):
    """Raised when the API token is rejected."""

    exit_code = ExitCode.INVALID_AUTHENTICATION

    def __init__(self):
        super().__init__("Invalid authentication.")


class ProviderError(DropwatchError):
    """Raised when the API reports an error other than a bad token."""

    exit_code = ExitCode.PROVIDER_ERROR


def raise_for_api_error(e: "DigitalOceanAPIError") -> NoReturn:
    """
    Translate a fatal API error into the matching dropwatch error.

    Raises:
        InvalidAuthenticationError: If the token was rejected
        ProviderError: If the API answered with any other error
        DropwatchError: If the API could not be reached at all
    """
    if e.is_unauthorized:
        raise InvalidAuthenticationError() from e
    if e.status_code is None:
        raise DropwatchError(str(e)) from e
    raise ProviderError(e.provider_message or str(e)) from e
