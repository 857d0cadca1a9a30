"""
Typed errors raised at the store boundary and by configuration.

Exception Hierarchy:
- PurgeError (base)
  - RetryableError (resolved locally with backoff)
    - Throttled
  - NonRetryableError (surfaced past the owning worker)
    - NonRetryableStoreError
    - SchemaUnavailable
    - InvalidConfigurationError

Keys left over after the retry budget runs out and user cancellation are
outcomes, not exceptions; they are reported in the purge summary.
"""

from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

THROTTLING_ERROR_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
    }
)


class PurgeError(Exception):
    """Base exception for all table purge errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = dict(context) if context else {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "retryable": isinstance(self, RetryableError),
        }


class RetryableError(PurgeError):
    """Base class for errors that can be retried."""

    pass


class NonRetryableError(PurgeError):
    """Base class for errors that should not be retried."""

    pass


class Throttled(RetryableError):
    """The store rejected a request because of throughput limits."""

    def __init__(self, operation: str, **kwargs):
        message = f"{operation} was throttled by the store"
        context = kwargs.pop("context", {})
        context["operation"] = operation
        super().__init__(message, context=context, **kwargs)
        self.operation = operation


class NonRetryableStoreError(NonRetryableError):
    """A store failure that retrying will not fix."""

    def __init__(self, operation: str, reason: str, **kwargs):
        message = f"{operation} failed: {reason}"
        context = kwargs.pop("context", {})
        context.update({"operation": operation, "reason": reason})
        super().__init__(message, context=context, **kwargs)
        self.operation = operation
        self.reason = reason


class SchemaUnavailable(NonRetryableError):
    """The key schema of a table could not be determined."""

    def __init__(self, table_name: str, reason: str, **kwargs):
        message = f"Unable to retrieve key schema for table '{table_name}': {reason}"
        context = kwargs.pop("context", {})
        context.update({"table_name": table_name, "reason": reason})
        super().__init__(message, context=context, **kwargs)
        self.table_name = table_name
        self.reason = reason


class InvalidConfigurationError(NonRetryableError):
    """A purge option is missing or out of range."""

    def __init__(self, setting: str, reason: str, **kwargs):
        message = f"Invalid configuration for '{setting}': {reason}"
        context = kwargs.pop("context", {})
        context.update({"setting": setting, "reason": reason})
        super().__init__(message, context=context, **kwargs)
        self.setting = setting
        self.reason = reason


def get_error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "Unknown")


def classify_client_error(error: Exception, operation: str) -> PurgeError:
    """Map a boto3/botocore failure onto the typed error set."""
    if isinstance(error, ClientError):
        code = get_error_code(error)
        if code in THROTTLING_ERROR_CODES:
            return Throttled(operation, error_code=code)
        message = error.response.get("Error", {}).get("Message", str(error))
        return NonRetryableStoreError(operation, message, error_code=code)

    if isinstance(error, BotoCoreError):
        return NonRetryableStoreError(operation, str(error))

    return NonRetryableStoreError(operation, f"unexpected error: {error}")
