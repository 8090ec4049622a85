"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. Consistent error handling across the service and the API
2. HTTP status code mapping for FastAPI
3. Structured error responses with contextual data
4. No secrets in error messages (the SMTP password never reaches context)

IMPORTANT: NEVER raise the base Exception class. Always use custom exceptions.
"""

from enum import IntEnum
from typing import Any, Dict, List, Optional


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    WHY: Centralizing exception handling in a base class ensures consistent
    error responses, HTTP status code mapping, and prevents sensitive data
    leaks in error messages.

    All custom exceptions should inherit from this class.
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        sensitive_fields = {"password", "token", "secret", "key", "api_key"}
        filtered_context = {
            k: v for k, v in self.context.items() if k.lower() not in sensitive_fields
        }

        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class BuyNotFoundError(ResourceNotFoundError):
    """Raised when a purchase (buy) does not exist."""

    default_message = "Buy not found"


# ============================================================================
# SMTP reply codes
# ============================================================================


class SmtpStatusCode(IntEnum):
    """
    SMTP reply codes worth naming when a send fails.

    WHY: Operators diagnose relay problems from these codes (Gmail answers
    535 when the account password is used instead of an App Password).
    """

    SERVICE_NOT_AVAILABLE = 421
    MAILBOX_BUSY = 450
    LOCAL_ERROR = 451
    INSUFFICIENT_STORAGE = 452
    COMMAND_UNRECOGNIZED = 500
    SYNTAX_ERROR = 501
    COMMAND_NOT_IMPLEMENTED = 502
    BAD_COMMAND_SEQUENCE = 503
    AUTHENTICATION_REQUIRED = 530
    AUTHENTICATION_REJECTED = 535
    MAILBOX_UNAVAILABLE = 550
    USER_NOT_LOCAL = 551
    EXCEEDED_STORAGE_ALLOCATION = 552
    MAILBOX_NAME_NOT_ALLOWED = 553
    TRANSACTION_FAILED = 554


# ============================================================================
# Invoice Email Exceptions
# ============================================================================


class InvoiceEmailError(AppException):
    """
    Base class for every failure of the invoice email pipeline.

    WHY: Callers (checkout workflow, API) catch this one type to show a
    warning without voiding the purchase, while the subclasses keep the
    classification for logs and tests.
    """

    default_message = "Error sending invoice email"


class InvalidInputError(InvoiceEmailError):
    """
    Raised when the buy or the recipient address is missing.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Invalid invoice email input"


class IncompleteDataError(InvoiceEmailError):
    """
    Raised when the buy's items or customer relation was not eagerly loaded.

    HTTP Status: 422 Unprocessable Entity
    """

    status_code = 422
    default_message = "Buy is missing data required for the invoice"


class MailConfigurationError(InvoiceEmailError):
    """
    Raised when the SMTP host or username is not configured.

    HTTP Status: 500 Internal Server Error
    """

    default_message = "Mail configuration is incomplete"


class TemplateNotFoundError(InvoiceEmailError):
    """
    Raised when the invoice template cannot be located.

    Carries every location that was searched so a misplaced template can be
    fixed without reading loader code.
    """

    default_message = "Invoice template not found"

    def __init__(
        self,
        template_name: str,
        searched_locations: List[str],
        message: Optional[str] = None,
    ):
        self.template_name = template_name
        self.searched_locations = list(searched_locations)
        if message is None:
            message = (
                f"Template {template_name} not found. "
                f"Searched locations: {', '.join(self.searched_locations)}"
            )
        super().__init__(
            message=message,
            template_name=template_name,
            searched_locations=self.searched_locations,
        )


class MailTransportError(InvoiceEmailError):
    """
    Raised when the SMTP relay rejects or drops the message.

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "SMTP transport error"

    def __init__(
        self,
        message: Optional[str] = None,
        smtp_code: Optional[int] = None,
        **context: Any,
    ):
        self.smtp_code = smtp_code
        super().__init__(message=message, smtp_code=smtp_code, **context)

    @property
    def status(self) -> Optional[SmtpStatusCode]:
        """Named SMTP status, or None when the code is absent or unknown."""
        if self.smtp_code is None:
            return None
        try:
            return SmtpStatusCode(self.smtp_code)
        except ValueError:
            return None


class UnknownInvoiceEmailError(InvoiceEmailError):
    """
    Raised for any unclassified failure; the original is kept as __cause__.
    """

    default_message = "Unexpected error sending invoice email"


def format_error_chain(exc: BaseException) -> str:
    """
    Join an exception's message with every nested cause.

    WHY: Operators need the full text (e.g. "SMTP error ... -> (535, b'5.7.8
    Username and Password not accepted')") to tell configuration problems
    from transient network issues without reading server logs.

    Args:
        exc: Outermost exception

    Returns:
        Messages from outermost to innermost, separated by " -> "
    """
    parts: List[str] = []
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        text = current.message if isinstance(current, AppException) else str(current)
        parts.append(text or current.__class__.__name__)
        current = current.__cause__ or current.__context__
    return " -> ".join(parts)
