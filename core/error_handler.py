"""
Error Handler for the Course Forum

Provides centralized error handling with categorization, logging, and user-friendly notifications.
Handles store read/write, not-found, and validation errors with appropriate responses.
"""

import logging
import traceback
from enum import Enum
from typing import Optional, Callable
from dataclasses import dataclass


logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Error categories for classification."""
    STORE_READ = "store_read"
    STORE_WRITE = "store_write"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Error severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Context information for an error."""
    category: ErrorCategory
    severity: ErrorSeverity
    operation: str
    user_message: str
    technical_details: str
    thread_id: Optional[str] = None
    reply_id: Optional[str] = None
    user_id: Optional[str] = None


# Custom Exception Classes

class ForumError(Exception):
    """Base exception for forum errors."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN):
        super().__init__(message)
        self.category = category


class StoreReadError(ForumError):
    """Reading from the document store failed."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.STORE_READ)


class StoreWriteError(ForumError):
    """Writing to the document store failed."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.STORE_WRITE)


class NotFoundError(ForumError):
    """Requested document does not exist."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.NOT_FOUND)


class ThreadNotFound(NotFoundError):
    """Thread does not exist."""

    def __init__(self, thread_id: str):
        super().__init__("Thread not found")
        self.thread_id = thread_id


class ReplyNotFound(NotFoundError):
    """Reply does not exist."""

    def __init__(self, reply_id: str):
        super().__init__("Reply not found")
        self.reply_id = reply_id


class ValidationError(ForumError):
    """Data validation errors."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.VALIDATION)


class ErrorHandler:
    """
    Global error handler for the forum.

    Provides centralized error handling with:
    - Error categorization (store read/write, not found, validation)
    - Severity classification
    - User-friendly error messages
    - Detailed logging for debugging
    - Notification callbacks for UI integration

    Usage:
        error_handler = get_error_handler()
        error_handler.set_notification_callback(view.show_inline_error)

        try:
            # Some operation
            pass
        except ForumError as e:
            error_handler.handle_error(e, "create_thread")
    """

    def __init__(self):
        """Initialize error handler."""
        self._notification_callback: Optional[Callable] = None
        self._error_count = 0

    def set_notification_callback(self, callback: Callable):
        """
        Set callback for displaying notifications to user.

        Args:
            callback: Function(title: str, content: str, severity: ErrorSeverity)
        """
        self._notification_callback = callback

    def handle_error(
        self,
        error: Exception,
        context: str,
        thread_id: Optional[str] = None,
        reply_id: Optional[str] = None,
        user_id: Optional[str] = None,
        show_notification: bool = True
    ) -> ErrorContext:
        """
        Handle an error with appropriate categorization and response.

        Args:
            error: The exception that occurred
            context: Description of the operation that failed
            thread_id: Optional thread ID if error relates to a thread
            reply_id: Optional reply ID if error relates to a reply
            user_id: Optional acting user ID
            show_notification: Whether to show user notification (default: True)

        Returns:
            ErrorContext with categorized error information
        """
        self._error_count += 1

        if isinstance(error, ForumError):
            category = error.category
        else:
            category = self._categorize_error(error)

        severity = self._determine_severity(error, category)
        user_message = self._generate_user_message(error, category, context)
        technical_details = self._get_technical_details(error)

        error_context = ErrorContext(
            category=category,
            severity=severity,
            operation=context,
            user_message=user_message,
            technical_details=technical_details,
            thread_id=thread_id,
            reply_id=reply_id,
            user_id=user_id
        )

        self._log_error(error_context)

        if show_notification and self._notification_callback:
            self._show_notification(error_context)

        return error_context

    def _categorize_error(self, error: Exception) -> ErrorCategory:
        """
        Categorize an error based on its type and message.

        Args:
            error: The exception to categorize

        Returns:
            ErrorCategory
        """
        error_type = type(error).__name__.lower()
        error_msg = str(error).lower()

        if any(keyword in error_type or keyword in error_msg for keyword in [
            'not found', 'notfound', 'missing', 'no such'
        ]):
            return ErrorCategory.NOT_FOUND

        if any(keyword in error_type or keyword in error_msg for keyword in [
            'invalid', 'validation', 'required', 'value'
        ]):
            return ErrorCategory.VALIDATION

        if any(keyword in error_type or keyword in error_msg for keyword in [
            'write', 'insert', 'update', 'delete', 'integrity', 'locked'
        ]):
            return ErrorCategory.STORE_WRITE

        if any(keyword in error_type or keyword in error_msg for keyword in [
            'database', 'sqlite', 'operational', 'connection', 'timeout'
        ]):
            return ErrorCategory.STORE_READ

        return ErrorCategory.UNKNOWN

    def _determine_severity(
        self,
        error: Exception,
        category: ErrorCategory
    ) -> ErrorSeverity:
        """
        Determine the severity of an error.

        Args:
            error: The exception
            category: Error category

        Returns:
            ErrorSeverity
        """
        # Expected outcomes of user input
        if category in (ErrorCategory.VALIDATION, ErrorCategory.NOT_FOUND):
            return ErrorSeverity.INFO

        # Reads degrade to empty states and can be retried
        if category == ErrorCategory.STORE_READ:
            return ErrorSeverity.WARNING

        if category == ErrorCategory.STORE_WRITE:
            return ErrorSeverity.ERROR

        return ErrorSeverity.CRITICAL

    def _generate_user_message(
        self,
        error: Exception,
        category: ErrorCategory,
        context: str
    ) -> str:
        """
        Generate a user-friendly error message.

        Store and validation messages are surfaced verbatim so that the
        form or button that triggered them can show them inline.
        """
        if category in (
            ErrorCategory.STORE_WRITE,
            ErrorCategory.VALIDATION,
            ErrorCategory.NOT_FOUND,
        ):
            return str(error)
        elif category == ErrorCategory.STORE_READ:
            return f"Could not load data: {error}"
        else:
            return f"An error occurred during {context}. Please try again."

    def _get_technical_details(self, error: Exception) -> str:
        """Get technical details for logging."""
        details = [
            f"Exception Type: {type(error).__name__}",
            f"Message: {str(error)}",
            f"Traceback:",
            traceback.format_exc()
        ]
        return "\n".join(details)

    def _log_error(self, error_context: ErrorContext):
        """
        Log error with appropriate level.

        Args:
            error_context: Error context information
        """
        log_message = (
            f"[{error_context.category.value.upper()}] "
            f"{error_context.operation}: {error_context.user_message}"
        )

        extra_info = []
        if error_context.thread_id:
            extra_info.append(f"thread_id={error_context.thread_id}")
        if error_context.reply_id:
            extra_info.append(f"reply_id={error_context.reply_id}")
        if error_context.user_id:
            extra_info.append(f"user_id={error_context.user_id}")

        if extra_info:
            log_message += f" ({', '.join(extra_info)})"

        if error_context.severity == ErrorSeverity.CRITICAL:
            logger.critical(log_message)
            logger.critical(f"Technical details:\n{error_context.technical_details}")
        elif error_context.severity == ErrorSeverity.ERROR:
            logger.error(log_message)
            logger.debug(f"Technical details:\n{error_context.technical_details}")
        elif error_context.severity == ErrorSeverity.WARNING:
            logger.warning(log_message)
            logger.debug(f"Technical details:\n{error_context.technical_details}")
        else:
            logger.info(log_message)

    def _show_notification(self, error_context: ErrorContext):
        """
        Show notification to user.

        Args:
            error_context: Error context information
        """
        if not self._notification_callback:
            return

        try:
            title_map = {
                ErrorCategory.STORE_READ: "Loading Failed",
                ErrorCategory.STORE_WRITE: "Saving Failed",
                ErrorCategory.NOT_FOUND: "Not Found",
                ErrorCategory.VALIDATION: "Invalid Input",
                ErrorCategory.UNKNOWN: "Error"
            }

            title = title_map.get(error_context.category, "Error")

            self._notification_callback(
                title,
                error_context.user_message,
                error_context.severity
            )

        except Exception as e:
            logger.error(f"Failed to show notification: {e}")

    def get_error_count(self) -> int:
        """
        Get total number of errors handled.

        Returns:
            Error count
        """
        return self._error_count

    def reset_error_count(self):
        """Reset error counter."""
        self._error_count = 0


# Global error handler instance
_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """
    Get the global error handler instance.

    Returns:
        Global ErrorHandler instance
    """
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def set_error_handler(handler: ErrorHandler):
    """
    Set the global error handler instance.

    Args:
        handler: ErrorHandler instance to use globally
    """
    global _global_error_handler
    _global_error_handler = handler
