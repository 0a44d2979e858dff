"""Exception hierarchy for consistent error handling.

All Chatline exceptions inherit from ChatlineError, which carries the
ChatErrorCode and recoverable flag used when an exception is surfaced on
the chat state as a ChatError.
"""

from chatline.chat.models import ChatError, ChatErrorCode


class ChatlineError(Exception):
    """Base exception for all Chatline errors.

    Subclasses may set error_code and recoverable to describe how the failure
    is presented to the visitor.
    """

    error_code: ChatErrorCode | None = None
    recoverable: bool = True

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_chat_error(
        self, default_code: ChatErrorCode = ChatErrorCode.CONNECTION_LOST
    ) -> ChatError:
        """Convert to the error model stored on the chat state.

        Errors without a specific code are reported under default_code.
        """
        return ChatError(
            code=self.error_code or default_code,
            message=self.message,
            recoverable=self.recoverable,
        )


class NoActiveSessionError(ChatlineError):
    """Raised when a command needs a connected chat and there is none."""

    error_code = ChatErrorCode.MESSAGE_SEND_FAILED

    def __init__(self, message: str = "No active chat session") -> None:
        super().__init__(message)


class InvalidMessageError(ChatlineError):
    """Raised when message content is empty or too long."""

    error_code = ChatErrorCode.MESSAGE_SEND_FAILED


class VisitorInfoRequiredError(ChatlineError):
    """Raised when a chat is started before the visitor identified themselves."""

    def __init__(
        self, message: str = "Visitor information is required to start a chat"
    ) -> None:
        super().__init__(message)


class ConnectionNotInitializedError(ChatlineError):
    """Raised when no transport configuration is available."""

    def __init__(
        self, message: str = "No configuration available for connection"
    ) -> None:
        super().__init__(message)


class ConfigurationError(ChatlineError):
    """Raised when a configuration layer cannot be read or fails validation."""

    recoverable = False


class TransportError(ChatlineError):
    """Raised by transports when the remote side rejects an operation."""


class AuthenticationFailedError(TransportError):
    """Raised when transport credentials are rejected."""

    error_code = ChatErrorCode.AUTHENTICATION_FAILED
    recoverable = False


class RateLimitExceededError(TransportError):
    """Raised when the remote side throttles the visitor."""

    error_code = ChatErrorCode.RATE_LIMIT_EXCEEDED

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class SessionTimeoutError(TransportError):
    """Raised when the chat contact expired on the remote side."""

    error_code = ChatErrorCode.SESSION_TIMEOUT
    recoverable = False


class AgentDisconnectedError(TransportError):
    """Raised when the agent left the conversation."""

    error_code = ChatErrorCode.AGENT_DISCONNECTED


class StorageBackendError(ChatlineError):
    """Raised by key/value backends when a read or write fails.

    Backend implementations wrap driver-specific errors in this type.
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


def chat_error_from_exception(
    exc: BaseException,
    default_code: ChatErrorCode,
    fallback_message: str,
) -> ChatError:
    """Build a ChatError for an exception raised by a collaborator.

    Chatline errors keep their own code; anything else is reported
    under default_code as recoverable.
    """
    if isinstance(exc, ChatlineError):
        return exc.to_chat_error(default_code)
    return ChatError(
        code=default_code,
        message=str(exc) or fallback_message,
        recoverable=True,
    )
