from enum import Enum

CLIENT_ERROR = "client_error"
SERVICE_UNAVAILABLE = "service_unavailable"
SERVER_ERROR = "server_error"


class StudyGenError(Exception):
    """
    StudyGenError is the base of every error raised by the generation
    pipeline. The category hints how an API layer should present it.
    """

    category: "str" = SERVER_ERROR


class ValidationError(StudyGenError):
    """raised for request options outside their allowed domain"""

    category = CLIENT_ERROR


class BudgetExceeded(StudyGenError):
    """raised when today's token usage has reached the daily limit"""

    category = SERVICE_UNAVAILABLE

    def __init__(self, used: "int", limit: "int") -> "None":
        self.used = used
        self.limit = limit
        super().__init__(
            f"Daily token limit exceeded. Used: {used:,}/{limit:,} tokens. "
            "Please try again tomorrow."
        )


class NoProviderConfigured(StudyGenError):
    category = SERVICE_UNAVAILABLE


class ProviderErrorReason(str, Enum):
    UNCONFIGURED = "unconfigured"
    REQUEST_FAILED = "request_failed"
    EMPTY_RESPONSE = "empty_response"


class ProviderError(StudyGenError):
    """
    ProviderError covers every backend failure. No usage is recorded
    for a call that ends in a ProviderError.
    """

    category = SERVICE_UNAVAILABLE

    def __init__(
        self,
        reason: "ProviderErrorReason",
        provider: "str",
        message: "str",
    ) -> "None":
        self.reason = reason
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class SourceError(StudyGenError):
    """base for source-side preconditions, raised before any network call"""

    category = CLIENT_ERROR


class NoContent(SourceError):
    pass


class NoDocuments(SourceError):
    pass


class NoExtractedText(SourceError):
    pass


class ParseErrorReason(str, Enum):
    UNPARSABLE = "unparsable"
    EMPTY_SET = "empty_set"
    SCHEMA_VIOLATION = "schema_violation"


class ParseError(StudyGenError):
    """
    ParseError means the backend answered but the output could not be
    turned into a valid artifact. The tokens were spent and recorded.
    """

    category = SERVER_ERROR

    def __init__(self, reason: "ParseErrorReason", message: "str") -> "None":
        self.reason = reason
        super().__init__(message)
