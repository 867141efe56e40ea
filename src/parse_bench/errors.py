"""Exception hierarchy for parse-bench."""


class ParseBenchError(Exception):
    """Base error for all parse-bench exceptions."""


class ConfigurationError(ParseBenchError):
    """Raised when configuration is invalid or incomplete."""


class MissingCredentialsError(ConfigurationError):
    """Raised when the files API token or bot id is not configured."""


class UnknownMethodError(ParseBenchError):
    """Raised when a method name is not part of the configured catalogue."""


class RemoteServiceError(ParseBenchError):
    """Raised when the hosted files API returns an error or malformed payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UploadError(RemoteServiceError):
    """Raised when transferring document bytes to the upload URL fails."""


class MissingUploadUrlError(RemoteServiceError):
    """Raised when an enqueued file comes back without an upload URL."""


class ExtractionUnavailableError(ParseBenchError):
    """Raised when no structured-extraction model is configured."""


class ComparisonNotReadyError(ParseBenchError):
    """Raised when a comparison is requested before all methods completed."""


class HistoryImportError(ParseBenchError):
    """Raised when imported history JSON has an invalid shape."""


class ApiError(ParseBenchError):
    """Raised by the HTTP API client for non-2xx responses."""

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code
