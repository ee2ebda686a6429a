class SummarizerError(Exception):
    """Base error carrying the message and HTTP status returned to clients."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ConfigurationError(SummarizerError):
    """Raised when a required setting (usually an API key) is missing or invalid."""

    status_code = 500
