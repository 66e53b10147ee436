class GatewayError(Exception):
    """Raised when the GraphQL gateway returns an HTTP or GraphQL error."""

    def __init__(self, message: str, status_code: int | None = None, errors: list | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors or []


class GatewayUnavailableError(GatewayError):
    """Raised when the gateway cannot be reached after all retries."""
