"""Application exception hierarchy."""


class VeilleError(Exception):
    """Base exception for all ingestion errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class FetchError(VeilleError):
    """A source could not be retrieved (network, timeout, non-2xx status)."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        url: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.source = source
        self.url = url
        self.status_code = status_code
        self.body = body[:500] if body else None

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        if self.body:
            return f"{self.message} (HTTP {self.status_code}): {self.body[:200]}"
        return f"{self.message} (HTTP {self.status_code})"


class ParsingError(VeilleError):
    """A fetched payload could not be decoded as a whole."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        raw_output: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.source = source
        self.raw_output = raw_output[:500] if raw_output else None


class PersistenceError(VeilleError):
    """Storage rejected a write for a reason other than an identity conflict."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        table: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.operation = operation
        self.table = table


class AuthorizationError(VeilleError):
    """The trigger credential was missing or wrong."""


class RunStateError(VeilleError):
    """An ingest run was used outside its lifecycle (e.g. finalized twice)."""
