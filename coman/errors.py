"""coman errors - typed error taxonomy."""


class ComanError(Exception):
    """Base class for every error coman reports to the user."""


# ── Collections ──────────────────────────────────────────────────────────


class CollectionError(ComanError):
    """Errors raised by the collection store and manager."""


class CollectionNotFound(CollectionError):
    def __init__(self, name: str):
        super().__init__(f"Collection not found: {name}")
        self.name = name


class EndpointNotFound(CollectionError):
    def __init__(self, name: str, collection: str | None = None):
        where = f" in {collection}" if collection else ""
        super().__init__(f"Endpoint not found: {name}{where}")
        self.name = name
        self.collection = collection


class DuplicateCollection(CollectionError):
    def __init__(self, name: str):
        super().__init__(f"Collection already exists: {name}")
        self.name = name


class StorageError(CollectionError):
    """Reading or writing the collections file failed."""


class InvalidMethod(ComanError, ValueError):
    def __init__(self, value: str):
        super().__init__(f"Invalid HTTP method: {value}")
        self.value = value


class DeletionCancelled(ComanError):
    def __init__(self):
        super().__init__("Deletion cancelled.")


class RenderError(ComanError):
    """The response body could not be rendered with the requested selector."""


# ── HTTP ─────────────────────────────────────────────────────────────────


class HttpError(ComanError):
    """A request failed before a complete response was received.

    Carries the method and URL of the failed request so the message
    shown to the user identifies which call broke.
    """

    def __init__(self, message: str, method: str | None = None, url: str | None = None):
        super().__init__(message)
        self.message = message
        self.method = method
        self.url = url

    def __str__(self) -> str:
        if self.method and self.url:
            return f"{self.message} ({self.method} {self.url})"
        return self.message


class HttpTimeout(HttpError):
    pass


class HttpConnectionError(HttpError):
    pass


class RedirectError(HttpError):
    pass


class RequestBuildError(HttpError):
    pass


class ResponseError(HttpError):
    pass


class UnknownContentType(HttpError):
    pass
