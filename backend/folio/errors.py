"""Error taxonomy shared by the codec, storage adapter, services and routers.

Every error carries the HTTP status it maps to; ``folio.security`` renders
them as ``{"error": message}``.
"""


class FolioError(Exception):
    """Base class for expected, user-visible failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FolioError):
    """Bad position, order, mode, or a missing/empty input."""

    status_code = 400


class PageIndexError(ValidationError, IndexError):
    """A page index outside ``[0, page_count)``."""


class NotFoundError(FolioError):
    status_code = 404


class BlobNotFoundError(NotFoundError):
    """The object store has nothing at the requested path."""


class CorruptDocumentError(FolioError):
    """Bytes could not be parsed as a PDF."""

    status_code = 500


class StoreError(FolioError):
    """Object store failure (network, permissions, quota)."""

    status_code = 500


class ConflictError(FolioError):
    """The row changed underneath the current mutation."""

    status_code = 409


class FileTooLargeError(FolioError):
    status_code = 413
