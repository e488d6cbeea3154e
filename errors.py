class IngestError(Exception):
    """Base class for every error raised by the ingestion core."""


class MalformedDocumentError(IngestError):
    """Bytes that are neither a readable workbook nor decodable delimited text."""

    def __init__(self, message: str, filename: str = ""):
        self.filename = filename
        if filename:
            message = f"{filename}: {message}"
        super().__init__(message)


class StorageError(Exception):
    """The persistence layer is unavailable or rejected a write."""
