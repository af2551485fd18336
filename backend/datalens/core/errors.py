"""
Error types for dataset ingestion and profiling.

Every error carries a short ``kind`` string so failures can be logged
uniformly. Only the upload-time errors (unsupported format, invalid upload)
ever reach an HTTP caller; everything raised inside a background profiling
run is converted into a FAILED dataset status by the coordinator.
"""


class DatasetProcessingError(Exception):
    """Base class for all dataset ingestion errors."""

    kind = "processing_error"


class UnsupportedFormatError(DatasetProcessingError):
    """File extension is not one of the supported tabular formats."""

    kind = "unsupported_format"


class EmptyFileError(DatasetProcessingError):
    """CSV file has a header but no data rows."""

    kind = "empty_file"


class MalformedFileError(DatasetProcessingError):
    """File bytes cannot be read as the declared tabular format."""

    kind = "malformed_file"


class StorageError(DatasetProcessingError):
    """Blob storage operation failed."""

    kind = "storage_error"


class PersistenceError(DatasetProcessingError):
    """Dataset record could not be written."""

    kind = "persistence_error"


class InvalidStatusTransitionError(PersistenceError):
    """Attempted to move a dataset out of a terminal status."""

    kind = "invalid_status_transition"


class ProcessingTimeoutError(DatasetProcessingError):
    """Profiling run exceeded the configured time limit."""

    kind = "timeout"


class DatasetNotFoundError(DatasetProcessingError):
    kind = "not_found"


class InvalidUploadError(DatasetProcessingError):
    """Upload rejected before anything was stored."""

    kind = "invalid_upload"


class EmptyUploadError(InvalidUploadError):
    kind = "empty_upload"


class FileTooLargeError(InvalidUploadError):
    kind = "file_too_large"
