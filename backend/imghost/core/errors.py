"""Errors raised by the upload pipeline.

The metadata store does not define its own errors: a missing entity is
returned as ``None`` (or ``False``), and SQLAlchemy errors propagate to
the caller untouched.
"""


class ImghostError(Exception):
    """Base class for imghost errors."""


class UploadRejected(ImghostError):
    """The upload was refused before anything was stored."""
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(self.detail)


class FileTooLarge(UploadRejected):
    def __init__(self, filename: str, limit: int):
        self.filename = filename
        self.limit = limit
        super().__init__(f"File {filename} exceeds maximum size of {limit // (1024 * 1024)}MB")


class UnsupportedFormat(UploadRejected):
    def __init__(self, fmt: str):
        self.format = fmt
        super().__init__(f"Unsupported format: {fmt}")


class TooManyFiles(UploadRejected):
    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(f"Maximum {limit} files allowed per upload, got {count}")
