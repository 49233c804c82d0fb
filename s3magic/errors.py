from __future__ import annotations
"""Typed failures raised by the deletion pipeline."""
from typing import Iterable

from .models import DeleteFailure, DeleteOutcome

GENERIC_REQUEST_ERROR = "RequestFailed"


class S3MagicError(RuntimeError):
    """Base class for every error raised by s3magic."""


class ListingError(S3MagicError):
    """Raised when a bucket listing page cannot be fetched."""

    def __init__(self, bucket: str, page_number: int, message: str):
        super().__init__(f"Unable to list page {page_number} of bucket '{bucket}': {message}")
        self.bucket = bucket
        self.page_number = page_number
        self.message = message


class BatchTooLargeError(S3MagicError):
    """Raised when a delete batch exceeds the backend limit."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Delete batch holds {size} keys; the limit is {limit}")
        self.size = size
        self.limit = limit


class DeleteRequestError(S3MagicError):
    """Raised when a whole DeleteObjects request fails."""

    def __init__(self, bucket: str, keys: Iterable[str], code: str | None, message: str):
        self.bucket = bucket
        self.keys = tuple(keys)
        self.code = code or GENERIC_REQUEST_ERROR
        self.message = message
        super().__init__(
            f"Delete request for {len(self.keys)} key(s) in bucket '{bucket}' failed: {message}"
        )

    @property
    def outcome(self) -> DeleteOutcome:
        """Every key of the failed request reported as failed."""

        return DeleteOutcome(
            failures=[DeleteFailure(key=key, code=self.code, message=self.message) for key in self.keys]
        )
