from __future__ import annotations
"""Listing and batch-delete calls against S3."""
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import BatchTooLargeError, DeleteRequestError, ListingError
from .models import MAX_BATCH_SIZE, DeleteFailure, DeleteOutcome, ObjectPage

PAGE_SIZE = 1000
UNREPORTED_ERROR = "Unreported"

LOGGER = logging.getLogger(__name__)


def create_client(
    *,
    endpoint_url: str | None = None,
    access_key: str | None = None,
    secret_key: str | None = None,
    region: str | None = None,
    max_pool_connections: int = 10,
    client_factory: Callable[..., object] | None = None,
):
    """Build an S3 client.

    Credentials left empty fall through to the boto3 default chain
    (environment, shared credentials file, instance role).
    """

    factory = client_factory or boto3.client
    config = Config(signature_version="s3v4", max_pool_connections=max(max_pool_connections, 1))
    params: dict[str, object] = {"config": config}
    if endpoint_url:
        params["endpoint_url"] = endpoint_url
    if access_key and secret_key:
        params["aws_access_key_id"] = access_key
        params["aws_secret_access_key"] = secret_key
    if region:
        params["region_name"] = region
    return factory("s3", **params)


@dataclass(frozen=True)
class DeleteBatch:
    """Keys submitted together in one DeleteObjects request."""

    keys: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if len(self.keys) > MAX_BATCH_SIZE:
            raise BatchTooLargeError(len(self.keys), MAX_BATCH_SIZE)

    @classmethod
    def from_keys(cls, keys: Iterable[str]) -> DeleteBatch:
        return cls(keys=tuple(dict.fromkeys(keys)))

    def __len__(self) -> int:
        return len(self.keys)


def _error_code(exc: Exception) -> str | None:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


class ListingPager:
    """Walks a bucket listing one ``list_objects_v2`` page at a time."""

    def __init__(self, client, *, page_size: int = PAGE_SIZE):
        self._client = client
        self._page_size = max(min(int(page_size), PAGE_SIZE), 1)

    @property
    def page_size(self) -> int:
        return self._page_size

    def next_page(
        self,
        bucket: str,
        continuation_token: str | None = None,
        *,
        page_number: int = 1,
        prefix: str = "",
    ) -> tuple[ObjectPage, bool]:
        """Fetch one page and report whether it was the last one.

        Raises:
            ListingError: when the store rejects or fails the listing call.
        """
        list_params = {"Bucket": bucket, "MaxKeys": self._page_size}
        if prefix:
            list_params["Prefix"] = prefix
        if continuation_token:
            list_params["ContinuationToken"] = continuation_token

        try:
            response = self._client.list_objects_v2(**list_params)
        except (ClientError, BotoCoreError) as exc:
            raise ListingError(bucket, page_number, str(exc)) from exc

        keys = [obj["Key"] for obj in response.get("Contents", [])]
        next_token = response.get("NextContinuationToken")
        truncated = bool(response.get("IsTruncated", False))
        if truncated and not next_token:
            LOGGER.warning(
                "Page %d of bucket '%s' is truncated but has no continuation token; stopping",
                page_number,
                bucket,
            )
        done = not (truncated and next_token)
        page = ObjectPage(number=page_number, keys=keys, continuation_token=None if done else next_token)
        LOGGER.debug("Listed page %d of bucket '%s' (%d key(s), done=%s)", page_number, bucket, len(keys), done)
        return page, done

    def pages(self, bucket: str, *, prefix: str = "") -> Iterator[ObjectPage]:
        token: str | None = None
        page_number = 1
        while True:
            page, done = self.next_page(bucket, token, page_number=page_number, prefix=prefix)
            yield page
            if done:
                return
            token = page.continuation_token
            page_number += 1


class BatchDeleter:
    """Issues one ``delete_objects`` request per batch of keys."""

    def __init__(self, client):
        self._client = client

    def delete_batch(self, bucket: str, keys: Iterable[str]) -> DeleteOutcome:
        """Delete up to ``MAX_BATCH_SIZE`` keys in a single request.

        Raises:
            BatchTooLargeError: when more keys are supplied than one request allows.
            DeleteRequestError: when the request as a whole fails.
        """
        batch = DeleteBatch.from_keys(keys)
        if not batch.keys:
            LOGGER.debug("Skipping empty batch for bucket '%s'", bucket)
            return DeleteOutcome()

        try:
            response = self._client.delete_objects(
                Bucket=bucket,
                Delete={
                    "Objects": [{"Key": key} for key in batch.keys],
                    "Quiet": False,
                },
            )
        except (ClientError, BotoCoreError) as exc:
            raise DeleteRequestError(bucket, batch.keys, _error_code(exc), str(exc)) from exc

        deleted = [entry["Key"] for entry in response.get("Deleted", [])]
        failures = [
            DeleteFailure(
                key=error.get("Key", ""),
                code=error.get("Code", ""),
                message=error.get("Message", ""),
            )
            for error in response.get("Errors", [])
        ]

        reported = set(deleted) | {failure.key for failure in failures}
        for key in batch.keys:
            if key not in reported:
                failures.append(
                    DeleteFailure(key=key, code=UNREPORTED_ERROR, message="Key missing from delete response")
                )

        LOGGER.debug(
            "Deleted %d of %d key(s) from bucket '%s' (%d failed)",
            len(deleted),
            len(batch),
            bucket,
            len(failures),
        )
        return DeleteOutcome(deleted=deleted, failures=failures)
