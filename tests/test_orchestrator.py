import threading
import time
import unittest
from concurrent.futures import ThreadPoolExecutor

from botocore.exceptions import ClientError

from s3magic.errors import BatchTooLargeError, DeleteRequestError, ListingError
from s3magic.models import DeleteOutcome
from s3magic.orchestrator import DeleteOrchestrator, partition
from s3magic.services import BatchDeleter, ListingPager

from fakes import FakeS3Client, listing


def build(fake_client, **kwargs):
    return DeleteOrchestrator(ListingPager(fake_client), BatchDeleter(fake_client), **kwargs)


class RecordingDeleter:
    """Slow deleter that records every call it completes."""

    def __init__(self, delay=0.02):
        self.delay = delay
        self.completed = []
        self._lock = threading.Lock()

    def delete_batch(self, bucket, keys):
        keys = list(keys)
        time.sleep(self.delay)
        with self._lock:
            self.completed.append(tuple(keys))
        return DeleteOutcome(deleted=keys)


class FailOnceDeleter:
    """Fails the first request for each batch and succeeds afterwards."""

    def __init__(self):
        self.attempts = {}
        self._lock = threading.Lock()

    def delete_batch(self, bucket, keys):
        keys = tuple(keys)
        with self._lock:
            self.attempts[keys] = self.attempts.get(keys, 0) + 1
            first_attempt = self.attempts[keys] == 1
        if first_attempt:
            raise DeleteRequestError(bucket, keys, "SlowDown", "Reduce your request rate")
        return DeleteOutcome(deleted=list(keys))


class PartitionTests(unittest.TestCase):
    def test_splits_into_request_sized_batches(self):
        keys = [str(index) for index in range(2500)]

        batches = partition(keys)

        self.assertEqual([1000, 1000, 500], [len(batch) for batch in batches])
        self.assertEqual(keys, [key for batch in batches for key in batch])

    def test_empty_page_yields_one_empty_batch(self):
        self.assertEqual([[]], partition([]))


class DeleteOrchestratorTests(unittest.TestCase):
    def test_second_pass_accounts_for_every_listed_object(self):
        fake_client = FakeS3Client(
            [
                listing(["a.txt", "b.txt"], token="token-1"),
                listing(["c.txt", "d.txt"], token="token-2"),
                listing(["e.txt"]),
            ]
        )

        summary = build(fake_client).run("bucket-one")

        self.assertEqual(5, summary.listed)
        self.assertEqual(3, summary.pages)
        self.assertEqual(5, summary.succeeded)
        self.assertEqual(0, summary.failed)
        self.assertEqual(5, summary.accounted)
        self.assertEqual(5, summary.first_pass_succeeded)
        self.assertEqual(3, summary.batches)
        self.assertTrue(summary.ok)
        self.assertEqual(6, len(fake_client.delete_objects_calls))

    def test_each_page_is_deleted_twice_and_run_waits_for_all_calls(self):
        pages = [["a1", "a2"], ["b1"], ["c1", "c2", "c3"]]
        fake_client = FakeS3Client(
            [
                listing(pages[0], token="token-1"),
                listing(pages[1], token="token-2"),
                listing(pages[2]),
            ]
        )
        deleter = RecordingDeleter()
        orchestrator = DeleteOrchestrator(ListingPager(fake_client), deleter, max_concurrency=6)

        summary = orchestrator.run("bucket-one")

        self.assertEqual(6, len(deleter.completed))
        for keys in pages:
            self.assertEqual(2, deleter.completed.count(tuple(keys)))
        self.assertEqual(6, summary.succeeded)
        self.assertEqual(6, summary.first_pass_succeeded)

    def test_single_pass_deletes_each_page_once(self):
        fake_client = FakeS3Client([listing(["a.txt"], token="token-1"), listing(["b.txt"])])

        summary = build(fake_client, second_pass=False).run("bucket-one")

        self.assertEqual(2, len(fake_client.delete_objects_calls))
        self.assertEqual(2, summary.succeeded)
        self.assertEqual(0, summary.first_pass_succeeded)

    def test_empty_bucket_reports_nothing_to_delete(self):
        fake_client = FakeS3Client([{"IsTruncated": False}])

        summary = build(fake_client).run("bucket-one")

        self.assertEqual(0, summary.listed)
        self.assertEqual(0, summary.succeeded)
        self.assertEqual(0, summary.failed)
        self.assertTrue(summary.ok)
        self.assertEqual([], fake_client.delete_objects_calls)

    def test_pages_larger_than_a_batch_are_partitioned(self):
        keys = [f"object-{index}" for index in range(1500)]
        fake_client = FakeS3Client([listing(keys)])

        summary = build(fake_client, second_pass=False).run("bucket-one")

        self.assertEqual(1500, summary.succeeded)
        self.assertEqual(
            [1000, 500],
            sorted((len(call["Keys"]) for call in fake_client.delete_objects_calls), reverse=True),
        )

    def test_listing_error_aborts_before_further_pages(self):
        list_error = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Denied"}},
            "ListObjectsV2",
        )
        fake_client = FakeS3Client(
            [listing(["a.txt"], token="token-1"), list_error, listing(["c.txt"])]
        )

        with self.assertRaises(ListingError) as caught:
            build(fake_client).run("bucket-one")

        self.assertEqual(2, caught.exception.page_number)
        self.assertEqual(2, len(fake_client.list_objects_calls))
        self.assertEqual([["a.txt"]], [call["Keys"] for call in fake_client.delete_objects_calls])

    def test_listing_error_waits_for_dispatched_deletions(self):
        list_error = ClientError(
            {"Error": {"Code": "InternalError", "Message": "Boom"}},
            "ListObjectsV2",
        )
        fake_client = FakeS3Client([listing(["a.txt"], token="token-1"), list_error])
        deleter = RecordingDeleter(delay=0.05)
        orchestrator = DeleteOrchestrator(ListingPager(fake_client), deleter)

        with self.assertRaises(ListingError):
            orchestrator.run("bucket-one")

        self.assertEqual([("a.txt",)], deleter.completed)

    def test_per_key_failure_does_not_abort_the_run(self):
        fake_client = FakeS3Client(
            [listing(["a.txt", "locked-object.txt"], token="token-1"), listing(["b.txt"])],
            key_errors={"locked-object.txt": ("AccessDenied", "Object is WORM protected")},
        )

        summary = build(fake_client).run("bucket-one")

        self.assertEqual(2, summary.succeeded)
        self.assertEqual(1, summary.failed)
        self.assertEqual(3, summary.accounted)
        self.assertEqual(["locked-object.txt"], [failure.key for failure in summary.failures])
        self.assertEqual("AccessDenied", summary.failures[0].code)
        self.assertEqual("Object is WORM protected", summary.failures[0].message)
        self.assertFalse(summary.ok)

    def test_request_failure_is_recorded_and_run_continues(self):
        request_error = ClientError(
            {"Error": {"Code": "SlowDown", "Message": "Reduce your request rate"}},
            "DeleteObjects",
        )
        fake_client = FakeS3Client(
            [listing(["a.txt", "b.txt"], token="token-1"), listing(["c.txt"])],
            request_errors={"a.txt": request_error},
        )

        with self.assertLogs("s3magic.orchestrator", level="ERROR"):
            summary = build(fake_client, second_pass=False).run("bucket-one")

        self.assertEqual(1, summary.succeeded)
        self.assertEqual(2, summary.failed)
        self.assertEqual({"SlowDown"}, {failure.code for failure in summary.failures})

    def test_second_pass_recovers_from_first_pass_request_failure(self):
        fake_client = FakeS3Client([listing(["a.txt", "b.txt", "c.txt"])])
        deleter = FailOnceDeleter()
        orchestrator = DeleteOrchestrator(ListingPager(fake_client), deleter, max_concurrency=1)

        with self.assertLogs("s3magic.orchestrator", level="ERROR"):
            summary = orchestrator.run("bucket-one")

        self.assertTrue(summary.ok)
        self.assertEqual(3, summary.succeeded)
        self.assertEqual(0, summary.failed)
        self.assertEqual([], summary.failures)
        self.assertEqual(0, summary.first_pass_succeeded)
        self.assertEqual(3, summary.first_pass_failed)
        self.assertEqual({("a.txt", "b.txt", "c.txt"): 2}, deleter.attempts)

    def test_keys_gone_in_second_pass_count_as_deleted(self):
        fake_client = FakeS3Client(
            [listing(["a.txt"])],
            key_errors={"a.txt": ("NoSuchKey", "The specified key does not exist.")},
        )

        summary = build(fake_client).run("bucket-one")

        self.assertEqual(1, summary.succeeded)
        self.assertEqual(0, summary.failed)

    def test_contract_violation_propagates(self):
        class OversizedDeleter:
            def delete_batch(self, bucket, keys):
                raise BatchTooLargeError(1001, 1000)

        fake_client = FakeS3Client([listing(["a.txt"])])
        orchestrator = DeleteOrchestrator(ListingPager(fake_client), OversizedDeleter())

        with self.assertRaises(BatchTooLargeError):
            orchestrator.run("bucket-one")

    def test_executor_is_bounded_by_max_concurrency(self):
        requested = []

        def executor_factory(workers):
            requested.append(workers)
            return ThreadPoolExecutor(max_workers=workers)

        fake_client = FakeS3Client([listing(["a.txt"])])
        build(fake_client, max_concurrency=3, executor_factory=executor_factory).run("bucket-one")

        self.assertEqual([3], requested)

    def test_prefix_is_passed_to_listing(self):
        fake_client = FakeS3Client([listing(["logs/a.txt"])])

        build(fake_client).run("bucket-one", prefix="logs/")

        self.assertEqual("logs/", fake_client.list_objects_calls[0]["Prefix"])


if __name__ == "__main__":
    unittest.main()
