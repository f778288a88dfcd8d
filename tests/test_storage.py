"""Tests for the object storage service, its mock and its models."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from cloudlink.backends import RealBackend
from cloudlink.errors import NotFound, NotModified, PreconditionFailed, ProviderError
from cloudlink.httpdate import format_http_date
from cloudlink.models import ResourceRecord, ResponseEnvelope
from cloudlink.providers.storage import (
    StorageMock,
    StorageService,
    error_document,
    parse_list_bucket,
    quoted_md5,
    storage_errors,
)

from conftest import START, serve


@pytest.fixture
def bucket(storage):
    storage.put_bucket("docs")
    return "docs"


@pytest.fixture
def foo(storage, bucket):
    """foo.txt stored at START, returns its ETag."""
    response = storage.put_object(bucket, "foo.txt", b"hello world", content_type="text/plain")
    return response.headers["ETag"]


class TestStorageBuckets:
    """Bucket requests against the mock."""

    def test_list_buckets(self, storage):
        storage.put_bucket("alpha")
        storage.put_bucket("beta")

        response = storage.get_service()

        assert [b["Name"] for b in response.body] == ["alpha", "beta"]
        assert response.body[0]["CreationDate"] == START

    def test_list_bucket_contents_with_prefix(self, storage, bucket):
        storage.put_object(bucket, "photos/a.jpg", b"a")
        storage.put_object(bucket, "photos/b.jpg", b"bb")
        storage.put_object(bucket, "notes.txt", b"n")

        listing = storage.get_bucket(bucket, prefix="photos/").body

        assert listing["Name"] == "docs"
        assert [entry["Key"] for entry in listing["Contents"]] == ["photos/a.jpg", "photos/b.jpg"]
        assert listing["Contents"][1]["Size"] == 2
        assert listing["Contents"][1]["ETag"] == quoted_md5(b"bb")

    def test_missing_bucket_is_not_found(self, storage):
        with pytest.raises(NotFound) as exc_info:
            storage.get_bucket("nope")

        assert b"NoSuchBucket" in exc_info.value.response.body

    def test_delete_non_empty_bucket_conflicts(self, storage, bucket, foo):
        with pytest.raises(ProviderError) as exc_info:
            storage.delete_bucket(bucket)

        assert exc_info.value.status == 409
        assert exc_info.value.code == "BucketNotEmpty"

    def test_delete_empty_bucket(self, storage, bucket):
        response = storage.delete_bucket(bucket)

        assert response.status == 204
        assert storage.get_service().body == []


class TestStorageObjects:
    """Object requests against the mock."""

    def test_get_object(self, storage, bucket, foo):
        response = storage.get_object(bucket, "foo.txt")

        assert response.status == 200
        assert response.body == b"hello world"
        assert response.headers["Content-Length"] == "11"
        assert response.headers["Content-Type"] == "text/plain"
        assert response.headers["ETag"] == foo == quoted_md5(b"hello world")
        assert response.headers["Last-Modified"] == format_http_date(START)

    def test_head_object_matches_get_without_body(self, storage, bucket, foo):
        get = storage.get_object(bucket, "foo.txt")
        head = storage.head_object(bucket, "foo.txt")

        assert head.status == get.status
        assert dict(head.headers.items()) == dict(get.headers.items())
        assert head.body is None

    def test_missing_key(self, storage, bucket):
        with pytest.raises(NotFound) as exc_info:
            storage.get_object(bucket, "missing.txt")

        assert exc_info.value.status == 404
        assert b"NoSuchKey" in exc_info.value.response.body

    def test_head_missing_key(self, storage, bucket):
        with pytest.raises(NotFound):
            storage.head_object(bucket, "missing.txt")

    def test_repeated_reads_are_stable(self, storage, bucket, foo, clock):
        first = storage.get_object(bucket, "foo.txt")
        clock.advance(60)
        second = storage.get_object(bucket, "foo.txt")

        assert first.headers["ETag"] == second.headers["ETag"]
        assert first.headers["Last-Modified"] == second.headers["Last-Modified"]

    def test_overwrite_updates_metadata(self, storage, bucket, foo, clock):
        clock.advance(60)
        storage.put_object(bucket, "foo.txt", b"changed")

        response = storage.head_object(bucket, "foo.txt")

        assert response.headers["ETag"] != foo
        assert response.headers["Last-Modified"] == format_http_date(START + timedelta(seconds=60))

    def test_delete_object(self, storage, bucket, foo):
        assert storage.delete_object(bucket, "foo.txt").status == 204

        with pytest.raises(NotFound):
            storage.get_object(bucket, "foo.txt")

    def test_delete_missing_object_succeeds(self, storage, bucket):
        assert storage.delete_object(bucket, "never.txt").status == 204

    def test_put_into_missing_bucket(self, storage):
        with pytest.raises(NotFound):
            storage.put_object("nope", "foo.txt", b"x")

    def test_range_is_passed_through_and_ignored(self, storage, bucket, foo):
        response = storage.get_object(bucket, "foo.txt", range="bytes=0-4")

        assert response.body == b"hello world"


class TestStorageConditionalReads:
    """Conditional GET and HEAD against the mock."""

    def test_if_none_match_current_etag(self, storage, bucket, foo):
        with pytest.raises(NotModified) as exc_info:
            storage.get_object(bucket, "foo.txt", if_none_match=foo)

        assert exc_info.value.status == 304

    def test_if_none_match_stale_etag(self, storage, bucket, foo):
        response = storage.get_object(bucket, "foo.txt", if_none_match='"stale"')

        assert response.body == b"hello world"

    def test_if_match_stale_etag(self, storage, bucket, foo):
        with pytest.raises(PreconditionFailed):
            storage.get_object(bucket, "foo.txt", if_match='"stale"')

    def test_if_modified_since_after_write(self, storage, bucket, foo):
        with pytest.raises(NotModified):
            storage.get_object(bucket, "foo.txt", if_modified_since=START + timedelta(days=1))

    def test_if_modified_since_before_write(self, storage, bucket, foo):
        response = storage.get_object(bucket, "foo.txt", if_modified_since=START - timedelta(days=1))

        assert response.status == 200

    def test_if_unmodified_since_before_write(self, storage, bucket, foo):
        with pytest.raises(PreconditionFailed):
            storage.head_object(bucket, "foo.txt", if_unmodified_since=START - timedelta(days=1))

    def test_head_and_get_agree(self, storage, bucket, foo):
        for method in (storage.get_object, storage.head_object):
            with pytest.raises(NotModified):
                method(bucket, "foo.txt", if_none_match=foo)

    def test_wire_string_dates_accepted(self, storage, bucket, foo):
        later = format_http_date(START + timedelta(hours=1))

        with pytest.raises(NotModified):
            storage.get_object(bucket, "foo.txt", if_modified_since=later)


class TestStorageConditionalWrites:
    """Conditional PUT and DELETE leave state untouched on failure."""

    def test_put_if_match_current(self, storage, bucket, foo):
        response = storage.put_object(bucket, "foo.txt", b"v2", if_match=foo)

        assert response.headers["ETag"] == quoted_md5(b"v2")

    def test_put_if_match_stale(self, storage, bucket, foo):
        with pytest.raises(PreconditionFailed):
            storage.put_object(bucket, "foo.txt", b"v2", if_match='"stale"')

        assert storage.get_object(bucket, "foo.txt").body == b"hello world"

    def test_put_if_none_match_wildcard_on_existing(self, storage, bucket, foo):
        with pytest.raises(PreconditionFailed):
            storage.put_object(bucket, "foo.txt", b"v2", if_none_match="*")

        assert storage.get_object(bucket, "foo.txt").headers["ETag"] == foo

    def test_put_if_none_match_wildcard_creates(self, storage, bucket):
        storage.put_object(bucket, "new.txt", b"x", if_none_match="*")

        assert storage.get_object(bucket, "new.txt").body == b"x"

    def test_put_if_match_on_missing_object(self, storage, bucket):
        with pytest.raises(PreconditionFailed):
            storage.put_object(bucket, "new.txt", b"x", if_match='"anything"')

    def test_put_not_modified_condition_becomes_412(self, storage, bucket, foo):
        with pytest.raises(PreconditionFailed):
            storage.put_object(bucket, "foo.txt", b"v2", if_none_match=foo)

    def test_delete_if_match_stale(self, storage, bucket, foo):
        with pytest.raises(PreconditionFailed):
            storage.delete_object(bucket, "foo.txt", if_match='"stale"')

        assert storage.head_object(bucket, "foo.txt").status == 200

    def test_delete_if_match_on_missing_object(self, storage, bucket):
        with pytest.raises(PreconditionFailed):
            storage.delete_object(bucket, "never.txt", if_match='"x"')


class TestStorageAddressing:
    """Virtual-host addressing."""

    @pytest.fixture
    def virtual(self, store, clock):
        backend = StorageMock("AKID", store=store, host="s3.amazonaws.com", addressing_style="virtual", clock=clock)
        return StorageService(backend, "s3.amazonaws.com", addressing_style="virtual")

    def test_locate(self, storage, virtual):
        assert storage.locate("docs", "a/b.txt") == ("s3.amazonaws.com", "/docs/a/b.txt")
        assert storage.locate("docs") == ("s3.amazonaws.com", "/docs")
        assert virtual.locate("docs", "a/b.txt") == ("docs.s3.amazonaws.com", "/a/b.txt")
        assert virtual.locate("docs") == ("docs.s3.amazonaws.com", "/")

    def test_virtual_and_path_share_state(self, storage, virtual):
        virtual.put_bucket("docs")
        virtual.put_object("docs", "a/b.txt", b"data")

        assert storage.get_object("docs", "a/b.txt").body == b"data"
        assert [entry["Key"] for entry in virtual.get_bucket("docs").body["Contents"]] == ["a/b.txt"]

    def test_unknown_addressing_style(self, storage):
        with pytest.raises(ValueError):
            StorageService(storage.backend, "s3.amazonaws.com", addressing_style="sideways")


class TestStorageParity:
    """The real backend, served by the same simulated provider, answers alike."""

    @pytest.fixture
    def real(self, storage):
        backend = RealBackend(transport=httpx.MockTransport(serve(storage.backend)))
        return StorageService(backend, "s3.amazonaws.com")

    @pytest.mark.parametrize("options,expected", [
        ({}, None),
        ({"if_none_match": "CURRENT"}, NotModified),
        ({"if_match": '"stale"'}, PreconditionFailed),
        ({"if_modified_since": START + timedelta(days=1)}, NotModified),
        ({"if_unmodified_since": START - timedelta(days=1)}, PreconditionFailed),
        ({"if_match": "CURRENT", "if_none_match": '"stale"'}, None),
    ])
    def test_conditional_reads(self, storage, real, bucket, foo, options, expected):
        options = {k: (foo if v == "CURRENT" else v) for k, v in options.items()}

        for service in (storage, real):
            for method in (service.get_object, service.head_object):
                if expected is None:
                    assert method(bucket, "foo.txt", **options).status == 200
                else:
                    with pytest.raises(expected):
                        method(bucket, "foo.txt", **options)

    def test_same_headers(self, storage, real, bucket, foo):
        mock_response = storage.head_object(bucket, "foo.txt")
        real_response = real.head_object(bucket, "foo.txt")

        for name in ("ETag", "Last-Modified", "Content-Type", "Content-Length"):
            assert real_response.headers[name] == mock_response.headers[name]
        assert real_response.body is None

    def test_real_not_found_has_body(self, real, bucket):
        with pytest.raises(NotFound) as exc_info:
            real.get_object(bucket, "missing.txt")

        assert b"NoSuchKey" in exc_info.value.response.body

    def test_real_writes_visible_to_mock(self, storage, real, bucket):
        real.put_object(bucket, "dir/with space.txt", b"x")

        assert storage.get_object(bucket, "dir/with space.txt").body == b"x"


class TestStorageModels:
    """Directories and files."""

    def test_directories(self, storage):
        created = storage.directories.create("docs")

        assert [d.key for d in storage.directories.all()] == ["docs"]
        assert storage.directories.get("docs").key == created.key
        assert storage.directories.get("missing") is None

    def test_files(self, storage, bucket):
        directory = storage.directories.get(bucket)
        file = directory.files.create("a.txt", b"abc", content_type="text/plain")

        assert file.etag == quoted_md5(b"abc")
        assert [f.key for f in directory.files.all()] == ["a.txt"]

        fetched = directory.files.get("a.txt")
        assert fetched.body == b"abc"
        assert fetched.size == 3
        assert fetched.last_modified == START
        assert fetched.content_type == "text/plain"

    def test_files_head_and_missing(self, storage, bucket, foo):
        files = storage.directories.get(bucket).files

        head = files.head("foo.txt")
        assert head.etag == foo
        assert head.body is None
        assert files.head("missing.txt") is None
        assert files.get("missing.txt") is None

    def test_file_destroy_and_directory_destroy(self, storage, bucket, foo):
        directory = storage.directories.get(bucket)
        file = directory.files.get("foo.txt")

        assert file.destroy() is True
        assert directory.destroy() is True
        assert storage.directories.get(bucket) is None

    def test_conditional_save(self, storage, bucket, foo):
        file = storage.directories.get(bucket).files.get("foo.txt")
        file.body = b"v2"

        with pytest.raises(PreconditionFailed):
            file.save(if_match='"stale"')
        file.save(if_match=foo)

        assert file.etag == quoted_md5(b"v2")

    def test_reload(self, storage, bucket, foo):
        file = storage.directories.get(bucket).files.get("foo.txt")
        storage.delete_object(bucket, "foo.txt")

        assert file.reload() is None


class TestStorageXml:
    """Listing and error document parsing."""

    def test_storage_errors(self):
        response = ResponseEnvelope(status=404, body=error_document("NoSuchKey", "gone"))

        entries = storage_errors(response)

        assert entries[0].code == "NoSuchKey"
        assert entries[0].message == "gone"

    def test_storage_errors_ignores_success_and_non_xml(self):
        assert storage_errors(ResponseEnvelope(status=200, body=error_document("X", "y"))) == []
        assert storage_errors(ResponseEnvelope(status=500, body=b"not xml")) == []
        assert storage_errors(ResponseEnvelope(status=500, body=b"")) == []

    def test_parse_list_bucket_without_namespace(self):
        body = (
            b"<ListBucketResult><Name>b</Name><Prefix></Prefix>"
            b"<Contents><Key>k</Key><Size>4</Size><ETag>\"e\"</ETag>"
            b"<LastModified>2024-01-01T12:00:00.000Z</LastModified></Contents>"
            b"</ListBucketResult>"
        )

        listing = parse_list_bucket(body)

        assert listing["Name"] == "b"
        assert listing["Contents"] == [
            {"Key": "k", "ETag": '"e"', "Size": 4, "LastModified": START},
        ]


class TestStoredObjectScenario:
    """foo.txt with a known ETag and Last-Modified, seeded into the store."""

    @pytest.fixture
    def seeded(self, store, storage):
        storage.put_bucket("docs")
        store.put("AKID", ("buckets", "docs", "objects", "foo.txt"), ResourceRecord(
            etag='"abc123"',
            last_modified=datetime(2024, 1, 1, tzinfo=timezone.utc),
            size=5,
            content_type="text/plain",
            body=b"hello",
        ))
        return storage

    def test_if_none_match_current(self, seeded):
        with pytest.raises(NotModified) as exc_info:
            seeded.get_object("docs", "foo.txt", if_none_match='"abc123"')

        assert exc_info.value.status == 304
        assert not exc_info.value.response.body

    def test_if_match_other(self, seeded):
        with pytest.raises(PreconditionFailed) as exc_info:
            seeded.get_object("docs", "foo.txt", if_match='"zzz"')

        assert exc_info.value.status == 412

    def test_unconditional(self, seeded):
        response = seeded.get_object("docs", "foo.txt")

        assert response.status == 200
        assert response.body == b"hello"
        assert response.headers["ETag"] == '"abc123"'
        assert response.headers["Last-Modified"] == "Mon, 01 Jan 2024 00:00:00 +0000"

    def test_missing_key_under_existing_bucket(self, seeded):
        with pytest.raises(NotFound):
            seeded.get_object("docs", "bar.txt")

    def test_account_reset_leaves_other_accounts(self, seeded, store):
        store.put("OTHER", ("buckets", "docs"), ResourceRecord())

        seeded.reset_data()

        with pytest.raises(NotFound):
            seeded.get_object("docs", "foo.txt")
        assert store.get("OTHER", ("buckets", "docs")) is not None
