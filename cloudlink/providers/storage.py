"""S3-style object storage.

Request methods follow the S3 REST API: buckets are listed and manipulated
at the bucket path, objects at the object path, with path-style or
virtual-host addressing. Listings come back as XML; errors as an XML
<Error> document whose Code drives classification.

StorageMock answers the same requests from a MockStore, applying the
conditional rules to both reads and writes, so a given header combination
and store state produce the same status as a real provider.
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Hashable, Optional
from xml.etree import ElementTree

from cloudlink.backends import MockBackend
from cloudlink.collection import Collection, Model, absent_on_not_found
from cloudlink.conditional import Condition, evaluate_record, evaluate_write
from cloudlink.errors import ErrorEntry, ErrorMapper
from cloudlink.httpdate import format_http_date, parse_http_date
from cloudlink.models import RequestDescriptor, ResourceRecord, ResponseEnvelope
from cloudlink.service import Service

S3_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"
NOT_FOUND_CODES = ("NoSuchBucket", "NoSuchKey")
DEFAULT_CONTENT_TYPE = "application/octet-stream"

PATH_STYLE = "path"
VIRTUAL_STYLE = "virtual"


# === XML ===

def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _children(element: ElementTree.Element) -> dict[str, Optional[str]]:
    return {_local(child.tag): child.text for child in element}


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return parse_http_date(datetime.fromisoformat(value.replace("Z", "+00:00")))


def _format_iso(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def parse_list_all_my_buckets(body: bytes) -> list[dict[str, Any]]:
    """Parse a ListAllMyBucketsResult document."""
    root = ElementTree.fromstring(body)
    buckets = []
    for element in root.iter():
        if _local(element.tag) == "Bucket":
            fields = _children(element)
            buckets.append({
                "Name": fields.get("Name"),
                "CreationDate": _parse_iso(fields.get("CreationDate")),
            })
    return buckets


def parse_list_bucket(body: bytes) -> dict[str, Any]:
    """Parse a ListBucketResult document."""
    root = ElementTree.fromstring(body)
    result: dict[str, Any] = {"Name": None, "Prefix": None, "Contents": []}
    for element in root:
        name = _local(element.tag)
        if name == "Contents":
            fields = _children(element)
            result["Contents"].append({
                "Key": fields.get("Key"),
                "ETag": fields.get("ETag"),
                "Size": int(fields.get("Size") or 0),
                "LastModified": _parse_iso(fields.get("LastModified")),
            })
        elif name in ("Name", "Prefix"):
            result[name] = element.text
    return result


def storage_errors(response: ResponseEnvelope) -> list[ErrorEntry]:
    """The <Error> entry of a failed response, if its body carries one."""
    if response.status < 300 or not isinstance(response.body, bytes) or not response.body:
        return []
    try:
        root = ElementTree.fromstring(response.body)
    except ElementTree.ParseError:
        return []
    if _local(root.tag) != "Error":
        return []
    fields = _children(root)
    return [ErrorEntry(code=fields.get("Code"), message=fields.get("Message"))]


def _xml_document(root: ElementTree.Element) -> bytes:
    return ElementTree.tostring(root, encoding="utf-8", xml_declaration=True)


def _element(parent: ElementTree.Element, tag: str, text: Any = None) -> ElementTree.Element:
    element = ElementTree.SubElement(parent, tag)
    if text is not None:
        element.text = str(text)
    return element


def error_document(code: str, message: str) -> bytes:
    root = ElementTree.Element("Error")
    _element(root, "Code", code)
    _element(root, "Message", message)
    return _xml_document(root)


# === Service ===

class StorageService(Service):
    """S3-compatible object storage.

    Args:
        backend: Real or mock backend.
        host: Service endpoint host, e.g. "s3.amazonaws.com".
        addressing_style: "path" for host/bucket/key, "virtual" for
            bucket.host/key.
    """

    error_mapper = ErrorMapper(not_found_codes=NOT_FOUND_CODES, error_entries=storage_errors)

    def __init__(self, backend, host: str, addressing_style: str = PATH_STYLE):
        super().__init__(backend, host)
        if addressing_style not in (PATH_STYLE, VIRTUAL_STYLE):
            raise ValueError(f"Unknown addressing style: {addressing_style}")
        self.addressing_style = addressing_style

    def locate(self, bucket_name: str, object_name: Optional[str] = None) -> tuple[str, str]:
        """Host and path for a bucket, or for an object within it."""
        if self.addressing_style == VIRTUAL_STYLE:
            return f"{bucket_name}.{self.host}", f"/{object_name or ''}"
        if object_name is None:
            return self.host, f"/{bucket_name}"
        return self.host, f"/{bucket_name}/{object_name}"

    @property
    def directories(self) -> "Directories":
        return Directories(self)

    def get_service(self) -> ResponseEnvelope:
        """List buckets. body: list of {"Name", "CreationDate"}."""
        return self.request("GET", "/", parser=parse_list_all_my_buckets)

    def put_bucket(self, bucket_name: str) -> ResponseEnvelope:
        host, path = self.locate(bucket_name)
        return self.request("PUT", path, host=host)

    def get_bucket(self, bucket_name: str, prefix: Optional[str] = None) -> ResponseEnvelope:
        """List a bucket. body: {"Name", "Prefix", "Contents": [...]}."""
        host, path = self.locate(bucket_name)
        return self.request(
            "GET",
            path,
            host=host,
            query={"prefix": prefix},
            parser=parse_list_bucket,
        )

    def delete_bucket(self, bucket_name: str) -> ResponseEnvelope:
        host, path = self.locate(bucket_name)
        return self.request("DELETE", path, host=host, expects=204)

    def put_object(
        self,
        bucket_name: str,
        object_name: str,
        data: bytes,
        content_type: Optional[str] = None,
        **options: Any,
    ) -> ResponseEnvelope:
        """Create or replace an object.

        Options If-Match / If-None-Match / If-Unmodified-Since make the write
        conditional; a failed condition raises PreconditionFailed and leaves
        the object as it was.
        """
        host, path = self.locate(bucket_name, object_name)
        return self.request(
            "PUT",
            path,
            host=host,
            headers={"Content-Type": content_type or DEFAULT_CONTENT_TYPE},
            options=options,
            body=data,
        )

    def get_object(self, bucket_name: str, object_name: str, **options: Any) -> ResponseEnvelope:
        """Get an object.

        Args:
            bucket_name: Bucket to read from.
            object_name: Object to read.
            **options: if_match, if_none_match, if_modified_since,
                if_unmodified_since (datetime or wire string), range.

        Returns:
            Envelope with the object body and Content-Length, Content-Type,
            ETag and Last-Modified headers.

        Raises:
            NotFound: Missing bucket or object.
            NotModified: If-None-Match / If-Modified-Since short-circuit.
            PreconditionFailed: If-Match / If-Unmodified-Since failed.
        """
        host, path = self.locate(bucket_name, object_name)
        return self.request("GET", path, host=host, options=options, expects=(200, 206))

    def head_object(self, bucket_name: str, object_name: str, **options: Any) -> ResponseEnvelope:
        """get_object without the body. Same options, same errors."""
        host, path = self.locate(bucket_name, object_name)
        return self.request("HEAD", path, host=host, options=options, expects=(200, 206))

    def delete_object(self, bucket_name: str, object_name: str, **options: Any) -> ResponseEnvelope:
        host, path = self.locate(bucket_name, object_name)
        return self.request("DELETE", path, host=host, options=options, expects=204)


# === Mock ===

def quoted_md5(data: bytes) -> str:
    return f'"{hashlib.md5(data).hexdigest()}"'


def object_headers(record: ResourceRecord) -> dict[str, str]:
    return {
        "Content-Length": str(record.size),
        "Content-Type": record.content_type or DEFAULT_CONTENT_TYPE,
        "ETag": record.etag or "",
        "Last-Modified": format_http_date(record.last_modified),
    }


class StorageMock(MockBackend):
    """In-memory S3.

    Args:
        account: Partition key (the access key id).
        store: Shared MockStore.
        host: Service endpoint host, needed to route virtual-host requests.
        addressing_style: Must match the service's.
        clock: Time source for Last-Modified.
    """

    routes = (
        ("GET", r"/", "list_buckets"),
        ("PUT", r"/(?P<bucket>[^/]+)/?", "create_bucket"),
        ("GET", r"/(?P<bucket>[^/]+)/?", "list_bucket"),
        ("DELETE", r"/(?P<bucket>[^/]+)/?", "remove_bucket"),
        ("PUT", r"/(?P<bucket>[^/]+)/(?P<key>.+)", "store_object"),
        ("GET", r"/(?P<bucket>[^/]+)/(?P<key>.+)", "read_object"),
        ("DELETE", r"/(?P<bucket>[^/]+)/(?P<key>.+)", "remove_object"),
    )

    def __init__(
        self,
        account: Hashable,
        store=None,
        host: str = "s3.amazonaws.com",
        addressing_style: str = PATH_STYLE,
        clock=None,
    ):
        super().__init__(account, store=store, clock=clock)
        self.host = host
        self.addressing_style = addressing_style

    def route_path(self, descriptor: RequestDescriptor) -> str:
        suffix = f".{self.host}"
        if self.addressing_style == VIRTUAL_STYLE and descriptor.host.endswith(suffix):
            bucket_name = descriptor.host[: -len(suffix)]
            key = descriptor.path.lstrip("/")
            return f"/{bucket_name}/{key}" if key else f"/{bucket_name}"
        return descriptor.path or "/"

    def _not_found(self, code: str, message: str) -> ResponseEnvelope:
        return self.respond(
            404,
            body=error_document(code, message),
            headers={"Content-Type": "application/xml"},
        )

    def _bucket(self, bucket_name: str) -> Optional[ResourceRecord]:
        return self.store.get(self.account, ("buckets", bucket_name))

    def list_buckets(self, descriptor: RequestDescriptor) -> ResponseEnvelope:
        root = ElementTree.Element("ListAllMyBucketsResult", xmlns=S3_NAMESPACE)
        buckets = _element(root, "Buckets")
        for name, record in self.store.list(self.account, ("buckets",)):
            bucket = _element(buckets, "Bucket")
            _element(bucket, "Name", name)
            _element(bucket, "CreationDate", _format_iso(record.last_modified))
        return self.respond(200, body=_xml_document(root), headers={"Content-Type": "application/xml"})

    def create_bucket(self, descriptor: RequestDescriptor, bucket: str) -> ResponseEnvelope:
        with self.store.lock(self.account):
            if self._bucket(bucket) is None:
                self.store.put(
                    self.account,
                    ("buckets", bucket),
                    ResourceRecord(last_modified=self.now(), fields={"Name": bucket}),
                )
        return self.respond(200)

    def list_bucket(self, descriptor: RequestDescriptor, bucket: str) -> ResponseEnvelope:
        if self._bucket(bucket) is None:
            return self._not_found("NoSuchBucket", "The specified bucket does not exist")

        prefix = descriptor.params.get("prefix", "")
        root = ElementTree.Element("ListBucketResult", xmlns=S3_NAMESPACE)
        _element(root, "Name", bucket)
        _element(root, "Prefix", prefix)
        objects = self.store.list(self.account, ("buckets", bucket, "objects"))
        for key, record in sorted(objects, key=lambda item: item[0]):
            if not key.startswith(prefix):
                continue
            contents = _element(root, "Contents")
            _element(contents, "Key", key)
            _element(contents, "LastModified", _format_iso(record.last_modified))
            _element(contents, "ETag", record.etag)
            _element(contents, "Size", record.size)
        return self.respond(200, body=_xml_document(root), headers={"Content-Type": "application/xml"})

    def remove_bucket(self, descriptor: RequestDescriptor, bucket: str) -> ResponseEnvelope:
        with self.store.lock(self.account):
            if self._bucket(bucket) is None:
                return self._not_found("NoSuchBucket", "The specified bucket does not exist")
            if self.store.list(self.account, ("buckets", bucket, "objects")):
                return self.respond(
                    409,
                    body=error_document("BucketNotEmpty", "The bucket you tried to delete is not empty"),
                    headers={"Content-Type": "application/xml"},
                )
            self.store.delete(self.account, ("buckets", bucket))
        return self.respond(204)

    def store_object(self, descriptor: RequestDescriptor, bucket: str, key: str) -> ResponseEnvelope:
        data = descriptor.body or b""
        headers = descriptor.headers
        path = ("buckets", bucket, "objects", key)
        with self.store.lock(self.account):
            if self._bucket(bucket) is None:
                return self._not_found("NoSuchBucket", "The specified bucket does not exist")
            if evaluate_write(self.store.get(self.account, path), headers) is not Condition.PROCEED:
                return self.respond(412)

            record = ResourceRecord(
                etag=quoted_md5(data),
                last_modified=self.now(),
                size=len(data),
                content_type=headers.get("Content-Type", DEFAULT_CONTENT_TYPE),
                body=data,
            )
            self.store.put(self.account, path, record)
        return self.respond(200, headers={"ETag": record.etag})

    def read_object(self, descriptor: RequestDescriptor, bucket: str, key: str) -> ResponseEnvelope:
        with self.store.lock(self.account):
            if self._bucket(bucket) is None:
                return self._not_found("NoSuchBucket", "The specified bucket does not exist")
            record = self.store.get(self.account, ("buckets", bucket, "objects", key))
        if record is None:
            return self._not_found("NoSuchKey", "The specified key does not exist.")

        condition = evaluate_record(record, descriptor.headers)
        if condition is not Condition.PROCEED:
            return self.respond(condition.status)
        return self.respond(200, body=record.body, headers=object_headers(record))

    def remove_object(self, descriptor: RequestDescriptor, bucket: str, key: str) -> ResponseEnvelope:
        path = ("buckets", bucket, "objects", key)
        with self.store.lock(self.account):
            if self._bucket(bucket) is None:
                return self._not_found("NoSuchBucket", "The specified bucket does not exist")
            if evaluate_write(self.store.get(self.account, path), descriptor.headers) is not Condition.PROCEED:
                return self.respond(412)
            self.store.delete(self.account, path)
        return self.respond(204)


# === Models ===

@dataclass
class Directory(Model):
    """A bucket."""

    identity = "key"

    key: str
    creation_date: Optional[datetime] = None

    @classmethod
    def from_payload(cls, data, collection=None) -> "Directory":
        return cls(key=data["Name"], creation_date=data.get("CreationDate"), collection=collection)

    @property
    def files(self) -> "Files":
        return Files(self.service, self)

    def save(self) -> "Directory":
        self.service.put_bucket(self.key)
        return self

    def destroy(self) -> bool:
        self.service.delete_bucket(self.key)
        return True


class Directories(Collection[Directory]):
    model = Directory

    def fetch_all(self):
        return self.service.get_service().body or []

    def fetch(self, identity):
        return self.service.get_bucket(identity).body

    def create(self, key: str) -> Directory:
        return Directory(key=key, collection=self).save()


@dataclass
class File(Model):
    """An object within a bucket."""

    identity = "key"

    key: str
    etag: Optional[str] = None
    size: int = 0
    last_modified: Optional[datetime] = None
    content_type: Optional[str] = None
    body: Optional[bytes] = None

    @classmethod
    def from_payload(cls, data, collection=None) -> "File":
        return cls(
            key=data["Key"],
            etag=data.get("ETag"),
            size=int(data.get("Size") or 0),
            last_modified=data.get("LastModified"),
            content_type=data.get("ContentType"),
            body=data.get("Body"),
            collection=collection,
        )

    @property
    def directory(self) -> "Directory":
        return self.collection.directory

    def save(self, **options: Any) -> "File":
        """Upload body; options make the write conditional."""
        response = self.service.put_object(
            self.directory.key,
            self.key,
            self.body or b"",
            content_type=self.content_type,
            **options,
        )
        self.etag = response.headers.get("ETag")
        self.size = len(self.body or b"")
        return self

    def destroy(self, **options: Any) -> bool:
        self.service.delete_object(self.directory.key, self.key, **options)
        return True


def _file_payload(key: str, response: ResponseEnvelope) -> dict[str, Any]:
    headers = response.headers
    return {
        "Key": key,
        "ETag": headers.get("ETag"),
        "Size": headers.get("Content-Length"),
        "LastModified": parse_http_date(headers.get("Last-Modified")),
        "ContentType": headers.get("Content-Type"),
        "Body": response.body,
    }


class Files(Collection[File]):
    """Objects in one bucket."""

    model = File

    def __init__(self, service, directory: Directory):
        super().__init__(service)
        self.directory = directory

    def fetch_all(self):
        return self.service.get_bucket(self.directory.key).body["Contents"]

    def fetch(self, identity):
        return _file_payload(identity, self.service.get_object(self.directory.key, identity))

    def head(self, key: str) -> Optional[File]:
        """Metadata only; None if the object does not exist."""
        response = absent_on_not_found(lambda: self.service.head_object(self.directory.key, key))
        if response is None:
            return None
        return self.new(_file_payload(key, response))

    def create(self, key: str, body: bytes, content_type: Optional[str] = None, **options: Any) -> File:
        return File(key=key, body=body, content_type=content_type, collection=self).save(**options)
