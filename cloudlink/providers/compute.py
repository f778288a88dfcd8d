"""Brightbox-style compute API.

JSON over REST under /1.0. Creation requests answer 202 Accepted (201 for
cloud IPs), reads answer 200, a missing resource answers 404 with a body
like {"error_name": "missing_resource", "errors": ["..."]}.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Hashable, Optional

from cloudlink.backends import MockBackend
from cloudlink.collection import Collection, Model
from cloudlink.errors import ErrorEntry, ErrorMapper
from cloudlink.executor import decode_json
from cloudlink.models import RequestDescriptor, ResourceRecord, ResponseEnvelope
from cloudlink.service import Service

JSON_HEADERS = {"Content-Type": "application/json"}
NOT_FOUND_CODES = ("missing_resource",)


def compute_errors(response: ResponseEnvelope) -> list[ErrorEntry]:
    body = response.body
    if response.status < 300 or not isinstance(body, dict) or "error_name" not in body:
        return []
    messages = body.get("errors") or [None]
    return [ErrorEntry(code=body["error_name"], message=messages[0])]


class ComputeService(Service):
    """Compute API: images, cloud IPs and load balancers.

    Args:
        backend: Real or mock backend.
        host: API host, e.g. "api.gb1.brightbox.com".
    """

    error_mapper = ErrorMapper(not_found_codes=NOT_FOUND_CODES, error_entries=compute_errors)
    decoder = staticmethod(decode_json)

    @property
    def images(self) -> "Images":
        return Images(self)

    def _json(self, method: str, path: str, options: Optional[dict[str, Any]] = None, expects=200):
        body = None
        if options is not None:
            body = json.dumps({k: v for k, v in options.items() if v is not None}).encode("utf-8")
        return self.request(method, path, headers=JSON_HEADERS, body=body, expects=expects)

    def list_images(self) -> ResponseEnvelope:
        return self._json("GET", "/1.0/images")

    def get_image(self, identifier: str) -> ResponseEnvelope:
        return self._json("GET", f"/1.0/images/{identifier}")

    def create_image(self, **options: Any) -> ResponseEnvelope:
        """Register an image. Answers 202 with the image as body."""
        return self._json("POST", "/1.0/images", options, expects=202)

    def destroy_image(self, identifier: str) -> ResponseEnvelope:
        return self._json("DELETE", f"/1.0/images/{identifier}", expects=202)

    def get_cloud_ip(self, identifier: Optional[str]) -> Optional[ResponseEnvelope]:
        """Look up a cloud IP; None without a request if identifier is empty."""
        if not identifier:
            return None
        return self._json("GET", f"/1.0/cloud_ips/{identifier}")

    def create_cloud_ip(self, **options: Any) -> ResponseEnvelope:
        return self._json("POST", "/1.0/cloud_ips", options, expects=201)

    def create_load_balancer(self, **options: Any) -> ResponseEnvelope:
        """Create a load balancer. Answers 202 with the balancer as body."""
        return self._json("POST", "/1.0/load_balancers", options, expects=202)

    def get_load_balancer(self, identifier: str) -> ResponseEnvelope:
        return self._json("GET", f"/1.0/load_balancers/{identifier}")


class ComputeMock(MockBackend):
    """In-memory compute API."""

    routes = (
        ("GET", r"/1\.0/images", "list_images"),
        ("POST", r"/1\.0/images", "create_image"),
        ("GET", r"/1\.0/images/(?P<identifier>[^/]+)", "get_image"),
        ("DELETE", r"/1\.0/images/(?P<identifier>[^/]+)", "destroy_image"),
        ("GET", r"/1\.0/cloud_ips/(?P<identifier>[^/]+)", "get_cloud_ip"),
        ("POST", r"/1\.0/cloud_ips", "create_cloud_ip"),
        ("POST", r"/1\.0/load_balancers", "create_load_balancer"),
        ("GET", r"/1\.0/load_balancers/(?P<identifier>[^/]+)", "get_load_balancer"),
    )

    def __init__(self, account: Hashable, store=None, clock=None):
        super().__init__(account, store=store, clock=clock)

    def _json(self, status: int, data: Any) -> ResponseEnvelope:
        return self.respond(status, body=json.dumps(data).encode("utf-8"), headers=JSON_HEADERS)

    def _missing(self, identifier: str) -> ResponseEnvelope:
        return self._json(404, {
            "error_name": "missing_resource",
            "errors": [f"Resource with id {identifier} not found"],
        })

    def _create(self, container: str, prefix: str, descriptor: RequestDescriptor, defaults: dict) -> dict:
        options = json.loads(descriptor.body) if descriptor.body else {}
        with self.store.lock(self.account):
            identifier = f"{prefix}-{self.store.next_id(self.account, container):05d}"
            fields = dict(defaults)
            fields.update(options)
            fields.update(id=identifier, created_at=self.now().isoformat())
            self.store.put(
                self.account,
                (container, identifier),
                ResourceRecord(last_modified=self.now(), fields=fields),
            )
        return fields

    def _read(self, container: str, identifier: str) -> ResponseEnvelope:
        record = self.store.get(self.account, (container, identifier))
        if record is None:
            return self._missing(identifier)
        return self._json(200, record.fields)

    def list_images(self, descriptor):
        return self._json(200, [record.fields for _, record in self.store.list(self.account, ("images",))])

    def create_image(self, descriptor):
        defaults = {"name": None, "arch": "x86_64", "status": "available", "public": False}
        return self._json(202, self._create("images", "img", descriptor, defaults))

    def get_image(self, descriptor, identifier):
        return self._read("images", identifier)

    def destroy_image(self, descriptor, identifier):
        with self.store.lock(self.account):
            record = self.store.delete(self.account, ("images", identifier))
        if record is None:
            return self._missing(identifier)
        record.fields["status"] = "deleted"
        return self._json(202, record.fields)

    def get_cloud_ip(self, descriptor, identifier):
        return self._read("cloud_ips", identifier)

    def create_cloud_ip(self, descriptor):
        count = self.store.next_id(self.account, "cloud_ip_addresses")
        defaults = {"status": "unmapped", "public_ip": f"109.107.35.{count % 254 + 1}"}
        return self._json(201, self._create("cloud_ips", "cip", descriptor, defaults))

    def create_load_balancer(self, descriptor):
        defaults = {"status": "creating", "policy": "least-connections", "nodes": [], "listeners": []}
        return self._json(202, self._create("load_balancers", "lba", descriptor, defaults))

    def get_load_balancer(self, descriptor, identifier):
        return self._read("load_balancers", identifier)


@dataclass
class Image(Model):
    """A machine image."""

    id: Optional[str] = None
    name: Optional[str] = None
    arch: Optional[str] = None
    status: Optional[str] = None
    public: bool = False
    attributes: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, data, collection=None) -> "Image":
        return cls(
            id=data.get("id"),
            name=data.get("name"),
            arch=data.get("arch"),
            status=data.get("status"),
            public=bool(data.get("public", False)),
            attributes=dict(data),
            collection=collection,
        )

    def save(self) -> "Image":
        response = self.service.create_image(name=self.name, arch=self.arch, public=self.public)
        self.id = response.body["id"]
        self.status = response.body.get("status")
        return self

    def destroy(self) -> bool:
        self.service.destroy_image(self.id)
        return True


class Images(Collection[Image]):
    model = Image

    def fetch_all(self):
        return self.service.list_images().body or []

    def fetch(self, identity):
        return self.service.get_image(identity).body
