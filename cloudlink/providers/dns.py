"""Linode-style DNS.

Every request is a GET to one endpoint, with the operation in the
api_action query parameter and the API key in api_key. Responses are JSON:

    {"ACTION": "domain.list", "ERRORARRAY": [...], "DATA": ...}

A provider error can arrive with status 200; the first ERRORARRAY entry
decides the error, and ERRORCODE 5 means the object was not found.
"""

import json
from dataclasses import dataclass
from typing import Any, Hashable, Optional

from cloudlink.backends import MockBackend
from cloudlink.collection import Collection, Model
from cloudlink.errors import ErrorEntry, ErrorMapper, MockNotImplemented
from cloudlink.executor import decode_json
from cloudlink.models import RequestDescriptor, ResourceRecord, ResponseEnvelope
from cloudlink.service import Service

NOT_FOUND_CODE = 5
DEFAULT_HOST = "api.linode.com"


def linode_errors(response: ResponseEnvelope) -> list[ErrorEntry]:
    if not isinstance(response.body, dict):
        return []
    return [
        ErrorEntry(code=entry.get("ERRORCODE"), message=entry.get("ERRORMESSAGE"))
        for entry in response.body.get("ERRORARRAY") or []
    ]


class DnsService(Service):
    """Linode DNS manager API.

    Args:
        backend: Real or mock backend.
        host: API host.
        api_key: Linode API key; also the mock partition key.
    """

    error_mapper = ErrorMapper(
        not_found_codes=(NOT_FOUND_CODE,),
        error_entries=linode_errors,
        errors_on_success=True,
    )
    decoder = staticmethod(decode_json)

    def __init__(self, backend, host: str = DEFAULT_HOST, api_key: str = ""):
        super().__init__(backend, host)
        self.api_key = api_key

    @property
    def zones(self) -> "Zones":
        return Zones(self)

    def api(self, action: str, **params: Any) -> ResponseEnvelope:
        """Call one API action."""
        query = {"api_key": self.api_key, "api_action": action}
        query.update(params)
        return self.request("GET", "/", query=query)

    def domain_list(self, domain_id: Optional[int] = None) -> ResponseEnvelope:
        """List domains, or only domain_id. body["DATA"]: list of domains."""
        return self.api("domain.list", DomainID=domain_id)

    def domain_create(self, domain: str, type: str, options: Optional[dict[str, Any]] = None) -> ResponseEnvelope:
        """Create a domain. body["DATA"]: {"DomainID"}.

        Args:
            domain: Zone name, e.g. "example.com".
            type: "master" or "slave".
            options: Extra API fields such as SOA_Email or TTL_sec.
        """
        return self.api("domain.create", Domain=domain, Type=type, **(options or {}))

    def domain_update(self, domain_id: int, options: Optional[dict[str, Any]] = None) -> ResponseEnvelope:
        return self.api("domain.update", DomainID=domain_id, **(options or {}))

    def domain_delete(self, domain_id: int) -> ResponseEnvelope:
        return self.api("domain.delete", DomainID=domain_id)

    def domain_resource_list(self, domain_id: int, resource_id: Optional[int] = None) -> ResponseEnvelope:
        return self.api("domain.resource.list", DomainID=domain_id, ResourceID=resource_id)

    def domain_resource_create(
        self,
        domain_id: int,
        type: str,
        options: Optional[dict[str, Any]] = None,
    ) -> ResponseEnvelope:
        """Create a record. body["DATA"]: {"ResourceID"}."""
        return self.api("domain.resource.create", DomainID=domain_id, Type=type, **(options or {}))

    def domain_resource_update(
        self,
        domain_id: int,
        resource_id: int,
        options: Optional[dict[str, Any]] = None,
    ) -> ResponseEnvelope:
        return self.api(
            "domain.resource.update",
            DomainID=domain_id,
            ResourceID=resource_id,
            **(options or {}),
        )

    def domain_resource_delete(self, domain_id: int, resource_id: int) -> ResponseEnvelope:
        return self.api("domain.resource.delete", DomainID=domain_id, ResourceID=resource_id)


# === Mock ===

# API parameter name -> stored field name
DOMAIN_FIELDS = {
    "Domain": "DOMAIN",
    "Type": "TYPE",
    "SOA_Email": "SOA_EMAIL",
    "TTL_sec": "TTL_SEC",
    "Description": "DESCRIPTION",
    "Status": "STATUS",
}

RESOURCE_FIELDS = {
    "Type": "TYPE",
    "Name": "NAME",
    "Target": "TARGET",
    "Priority": "PRIORITY",
    "TTL_sec": "TTL_SEC",
}

INTEGER_FIELDS = ("TTL_SEC", "STATUS", "PRIORITY")


def _apply(fields: dict[str, Any], params: dict[str, str], names: dict[str, str]) -> None:
    for param, field_name in names.items():
        if param in params:
            value: Any = params[param]
            if field_name in INTEGER_FIELDS:
                value = int(value)
            fields[field_name] = value


def _int_param(params: dict[str, str], name: str) -> Optional[int]:
    value = params.get(name)
    return int(value) if value is not None else None


class DnsMock(MockBackend):
    """In-memory Linode DNS, partitioned by API key."""

    routes = (("GET", r"/", "api"),)

    actions = {
        "domain.list": "domain_list",
        "domain.create": "domain_create",
        "domain.update": "domain_update",
        "domain.delete": "domain_delete",
        "domain.resource.list": "domain_resource_list",
        "domain.resource.create": "domain_resource_create",
        "domain.resource.update": "domain_resource_update",
        "domain.resource.delete": "domain_resource_delete",
    }

    def __init__(self, account: Hashable, store=None, clock=None):
        super().__init__(account, store=store, clock=clock)

    def api(self, descriptor: RequestDescriptor) -> ResponseEnvelope:
        params = descriptor.params
        action = params.get("api_action", "")
        handler_name = self.actions.get(action)
        if handler_name is None:
            raise MockNotImplemented(f"DnsMock does not implement {action!r}")

        with self.store.lock(self.account):
            data = getattr(self, handler_name)(params)

        if data is None:
            errors = [{"ERRORCODE": NOT_FOUND_CODE, "ERRORMESSAGE": "Object not found"}]
            data = {}
        else:
            errors = []
        payload = {"ACTION": action, "ERRORARRAY": errors, "DATA": data}
        return self.respond(
            200,
            body=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )

    def _domain(self, domain_id: Optional[int]) -> Optional[ResourceRecord]:
        if domain_id is None:
            return None
        return self.store.get(self.account, ("domains", domain_id))

    # Handlers return the DATA value, or None for "object not found"

    def domain_list(self, params):
        domain_id = _int_param(params, "DomainID")
        if domain_id is None:
            return [record.fields for _, record in self.store.list(self.account, ("domains",))]
        domain = self._domain(domain_id)
        return [domain.fields] if domain else None

    def domain_create(self, params):
        domain_id = self.store.next_id(self.account, "domains")
        fields = {"DOMAINID": domain_id, "STATUS": 1, "TTL_SEC": 0, "SOA_EMAIL": "", "DESCRIPTION": ""}
        _apply(fields, params, DOMAIN_FIELDS)
        self.store.put(self.account, ("domains", domain_id), ResourceRecord(last_modified=self.now(), fields=fields))
        return {"DomainID": domain_id}

    def domain_update(self, params):
        domain = self._domain(_int_param(params, "DomainID"))
        if domain is None:
            return None
        _apply(domain.fields, params, DOMAIN_FIELDS)
        domain.last_modified = self.now()
        return {"DomainID": domain.fields["DOMAINID"]}

    def domain_delete(self, params):
        domain_id = _int_param(params, "DomainID")
        if self._domain(domain_id) is None:
            return None
        self.store.delete(self.account, ("domains", domain_id))
        return {"DomainID": domain_id}

    def domain_resource_list(self, params):
        domain_id = _int_param(params, "DomainID")
        if self._domain(domain_id) is None:
            return None
        resource_id = _int_param(params, "ResourceID")
        if resource_id is None:
            resources = self.store.list(self.account, ("domains", domain_id, "resources"))
            return [record.fields for _, record in resources]
        resource = self.store.get(self.account, ("domains", domain_id, "resources", resource_id))
        return [resource.fields] if resource else None

    def domain_resource_create(self, params):
        domain_id = _int_param(params, "DomainID")
        if self._domain(domain_id) is None:
            return None
        resource_id = self.store.next_id(self.account, "resources")
        fields = {
            "RESOURCEID": resource_id,
            "DOMAINID": domain_id,
            "NAME": "",
            "TARGET": "",
            "PRIORITY": 10,
            "TTL_SEC": 0,
        }
        _apply(fields, params, RESOURCE_FIELDS)
        self.store.put(
            self.account,
            ("domains", domain_id, "resources", resource_id),
            ResourceRecord(last_modified=self.now(), fields=fields),
        )
        return {"ResourceID": resource_id}

    def domain_resource_update(self, params):
        domain_id = _int_param(params, "DomainID")
        resource_id = _int_param(params, "ResourceID")
        if domain_id is None or resource_id is None:
            return None
        resource = self.store.get(self.account, ("domains", domain_id, "resources", resource_id))
        if resource is None:
            return None
        _apply(resource.fields, params, RESOURCE_FIELDS)
        resource.last_modified = self.now()
        return {"ResourceID": resource_id}

    def domain_resource_delete(self, params):
        domain_id = _int_param(params, "DomainID")
        resource_id = _int_param(params, "ResourceID")
        if domain_id is None or resource_id is None:
            return None
        removed = self.store.delete(self.account, ("domains", domain_id, "resources", resource_id))
        if removed is None:
            return None
        return {"ResourceID": resource_id}


# === Models ===

@dataclass
class Zone(Model):
    """A DNS zone (Linode domain)."""

    id: Optional[int] = None
    domain: Optional[str] = None
    type: str = "master"
    email: Optional[str] = None
    ttl: int = 0

    @classmethod
    def from_payload(cls, data, collection=None) -> "Zone":
        return cls(
            id=data.get("DOMAINID"),
            domain=data.get("DOMAIN"),
            type=data.get("TYPE", "master"),
            email=data.get("SOA_EMAIL"),
            ttl=int(data.get("TTL_SEC") or 0),
            collection=collection,
        )

    @property
    def records(self) -> "Records":
        return Records(self.service, self)

    def save(self) -> "Zone":
        options = {"SOA_Email": self.email, "TTL_sec": self.ttl}
        if self.id is None:
            response = self.service.domain_create(self.domain, self.type, options)
            self.id = response.body["DATA"]["DomainID"]
        else:
            options.update(Domain=self.domain, Type=self.type)
            self.service.domain_update(self.id, options)
        return self

    def destroy(self) -> bool:
        self.service.domain_delete(self.id)
        return True


class Zones(Collection[Zone]):
    model = Zone

    def fetch_all(self):
        return self.service.domain_list().body["DATA"]

    def fetch(self, identity):
        return self.service.domain_list(identity).body["DATA"][0]

    def create(self, domain: str, email: Optional[str] = None, type: str = "master", ttl: int = 0) -> Zone:
        return Zone(domain=domain, email=email, type=type, ttl=ttl, collection=self).save()


@dataclass
class Record(Model):
    """A resource record within a zone."""

    id: Optional[int] = None
    name: str = ""
    type: str = "A"
    value: str = ""
    priority: int = 10
    ttl: int = 0

    @classmethod
    def from_payload(cls, data, collection=None) -> "Record":
        return cls(
            id=data.get("RESOURCEID"),
            name=data.get("NAME", ""),
            type=data.get("TYPE", "A"),
            value=data.get("TARGET", ""),
            priority=int(data.get("PRIORITY") or 0),
            ttl=int(data.get("TTL_SEC") or 0),
            collection=collection,
        )

    @property
    def zone(self) -> Zone:
        return self.collection.zone

    def save(self) -> "Record":
        options = {
            "Name": self.name,
            "Target": self.value,
            "Priority": self.priority,
            "TTL_sec": self.ttl,
        }
        if self.id is None:
            response = self.service.domain_resource_create(self.zone.id, self.type, options)
            self.id = response.body["DATA"]["ResourceID"]
        else:
            options["Type"] = self.type
            self.service.domain_resource_update(self.zone.id, self.id, options)
        return self

    def destroy(self) -> bool:
        self.service.domain_resource_delete(self.zone.id, self.id)
        return True


class Records(Collection[Record]):
    """Records of one zone."""

    model = Record

    def __init__(self, service, zone: Zone):
        super().__init__(service)
        self.zone = zone

    def fetch_all(self):
        return self.service.domain_resource_list(self.zone.id).body["DATA"]

    def fetch(self, identity):
        return self.service.domain_resource_list(self.zone.id, identity).body["DATA"][0]

    def create(self, name: str, type: str, value: str, priority: int = 10, ttl: int = 0) -> Record:
        record = Record(name=name, type=type, value=value, priority=priority, ttl=ttl, collection=self)
        return record.save()
