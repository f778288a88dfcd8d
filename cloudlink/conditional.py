"""Evaluation of HTTP precondition headers against resource metadata.

Both backends must answer a conditional request the same way, so the
decision lives here as a pure function of (ETag, Last-Modified, headers).
The mock backend calls it directly; the real backend relies on the provider
doing the equivalent server-side.

Read rules, first match wins:
- If-Match present and different from the ETag: 412
- If-Modified-Since present and later than Last-Modified: 304
- If-None-Match present and equal to the ETag: 304
- If-Unmodified-Since present and earlier than Last-Modified: 412
- otherwise proceed

Range is never looked at.
"""

from datetime import datetime
from enum import Enum
from typing import Mapping, Optional

import httpx

from cloudlink.httpdate import normalize_timestamp, parse_http_date
from cloudlink.models import ResourceRecord

IF_MATCH = "If-Match"
IF_NONE_MATCH = "If-None-Match"
IF_MODIFIED_SINCE = "If-Modified-Since"
IF_UNMODIFIED_SINCE = "If-Unmodified-Since"

CONDITIONAL_HEADERS = (IF_MATCH, IF_MODIFIED_SINCE, IF_NONE_MATCH, IF_UNMODIFIED_SINCE)

WILDCARD = "*"


class Condition(Enum):
    """Outcome of a precondition check."""

    PROCEED = 200
    NOT_MODIFIED = 304
    PRECONDITION_FAILED = 412

    @property
    def status(self) -> int:
        return self.value


def _as_headers(headers: Optional[Mapping[str, str]]) -> httpx.Headers:
    if isinstance(headers, httpx.Headers):
        return headers
    return httpx.Headers(dict(headers or {}))


def _etag_matches(candidate: str, etag: Optional[str]) -> bool:
    if candidate.strip() == WILDCARD:
        return etag is not None
    return candidate == etag


def has_conditions(headers: Optional[Mapping[str, str]]) -> bool:
    """True if any precondition header is present."""
    headers = _as_headers(headers)
    return any(name in headers for name in CONDITIONAL_HEADERS)


def evaluate(
    etag: Optional[str],
    last_modified: Optional[datetime],
    headers: Optional[Mapping[str, str]],
) -> Condition:
    """Decide whether a read should proceed.

    Args:
        etag: The resource's current ETag.
        last_modified: The resource's last modification time.
        headers: Request headers; lookups are case-insensitive.

    Returns:
        The Condition for the first rule that fires.
    """
    headers = _as_headers(headers)
    if last_modified is not None:
        last_modified = normalize_timestamp(last_modified)

    if_match = headers.get(IF_MATCH)
    if if_match is not None and not _etag_matches(if_match, etag):
        return Condition.PRECONDITION_FAILED

    modified_since = parse_http_date(headers.get(IF_MODIFIED_SINCE))
    if modified_since is not None and last_modified is not None:
        if modified_since > last_modified:
            return Condition.NOT_MODIFIED

    if_none_match = headers.get(IF_NONE_MATCH)
    if if_none_match is not None and _etag_matches(if_none_match, etag):
        return Condition.NOT_MODIFIED

    unmodified_since = parse_http_date(headers.get(IF_UNMODIFIED_SINCE))
    if unmodified_since is not None and last_modified is not None:
        if unmodified_since < last_modified:
            return Condition.PRECONDITION_FAILED

    return Condition.PROCEED


def evaluate_record(
    record: ResourceRecord,
    headers: Optional[Mapping[str, str]],
) -> Condition:
    """evaluate() against a stored record."""
    return evaluate(record.etag, record.last_modified, headers)


def evaluate_write(
    record: Optional[ResourceRecord],
    headers: Optional[Mapping[str, str]],
) -> Condition:
    """Decide whether a mutation should proceed.

    A write never answers 304: any rule that would short-circuit a read
    makes the write fail with 412 and leaves state untouched. With no
    current record, If-Match can never hold while If-None-Match always does.
    """
    headers = _as_headers(headers)
    if record is None:
        if IF_MATCH in headers:
            return Condition.PRECONDITION_FAILED
        return Condition.PROCEED

    if evaluate_record(record, headers) is Condition.PROCEED:
        return Condition.PROCEED
    return Condition.PRECONDITION_FAILED
