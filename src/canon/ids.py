"""Request and trace identifiers.

Generated ids are a prefix plus 16 lowercase base32 characters (80 random bits),
e.g. ``req_mfrggzdfmztwq2lk``.
"""

from __future__ import annotations

import base64
import re
import secrets

REQUEST_ID_PREFIX = "req_"
TRACE_ID_PREFIX = "trace_"

_ID_BYTES = 10
_SUFFIX_RE = re.compile(r"^[a-z2-7]{8,32}$")


def _random_suffix() -> str:
    # 10 bytes encode to exactly 16 base32 characters, so there is no padding.
    return base64.b32encode(secrets.token_bytes(_ID_BYTES)).decode("ascii").lower()


def generate_request_id() -> str:
    return REQUEST_ID_PREFIX + _random_suffix()


def generate_trace_id() -> str:
    return TRACE_ID_PREFIX + _random_suffix()


def _is_valid(value: str, prefix: str) -> bool:
    if not value.startswith(prefix):
        return False
    return _SUFFIX_RE.match(value[len(prefix):]) is not None


def is_valid_request_id(value: str) -> bool:
    return _is_valid(value, REQUEST_ID_PREFIX)


def is_valid_trace_id(value: str) -> bool:
    return _is_valid(value, TRACE_ID_PREFIX)


def resolve_request_id(header_value: str | None, trust_incoming: bool) -> str:
    """Use a non-empty incoming header when trusted, otherwise generate a new id."""
    if trust_incoming and header_value:
        return header_value
    return generate_request_id()


def resolve_trace_id(header_value: str | None, trust_incoming: bool) -> str:
    if trust_incoming and header_value:
        return header_value
    return generate_trace_id()
