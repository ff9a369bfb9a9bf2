"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Deterministic cache keys derived from request objects.
"""

from __future__ import annotations

import base64
import dataclasses
import hashlib
import json
import math
from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from pathlib import PurePath
from typing import Any
from uuid import UUID

from pydantic import BaseModel, TypeAdapter

from .errors import CacheSerializationError
from .policy import PolicyRegistry

_ANY_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


def _dumps(value: Any) -> str:
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=True, allow_nan=False
    )


def request_fields(request: Any) -> dict[str, Any]:
    """Field name -> value pairs that identify one request."""
    if dataclasses.is_dataclass(request) and not isinstance(request, type):
        return {f.name: getattr(request, f.name) for f in dataclasses.fields(request)}
    if isinstance(request, BaseModel):
        return {name: getattr(request, name) for name in type(request).model_fields}
    if isinstance(request, Mapping):
        return dict(request)
    if hasattr(request, "__dict__"):
        return {k: v for k, v in vars(request).items() if not k.startswith("_")}
    raise CacheSerializationError(
        f"cannot derive cache fields from {type(request).__name__}"
    )


def canonicalize(value: Any) -> Any:
    """
    Convert `value` into JSON data that is identical for equal values.

    Numbers that compare equal share one form (``True``, ``1``, ``1.0`` and
    ``Decimal("1.00")`` all become ``1``). Mapping keys are rendered as their
    canonical JSON, so ``{1: ...}`` and ``{"1": ...}`` stay distinct. Sets are
    sorted by their canonical form, nested dataclasses and pydantic models are
    reduced to their fields.
    """
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, Enum):
        return canonicalize(value.value)
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return repr(value)
        return int(value) if value.is_integer() else value
    if isinstance(value, Decimal):
        if not value.is_finite():
            return str(value)
        if value == value.to_integral_value():
            return int(value)
        return str(value.normalize())
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (UUID, PurePath)):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, Mapping):
        return {_dumps(canonicalize(k)): canonicalize(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted((canonicalize(v) for v in value), key=_dumps)
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    if (dataclasses.is_dataclass(value) and not isinstance(value, type)) or isinstance(
        value, BaseModel
    ):
        return canonicalize(request_fields(value))
    try:
        dumped = _ANY_ADAPTER.dump_python(value, mode="json")
    except (TypeError, ValueError) as exc:
        raise CacheSerializationError(
            f"cannot canonicalize {type(value).__name__}"
        ) from exc
    if dumped is value:
        raise CacheSerializationError(f"cannot canonicalize {type(value).__name__}")
    return canonicalize(dumped)


class CacheKeyGenerator:
    """
    Map request instances to ``{namespace}:[user:{principal}:]{digest}`` keys.

    The namespace is the cacheable policy's `key_prefix` when declared, else
    the request type name. The digest is empty for requests without fields and
    otherwise a url-safe SHA-256 prefix of the canonical field JSON.
    """

    def __init__(
        self,
        policies: PolicyRegistry | None = None,
        *,
        digest_length: int = 16,
    ) -> None:
        if digest_length < 8:
            raise ValueError("digest_length must be >= 8")
        self._policies = policies or PolicyRegistry()
        self._digest_length = digest_length

    def namespace_for(self, request_type: type) -> str:
        policy = self._policies.cacheable_policy_for(request_type)
        if policy is not None and policy.key_prefix:
            return policy.key_prefix
        return request_type.__name__

    def pattern_for(self, request_type: type) -> str:
        """Glob matching every key ever issued for `request_type`."""
        return f"{self.namespace_for(request_type)}:*"

    def digest(self, request: Any) -> str:
        fields = request_fields(request)
        if not fields:
            return ""
        payload = _dumps(canonicalize(fields)).encode("utf-8")
        raw = hashlib.sha256(payload).digest()
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")[: self._digest_length]

    def generate_key(self, request: Any, *, principal_id: str | None = None) -> str:
        request_type = type(request)
        parts = [self.namespace_for(request_type)]
        policy = self._policies.cacheable_policy_for(request_type)
        if policy is not None and policy.vary_by_identity and principal_id:
            parts.append(f"user:{principal_id}")
        parts.append(self.digest(request))
        return ":".join(parts)
