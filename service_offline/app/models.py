"""
Data models for the offline cache.
"""

import json
import re
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, Awaitable, Callable, Generic, Iterable, List, TypeVar, Union

from shared.errors import ValidationError


T = TypeVar("T")

# Reserved ttl value for entries the sweeper must never purge
NEVER_EXPIRES = -1

_PARTITION_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

RemoteResult = Union[AsyncIterable[T], Awaitable[Iterable[T]]]


def now_millis() -> int:
    """Current wall clock time in milliseconds since epoch."""
    return int(time.time() * 1000)


def expiry_for(ttl_millis: int, now: int) -> int:
    """Expiration timestamp for an entry written at ``now``."""
    if ttl_millis == NEVER_EXPIRES:
        return NEVER_EXPIRES
    return now + ttl_millis


@dataclass(frozen=True)
class CacheEntry:
    """One stored entity."""
    id: str
    expires_at: int
    payload: bytes

    @property
    def never_expires(self) -> bool:
        return self.expires_at == NEVER_EXPIRES

    def is_expired(self, now: int) -> bool:
        """An entry expiring exactly at ``now`` is still valid."""
        return not self.never_expires and self.expires_at < now


def json_serialize(entity: Any) -> bytes:
    return json.dumps(entity, separators=(",", ":"), sort_keys=True).encode("utf-8")


def json_deserialize(payload: bytes) -> Any:
    return json.loads(payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload)


def validate_type_prefix(type_prefix: str) -> str:
    """Check a partition name is safe to use as a table name or key namespace."""
    if not isinstance(type_prefix, str) or not _PARTITION_NAME.match(type_prefix):
        raise ValidationError(
            "type_prefix must start with a letter or underscore and contain only letters, digits and underscores",
            details={"type_prefix": type_prefix}
        )
    return type_prefix


@dataclass(frozen=True)
class EntityKind(Generic[T]):
    """Configuration for one kind of cached entity.

    ``fetch_remote`` receives the missing ids and may return an async
    iterable of entities or an awaitable resolving to an iterable. It can
    return any subset of the ids, in any order.
    """
    type_prefix: str
    ttl_millis: int
    identifier_of: Callable[[T], str]
    fetch_remote: Callable[[List[str]], RemoteResult]
    serialize: Callable[[T], bytes] = field(default=json_serialize)
    deserialize: Callable[[bytes], T] = field(default=json_deserialize)

    def __post_init__(self):
        validate_type_prefix(self.type_prefix)
        if not isinstance(self.ttl_millis, int) or isinstance(self.ttl_millis, bool):
            raise ValidationError("ttl_millis must be an integer", details={"ttl_millis": self.ttl_millis})
        if self.ttl_millis < 0 and self.ttl_millis != NEVER_EXPIRES:
            raise ValidationError(
                "ttl_millis must be non-negative or NEVER_EXPIRES",
                details={"ttl_millis": self.ttl_millis}
            )

    @property
    def never_expires(self) -> bool:
        return self.ttl_millis == NEVER_EXPIRES

    def entry_for(self, entity: T, expires_at: int) -> CacheEntry:
        return CacheEntry(id=self.identifier_of(entity), expires_at=expires_at, payload=self.serialize(entity))
