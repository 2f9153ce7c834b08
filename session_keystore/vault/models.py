"""
Keystore Models — envelopes, wallet records, session keys and permissions.

Every persisted record carries a ``kind`` tag and a ``version`` number.
Records written before tagging existed (version 0) are upgraded in memory
when loaded; they are rewritten in the current shape on their next save.

Field names are snake_case in Python and camelCase on disk.
"""
import re
from enum import Enum
from typing import Annotated, Any, Literal, Optional

import orjson
from eth_utils import is_address
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .config import ScryptParams

RECORD_VERSION = 1

_SELECTOR_PATTERN = re.compile(r"^0x[0-9a-fA-F]{8}$")

# wei amounts can exceed 64 bits, so they travel as decimal strings in JSON.
Wei = Annotated[
    int,
    Field(ge=0),
    PlainSerializer(lambda v: str(v), return_type=str, when_used="json"),
]

_CAMEL = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
)


def normalize_address(address: str) -> str:
    """Return the lower-cased form used for record ids and directory names."""
    return address.lower()


def _check_address(value: str, label: str = "Address") -> str:
    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"{label} is not a valid address: {value!r}")
    return value


def _upgrade_legacy(data: Any, kind: str) -> Any:
    """Tag an untagged (version 0) record so it validates as the current shape."""
    if not isinstance(data, dict):
        return data
    if "kind" not in data and "version" not in data:
        data = {**data, "kind": kind, "version": RECORD_VERSION}
    elif data.get("kind") != kind:
        raise ValueError(f"expected a {kind!r} record, got {data.get('kind')!r}")
    elif data.get("version") != RECORD_VERSION:
        raise ValueError(
            f"unsupported {kind} record version: {data.get('version')!r}"
        )
    return data


class Envelope(BaseModel):
    """Self-describing authenticated ciphertext of a single secret."""

    ciphertext: str
    iv: str
    salt: str
    auth_tag: str
    kdf: Literal["scrypt"] = "scrypt"
    kdf_params: ScryptParams

    model_config = _CAMEL


class SessionState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class PermissionSchema(BaseModel):
    """Declarative limits attached to a session key.

    A constraint left as ``None`` means that dimension is unrestricted.
    Only the shape is validated here; checking calls against these limits is
    left to whatever layer dispatches transactions.
    """

    allowed_targets: Optional[tuple[str, ...]] = None
    allowed_functions: Optional[dict[str, tuple[str, ...]]] = None
    max_value_per_transaction: Optional[Wei] = None
    max_total_value: Optional[Wei] = None
    max_transactions: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )

    @field_validator("allowed_targets")
    @classmethod
    def validate_targets(cls, v):
        if v is None:
            return v
        for target in v:
            _check_address(target, "Allowed target")
        return v

    @field_validator("allowed_functions")
    @classmethod
    def validate_functions(cls, v):
        if v is None:
            return v
        for target, selectors in v.items():
            _check_address(target, "Function target")
            for selector in selectors:
                if not isinstance(selector, str) or not _SELECTOR_PATTERN.match(selector):
                    raise ValueError(
                        f"Function selector must be 4 bytes of 0x-prefixed hex: {selector!r}"
                    )
        return v

    def is_unrestricted(self) -> bool:
        return all(
            getattr(self, name) is None for name in type(self).model_fields
        )


class SessionKeyConfig(BaseModel):
    """Caller-supplied parameters for a new session key."""

    label: str
    valid_after: int
    valid_until: int
    permissions: PermissionSchema = Field(default_factory=PermissionSchema)

    model_config = _CAMEL

    @field_validator("label")
    @classmethod
    def validate_label(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Session key label is required")
        return v

    @model_validator(mode="after")
    def validate_window(self) -> "SessionKeyConfig":
        if self.valid_until <= self.valid_after:
            raise ValueError("Session validUntil must be after validAfter")
        return self


class SessionKey(BaseModel):
    """Persisted description of a session key.

    Activity is never stored; use :meth:`state` or :meth:`active_at` with the
    current time.
    """

    id: str
    session_key_address: str
    label: str
    valid_after: int
    valid_until: int
    permissions: PermissionSchema = Field(default_factory=PermissionSchema)
    is_revoked: bool = False
    created_at: int

    # legacy records persisted an isActive flag; it is not trusted
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    def state(self, now: int) -> SessionState:
        if self.is_revoked:
            return SessionState.REVOKED
        if now < self.valid_after:
            return SessionState.PENDING
        if now >= self.valid_until:
            return SessionState.EXPIRED
        return SessionState.ACTIVE

    def active_at(self, now: int) -> bool:
        return self.state(now) is SessionState.ACTIVE

    def revoke(self) -> "SessionKey":
        """Return the revoked successor of this record. Revocation is terminal."""
        if self.is_revoked:
            return self
        return self.model_copy(update={"is_revoked": True})

    def describe(self, now: int) -> "SessionKeyInfo":
        return SessionKeyInfo(
            **self.model_dump(),
            is_active=self.active_at(now),
        )


class SessionKeyInfo(SessionKey):
    """Session descriptor with activity computed at read time."""

    is_active: bool


class SessionKeyData(BaseModel):
    """On-disk session record: descriptor plus encrypted private key."""

    kind: Literal["session_key"] = "session_key"
    version: Literal[1] = RECORD_VERSION
    info: SessionKey
    encrypted_private_key: Envelope

    model_config = _CAMEL

    @model_validator(mode="before")
    @classmethod
    def upgrade_legacy(cls, data: Any) -> Any:
        data = _upgrade_legacy(data, "session_key")
        if isinstance(data, dict):
            # version 0 stored the envelope as a JSON string
            for key in ("encryptedPrivateKey", "encrypted_private_key"):
                if isinstance(data.get(key), str):
                    data = {**data, key: orjson.loads(data[key])}
        return data

    def revoke(self) -> "SessionKeyData":
        if self.info.is_revoked:
            return self
        return self.model_copy(update={"info": self.info.revoke()})


class WalletRecord(BaseModel):
    """Primary wallet: smart-account address plus encrypted owner key."""

    kind: Literal["wallet"] = "wallet"
    version: Literal[1] = RECORD_VERSION
    id: str
    address: str
    owner_address: str
    encrypted_key: Envelope
    network: str
    provider: str
    created_at: int

    model_config = _CAMEL

    @model_validator(mode="before")
    @classmethod
    def upgrade_legacy(cls, data: Any) -> Any:
        return _upgrade_legacy(data, "wallet")

    @field_validator("address", "owner_address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return _check_address(v)


def dump_record(record: BaseModel) -> dict:
    """JSON-ready dict of a record, camelCase keys."""
    return record.model_dump(mode="json", by_alias=True)
