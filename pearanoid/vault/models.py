"""CredentialEntry and Vault: the plaintext data model behind the blob."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from pearanoid.errors import ValidationError

# Fields a caller may set on add/update. id and timestamps are system-owned.
EDITABLE_FIELDS = ("name", "username", "email", "password", "section", "notes")
_SYSTEM_FIELDS = ("id", "created_at", "updated_at")

VAULT_SCHEMA_VERSION = 1
_ONE_TICK = timedelta(microseconds=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Optional[str]) -> datetime:
    if not value:
        return utcnow()
    # Browser clients write a trailing "Z"
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _format_ts(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds").replace(
        "+00:00", "Z"
    )


def check_fields(values: Dict, *, creating: bool) -> None:
    """Reject system-owned or unknown fields, and a missing or blank name."""
    system = [k for k in values if k in _SYSTEM_FIELDS]
    if system:
        raise ValidationError(f"Field(s) set by the vault only: {', '.join(system)}")
    unknown = [k for k in values if k not in EDITABLE_FIELDS]
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")

    if "name" in values or creating:
        name = values.get("name")
        if not isinstance(name, str) or not name:
            raise ValidationError("'name' must be a non-empty string")
    if "password" in values and not isinstance(values["password"], str):
        raise ValidationError("'password' must be a string")


@dataclass
class CredentialEntry:
    """One stored secret."""

    name: str
    password: str = ""
    username: Optional[str] = None
    email: Optional[str] = None
    section: Optional[str] = None
    notes: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.updated_at is None:
            self.updated_at = self.created_at

    def apply(self, changes: Dict) -> None:
        """Merge *changes* and advance ``updated_at`` strictly."""
        for key, value in changes.items():
            setattr(self, key, value)
        self.touch()

    def touch(self) -> None:
        now = utcnow()
        # Wall clocks can repeat or step back; updated_at never does.
        floor = max(self.updated_at, self.created_at) + _ONE_TICK
        self.updated_at = now if now >= floor else floor

    def copy(self) -> CredentialEntry:
        return replace(self)

    def to_dict(self) -> Dict:
        data = {
            "id": self.id,
            "name": self.name,
            "password": self.password,
            "createdAt": _format_ts(self.created_at),
            "updatedAt": _format_ts(self.updated_at),
        }
        for key in ("username", "email", "section", "notes"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> CredentialEntry:
        created = _parse_ts(data.get("createdAt"))
        return cls(
            id=str(data["id"]),
            name=data["name"],
            password=data.get("password") or "",
            username=data.get("username"),
            email=data.get("email"),
            section=data.get("section"),
            notes=data.get("notes"),
            created_at=created,
            updated_at=_parse_ts(data["updatedAt"]) if data.get("updatedAt") else created,
        )


@dataclass
class Vault:
    """The unit of encryption: every entry, always sealed together."""

    version: int = VAULT_SCHEMA_VERSION
    entries: List[CredentialEntry] = field(default_factory=list)

    # ------------------------------------------------------------------
    #  Queries
    # ------------------------------------------------------------------
    def find(self, entry_id: str) -> Optional[CredentialEntry]:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    # ------------------------------------------------------------------
    #  Mutations (no persistence here; see VaultSession)
    # ------------------------------------------------------------------
    def add(self, values: Dict) -> CredentialEntry:
        check_fields(values, creating=True)
        entry = CredentialEntry(**values)
        while self.find(entry.id) is not None:
            entry.id = str(uuid.uuid4())
        self.entries.append(entry)
        return entry

    def update(self, entry_id: str, changes: Dict) -> Optional[CredentialEntry]:
        check_fields(changes, creating=False)
        entry = self.find(entry_id)
        if entry is None:
            return None
        entry.apply(changes)
        return entry

    def remove(self, entry_id: str) -> bool:
        before = len(self.entries)
        self.entries = [e for e in self.entries if e.id != entry_id]
        return len(self.entries) != before

    def copy(self) -> Vault:
        return Vault(version=self.version, entries=[e.copy() for e in self.entries])

    # ------------------------------------------------------------------
    #  Serialisation
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict:
        return {
            "version": self.version,
            "entries": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> Vault:
        entries = [CredentialEntry.from_dict(e) for e in data.get("entries") or []]
        return cls(version=int(data["version"]), entries=entries)


def extract_sections(entries) -> List[str]:
    """Distinct non-empty section labels, sorted."""
    return sorted({e.section for e in entries if e.section})

