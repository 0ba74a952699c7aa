# Vault - Data Model
#
# CredentialRecord, VaultSnapshot and Settings dataclasses plus their JSON
# wire form. The wire keys match the export file format:
#
#   record:   id, title, username, password, website, category, notes,
#             isFavorite, tags, createdAt, updatedAt
#   snapshot: passwords, version, lastSync
#   settings: autoLockTimeout, clipboardTimeout, defaultPasswordLength, theme

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..core.exceptions import ImportFormatInvalid

SCHEMA_VERSION = "1.0"

CATEGORIES = (
    "general",
    "social",
    "work",
    "finance",
    "shopping",
    "entertainment",
    "utilities",
    "travel",
    "health",
    "education",
)

THEMES = ("light", "dark")

# Fields a caller may change through update_record
MUTABLE_RECORD_FIELDS = frozenset({
    "title", "username", "password", "website", "category",
    "notes", "is_favorite", "tags",
})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.isoformat()


def parse_timestamp(value: Any, field_name: str) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix accepted)."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ImportFormatInvalid(f"{field_name} must be an ISO-8601 string")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ImportFormatInvalid(f"{field_name} is not a valid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require_str(data: Dict[str, Any], key: str, default: Optional[str] = None) -> str:
    value = data.get(key, default)
    if value is None and default is not None:
        value = default
    if not isinstance(value, str):
        raise ImportFormatInvalid(f"Record field '{key}' must be a string")
    return value


def _dedupe(tags) -> List[str]:
    seen = []
    for tag in tags:
        if tag not in seen:
            seen.append(tag)
    return seen


@dataclass
class CredentialRecord:
    """A single stored credential.

    ``id`` is assigned once at creation and never changes; ``updated_at``
    moves on every mutation.
    """

    title: str
    password: str
    username: str = ""
    website: str = ""
    category: str = "general"
    notes: Optional[str] = None
    is_favorite: bool = False
    tags: List[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.updated_at is None:
            self.updated_at = self.created_at
        self.tags = _dedupe(self.tags or [])

    def with_changes(self, **changes) -> "CredentialRecord":
        """Return an updated copy with a refreshed ``updated_at``."""
        unknown = set(changes) - MUTABLE_RECORD_FIELDS
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        updated_at = max(utc_now(), self.updated_at)
        return replace(self, updated_at=updated_at, **changes)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "username": self.username,
            "password": self.password,
            "website": self.website,
            "category": self.category,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }
        if self.notes is not None:
            d["notes"] = self.notes
        if self.tags:
            d["tags"] = list(self.tags)
        if self.is_favorite:
            d["isFavorite"] = True
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CredentialRecord":
        if not isinstance(data, dict):
            raise ImportFormatInvalid("Each password entry must be an object")
        record_id = data.get("id")
        if not isinstance(record_id, str) or not record_id:
            raise ImportFormatInvalid("Password entry is missing an id")

        notes = data.get("notes")
        if notes is not None and not isinstance(notes, str):
            raise ImportFormatInvalid("Record field 'notes' must be a string")
        is_favorite = data.get("isFavorite")
        if is_favorite is None:
            is_favorite = False
        if not isinstance(is_favorite, bool):
            raise ImportFormatInvalid("Record field 'isFavorite' must be a boolean")
        tags = data.get("tags") or []
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise ImportFormatInvalid("Record field 'tags' must be a list of strings")

        created_at = parse_timestamp(data.get("createdAt"), "createdAt")
        updated_raw = data.get("updatedAt")
        updated_at = parse_timestamp(updated_raw, "updatedAt") if updated_raw is not None else created_at

        return cls(
            id=record_id,
            title=_require_str(data, "title"),
            username=_require_str(data, "username", ""),
            password=_require_str(data, "password"),
            website=_require_str(data, "website", ""),
            category=_require_str(data, "category", "general"),
            notes=notes,
            is_favorite=is_favorite,
            tags=tags,
            created_at=created_at,
            updated_at=updated_at,
        )


@dataclass
class VaultSnapshot:
    """The full ordered record list sealed as one envelope."""

    records: List[CredentialRecord] = field(default_factory=list)
    schema_version: str = SCHEMA_VERSION
    last_sync: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        ids = [r.id for r in self.records]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate record ids in vault snapshot")

    @classmethod
    def empty(cls) -> "VaultSnapshot":
        return cls()

    def find(self, record_id: str) -> Optional[CredentialRecord]:
        for record in self.records:
            if record.id == record_id:
                return record
        return None

    def with_records(self, records: List[CredentialRecord]) -> "VaultSnapshot":
        return VaultSnapshot(records=list(records), schema_version=self.schema_version)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passwords": [r.to_dict() for r in self.records],
            "version": self.schema_version,
            "lastSync": format_timestamp(self.last_sync),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultSnapshot":
        if not isinstance(data, dict) or not isinstance(data.get("passwords"), list):
            raise ImportFormatInvalid("Vault snapshot must contain a passwords list")
        last_sync = data.get("lastSync")
        records = [CredentialRecord.from_dict(item) for item in data["passwords"]]
        try:
            return cls(
                records=records,
                schema_version=str(data.get("version", SCHEMA_VERSION)),
                last_sync=parse_timestamp(last_sync, "lastSync") if last_sync else utc_now(),
            )
        except ValueError as exc:
            raise ImportFormatInvalid(str(exc)) from exc


@dataclass
class Settings:
    """User preferences, sealed separately from the snapshot."""

    auto_lock_minutes: int = 15
    clipboard_clear_seconds: int = 30
    default_generated_length: int = 16
    theme: str = "dark"

    _BOUNDS = {
        "auto_lock_minutes": (1, 120),
        "clipboard_clear_seconds": (5, 300),
        "default_generated_length": (4, 128),
    }

    def __post_init__(self):
        for name, (low, high) in self._BOUNDS.items():
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
                raise ValueError(f"Setting {name} must be an integer in {low}-{high}")
        if self.theme not in THEMES:
            raise ValueError(f"Setting theme must be one of {', '.join(THEMES)}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "autoLockTimeout": self.auto_lock_minutes,
            "clipboardTimeout": self.clipboard_clear_seconds,
            "defaultPasswordLength": self.default_generated_length,
            "theme": self.theme,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        if not isinstance(data, dict):
            raise ImportFormatInvalid("Settings must be an object")
        defaults = cls()
        try:
            return cls(
                auto_lock_minutes=data.get("autoLockTimeout", defaults.auto_lock_minutes),
                clipboard_clear_seconds=data.get("clipboardTimeout", defaults.clipboard_clear_seconds),
                default_generated_length=data.get("defaultPasswordLength", defaults.default_generated_length),
                theme=data.get("theme", defaults.theme),
            )
        except ValueError as exc:
            raise ImportFormatInvalid(str(exc)) from exc


@dataclass
class ImportResult:
    """Outcome of an import: record count and whether settings were present."""

    passwords: int
    settings: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"passwords": self.passwords, "settings": self.settings}
