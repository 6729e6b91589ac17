"""Record schemas and their string encodings in the key-value store.

Every persisted value is UTF-8 text. Structured values are JSON; instants are
ISO-8601 UTC strings with millisecond precision and a trailing ``Z``.
"""

from __future__ import annotations

import json
import logging
import random
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from sobriety.errors import DecodeError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Keys:
    SOBRIETY_DATE = "sobriety_date"
    URGE_LOGS = "urge_logs"
    JOURNAL_ENTRIES = "journal_entries"
    EMERGENCY_CONTACT = "emergency_contact"
    SHOWN_MILESTONES = "shown_milestones"
    NOTIFICATIONS_ENABLED = "notifications_enabled"
    DARK_MODE_PREFERENCE = "dark_mode_preference"


_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_id() -> str:
    # epoch millis + 9 base36 chars; unique enough for one user on one device
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{int(time.time() * 1000)}-{suffix}"


def utc_now() -> datetime:
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond - now.microsecond % 1000)


def as_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.astimezone()
    return dt


def encode_instant(dt: datetime) -> str:
    return as_aware(dt).astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_instant(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    return as_aware(datetime.fromisoformat(text))


def decode_instant(raw: str) -> datetime:
    try:
        return parse_instant(raw)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"Stored instant is not ISO-8601: {raw!r}", cause=exc) from exc


def _require_str(data: dict, field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str):
        raise ValueError(f"{field} must be a string")
    return value


@dataclass
class UrgeLog:
    id: str
    timestamp: datetime
    intensity: int
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "timestamp": encode_instant(self.timestamp), "intensity": self.intensity}
        if self.note is not None:
            out["note"] = self.note
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "UrgeLog":
        intensity = data.get("intensity")
        if isinstance(intensity, bool) or not isinstance(intensity, int):
            raise ValueError("intensity must be an integer")
        note = data.get("note")
        if note is not None and not isinstance(note, str):
            raise ValueError("note must be a string")
        return cls(
            id=_require_str(data, "id"),
            timestamp=parse_instant(_require_str(data, "timestamp")),
            intensity=intensity,
            note=note,
        )


@dataclass
class JournalEntry:
    id: str
    timestamp: datetime
    entry: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "timestamp": encode_instant(self.timestamp), "entry": self.entry}

    @classmethod
    def from_dict(cls, data: dict) -> "JournalEntry":
        return cls(
            id=_require_str(data, "id"),
            timestamp=parse_instant(_require_str(data, "timestamp")),
            entry=_require_str(data, "entry"),
        )


@dataclass
class EmergencyContact:
    name: str
    phone: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "phone": self.phone}

    @classmethod
    def from_dict(cls, data: dict) -> "EmergencyContact":
        return cls(name=_require_str(data, "name"), phone=_require_str(data, "phone"))

    @property
    def dial_number(self) -> str:
        """Phone number reduced to digits and ``+`` for a ``tel:`` link."""
        return "".join(ch for ch in self.phone if ch.isdigit() or ch == "+")


def _parse_json(raw: str, key: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"{key} is not valid JSON", cause=exc) from exc


def record_to_json(record: Any) -> Any:
    # unreadable elements are carried through as the raw JSON they were read from
    return record.to_dict() if hasattr(record, "to_dict") else record


def record_id(record: Any) -> Any:
    if isinstance(record, dict):
        return record.get("id")
    return getattr(record, "id", None)


def encode_records(records: list) -> str:
    return json.dumps([record_to_json(r) for r in records], ensure_ascii=False)


def _json_array(raw: str, key: str) -> list:
    data = _parse_json(raw, key)
    if not isinstance(data, list):
        raise DecodeError(f"{key} is not a JSON array")
    return data


def decode_records(raw: str, key: str, from_dict: Callable[[dict], T]) -> list[T]:
    """Decode a JSON array of records, dropping elements with the wrong shape."""
    records: list[T] = []
    for index, item in enumerate(_json_array(raw, key)):
        if not isinstance(item, dict):
            logger.warning("Skipping non-object record %d in %s", index, key)
            continue
        try:
            records.append(from_dict(item))
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping malformed record %d in %s: %s", index, key, exc)
    return records


def decode_records_for_update(raw: str, key: str, from_dict: Callable[[dict], T]) -> list:
    """Decode for a read-modify-write.

    A corrupt array raises ``DecodeError`` so nothing gets written over it.
    Elements with the wrong shape come back as their raw JSON values and are
    written back unchanged.
    """
    items: list = []
    for item in _json_array(raw, key):
        try:
            items.append(from_dict(item) if isinstance(item, dict) else item)
        except (TypeError, ValueError):
            items.append(item)
    return items


def encode_contact(contact: EmergencyContact) -> str:
    return json.dumps(contact.to_dict(), ensure_ascii=False)


def decode_contact(raw: str) -> EmergencyContact:
    data = _parse_json(raw, Keys.EMERGENCY_CONTACT)
    if not isinstance(data, dict):
        raise DecodeError("emergency_contact is not a JSON object")
    try:
        return EmergencyContact.from_dict(data)
    except ValueError as exc:
        raise DecodeError(f"emergency_contact has the wrong shape: {exc}", cause=exc) from exc


def encode_days(days: list[int]) -> str:
    return json.dumps(days)


def decode_days_for_update(raw: str) -> list:
    return _json_array(raw, Keys.SHOWN_MILESTONES)


def decode_days(raw: str) -> list[int]:
    data = decode_days_for_update(raw)
    return [d for d in data if isinstance(d, int) and not isinstance(d, bool)]


def encode_bool(flag: bool) -> str:
    return "true" if flag else "false"


def decode_bool(raw: str | None) -> bool:
    return raw == "true"
