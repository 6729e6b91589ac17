from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime

from sobriety import codec
from sobriety.codec import EmergencyContact, JournalEntry, Keys, UrgeLog
from sobriety.errors import DecodeError, StorageError, ValidationError
from sobriety.kvstore import KeyValueStore, SqliteKeyValueStore

logger = logging.getLogger(__name__)

MIN_INTENSITY = 1
MAX_INTENSITY = 10
MAX_NOTE_LENGTH = 500
MAX_ENTRY_LENGTH = 2000
THEME_PREFERENCES = ("light", "dark", "system")


class StorageService:
    """CRUD over the key-value store for every persisted entity.

    List-valued entities are read, changed in memory and written back whole.
    Each of those read-modify-write cycles holds a per-key ``asyncio.Lock`` for
    its full duration, so interleaved calls on the same instance never lose an
    update. Separate instances sharing one database are not coordinated.

    Reads are forgiving: a corrupt list reads as empty. Writes are not: a
    corrupt list raises ``DecodeError`` rather than being overwritten, and
    unreadable elements are written back as they were.
    """

    def __init__(self, store: KeyValueStore | None = None) -> None:
        self.store = store if store is not None else SqliteKeyValueStore()
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # -- raw store access -------------------------------------------------

    async def _read(self, key: str) -> str | None:
        try:
            return await self.store.get(key)
        except Exception as exc:
            logger.error("Reading %s failed: %s", key, exc)
            raise StorageError(f"Unable to load {key}", kind="read", cause=exc) from exc

    async def _write(self, key: str, value: str) -> None:
        try:
            await self.store.set(key, value)
        except Exception as exc:
            logger.error("Writing %s failed: %s", key, exc)
            raise StorageError(f"Unable to save {key}", kind="write", cause=exc) from exc

    async def _remove(self, key: str) -> None:
        try:
            await self.store.remove(key)
        except Exception as exc:
            logger.error("Removing %s failed: %s", key, exc)
            raise StorageError(f"Unable to remove {key}", kind="remove", cause=exc) from exc

    async def _load_records(self, key: str, from_dict) -> list:
        raw = await self._read(key)
        if not raw:
            return []
        try:
            return codec.decode_records(raw, key, from_dict)
        except DecodeError as exc:
            logger.warning("Treating corrupt %s as empty: %s", key, exc)
            return []

    async def _load_records_for_update(self, key: str, from_dict) -> list:
        # corrupt data raises instead of reading as empty, so the write that follows cannot erase it
        raw = await self._read(key)
        if not raw:
            return []
        try:
            return codec.decode_records_for_update(raw, key, from_dict)
        except DecodeError as exc:
            logger.error("Refusing to overwrite corrupt %s: %s", key, exc)
            raise

    # -- sobriety date ----------------------------------------------------

    async def set_sobriety_date(self, instant: datetime) -> None:
        async with self._locks[Keys.SOBRIETY_DATE]:
            await self._write(Keys.SOBRIETY_DATE, codec.encode_instant(instant))
        logger.info("Sobriety date set to %s", codec.encode_instant(instant))

    async def get_sobriety_date(self) -> datetime | None:
        raw = await self._read(Keys.SOBRIETY_DATE)
        if not raw:
            return None
        return codec.decode_instant(raw)

    async def reset_sobriety_date(self) -> None:
        async with self._locks[Keys.SOBRIETY_DATE]:
            await self._remove(Keys.SOBRIETY_DATE)

    # -- urge logs --------------------------------------------------------

    async def save_urge_log(self, intensity: int, note: str | None = None) -> UrgeLog:
        if isinstance(intensity, bool) or not isinstance(intensity, int):
            raise ValidationError("Intensity must be a whole number between 1 and 10")
        if not MIN_INTENSITY <= intensity <= MAX_INTENSITY:
            raise ValidationError("Intensity must be between 1 and 10")
        if note is not None:
            note = note.strip() or None
        if note is not None and len(note) > MAX_NOTE_LENGTH:
            raise ValidationError(f"Note must be at most {MAX_NOTE_LENGTH} characters")

        log = UrgeLog(id=codec.generate_id(), timestamp=codec.utc_now(), intensity=intensity, note=note)
        async with self._locks[Keys.URGE_LOGS]:
            existing = await self._load_records_for_update(Keys.URGE_LOGS, UrgeLog.from_dict)
            await self._write(Keys.URGE_LOGS, codec.encode_records([log, *existing]))
        return log

    async def get_urge_logs(self) -> list[UrgeLog]:
        return await self._load_records(Keys.URGE_LOGS, UrgeLog.from_dict)

    async def clear_urge_logs(self) -> None:
        async with self._locks[Keys.URGE_LOGS]:
            await self._remove(Keys.URGE_LOGS)

    # -- journal ----------------------------------------------------------

    async def save_journal_entry(self, text: str) -> JournalEntry:
        entry_text = (text or "").strip()
        if not entry_text:
            raise ValidationError("Journal entry cannot be empty")
        if len(entry_text) > MAX_ENTRY_LENGTH:
            raise ValidationError(f"Journal entry must be at most {MAX_ENTRY_LENGTH} characters")

        entry = JournalEntry(id=codec.generate_id(), timestamp=codec.utc_now(), entry=entry_text)
        async with self._locks[Keys.JOURNAL_ENTRIES]:
            existing = await self._load_records_for_update(Keys.JOURNAL_ENTRIES, JournalEntry.from_dict)
            await self._write(Keys.JOURNAL_ENTRIES, codec.encode_records([entry, *existing]))
        return entry

    async def get_journal_entries(self) -> list[JournalEntry]:
        return await self._load_records(Keys.JOURNAL_ENTRIES, JournalEntry.from_dict)

    async def delete_journal_entry(self, entry_id: str) -> None:
        async with self._locks[Keys.JOURNAL_ENTRIES]:
            existing = await self._load_records_for_update(Keys.JOURNAL_ENTRIES, JournalEntry.from_dict)
            kept = [e for e in existing if codec.record_id(e) != entry_id]
            if len(kept) == len(existing):
                return
            await self._write(Keys.JOURNAL_ENTRIES, codec.encode_records(kept))

    async def clear_journal_entries(self) -> None:
        async with self._locks[Keys.JOURNAL_ENTRIES]:
            await self._remove(Keys.JOURNAL_ENTRIES)

    # -- emergency contact ------------------------------------------------

    async def save_emergency_contact(self, contact: EmergencyContact) -> EmergencyContact:
        name = (contact.name or "").strip()
        phone = (contact.phone or "").strip()
        if not name:
            raise ValidationError("Contact name cannot be empty")
        if not phone:
            raise ValidationError("Contact phone cannot be empty")

        cleaned = EmergencyContact(name=name, phone=phone)
        async with self._locks[Keys.EMERGENCY_CONTACT]:
            await self._write(Keys.EMERGENCY_CONTACT, codec.encode_contact(cleaned))
        return cleaned

    async def get_emergency_contact(self) -> EmergencyContact | None:
        raw = await self._read(Keys.EMERGENCY_CONTACT)
        if not raw:
            return None
        return codec.decode_contact(raw)

    async def clear_emergency_contact(self) -> None:
        async with self._locks[Keys.EMERGENCY_CONTACT]:
            await self._remove(Keys.EMERGENCY_CONTACT)

    # -- shown milestones -------------------------------------------------

    async def _load_days(self) -> list[int]:
        raw = await self._read(Keys.SHOWN_MILESTONES)
        if not raw:
            return []
        try:
            return codec.decode_days(raw)
        except DecodeError as exc:
            logger.warning("Treating corrupt %s as empty: %s", Keys.SHOWN_MILESTONES, exc)
            return []

    async def get_shown_milestones(self) -> list[int]:
        return await self._load_days()

    async def mark_milestone_as_shown(self, day: int) -> None:
        async with self._locks[Keys.SHOWN_MILESTONES]:
            raw = await self._read(Keys.SHOWN_MILESTONES)
            shown = codec.decode_days_for_update(raw) if raw else []
            if day in shown:
                return
            await self._write(Keys.SHOWN_MILESTONES, codec.encode_days([*shown, day]))

    async def reset_shown_milestones(self) -> None:
        async with self._locks[Keys.SHOWN_MILESTONES]:
            await self._remove(Keys.SHOWN_MILESTONES)

    # -- preferences ------------------------------------------------------

    async def get_notifications_enabled(self) -> bool:
        return codec.decode_bool(await self._read(Keys.NOTIFICATIONS_ENABLED))

    async def set_notifications_enabled(self, enabled: bool) -> None:
        async with self._locks[Keys.NOTIFICATIONS_ENABLED]:
            await self._write(Keys.NOTIFICATIONS_ENABLED, codec.encode_bool(enabled))

    async def get_theme_preference(self) -> str:
        raw = await self._read(Keys.DARK_MODE_PREFERENCE)
        return raw if raw in ("light", "dark") else "system"

    async def set_theme_preference(self, preference: str) -> None:
        if preference not in THEME_PREFERENCES:
            raise ValidationError(f"Theme must be one of: {', '.join(THEME_PREFERENCES)}")
        async with self._locks[Keys.DARK_MODE_PREFERENCE]:
            if preference == "system":
                await self._remove(Keys.DARK_MODE_PREFERENCE)
            else:
                await self._write(Keys.DARK_MODE_PREFERENCE, preference)

    # -- reset ------------------------------------------------------------

    async def reset_journey(self, keep_data: bool = True) -> None:
        """Reset the counter. Journal and urge history survive unless ``keep_data`` is false."""
        await self.reset_sobriety_date()
        await self.reset_shown_milestones()
        if not keep_data:
            await self.clear_journal_entries()
            await self.clear_urge_logs()
        logger.info("Journey reset (keep_data=%s)", keep_data)
