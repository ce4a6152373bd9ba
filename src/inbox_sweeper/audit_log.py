"""Bounded log of deleted messages."""

from __future__ import annotations

from .constants import AUDIT_LOG_LIMIT, KEY_DELETED_MESSAGES
from .models import DeletedMessageRecord
from .storage import Storage


class AuditLog:
    """Append-only deletion log; the oldest entries are dropped past ``limit``."""

    def __init__(self, storage: Storage, limit: int = AUDIT_LOG_LIMIT) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.storage = storage
        self.limit = limit

    def append(self, record: DeletedMessageRecord) -> None:
        entries = self.storage.get(KEY_DELETED_MESSAGES, [])
        entries.append(record.to_dict())
        if len(entries) > self.limit:
            del entries[: len(entries) - self.limit]
        self.storage.set(KEY_DELETED_MESSAGES, entries)

    def get_all(self) -> list[DeletedMessageRecord]:
        return [DeletedMessageRecord.from_dict(e) for e in self.storage.get(KEY_DELETED_MESSAGES, [])]

    def clear(self) -> None:
        self.storage.delete(KEY_DELETED_MESSAGES)

    def __len__(self) -> int:
        return len(self.storage.get(KEY_DELETED_MESSAGES, []))
