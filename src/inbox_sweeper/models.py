"""Data models for Inbox Sweeper."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum


class SyncStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncStatus.COMPLETED, SyncStatus.STOPPED, SyncStatus.ERRORED)


class ExecutionMode(str, Enum):
    FOREGROUND = "foreground"
    BACKGROUND = "background"


@dataclass(frozen=True)
class RuleSet:
    """A named keyword configuration describing unwanted emails."""

    id: str
    name: str
    description: str = ""
    keywords: tuple[str, ...] = ()
    min_subject_or_sender_matches: int = 1
    min_body_matches: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["keywords"] = list(self.keywords)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> RuleSet:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description", ""),
            keywords=tuple(data.get("keywords", [])),
            min_subject_or_sender_matches=int(data.get("min_subject_or_sender_matches", 1)),
            min_body_matches=int(data.get("min_body_matches", 0)),
        )


@dataclass
class Message:
    """Text extracted from a single remote message."""

    id: str
    subject: str = ""
    sender: str = ""  # Full From header value
    body: str = ""  # Decoded text/plain part only


@dataclass
class MessagePage:
    """One page of message references from the listing call."""

    message_ids: list[str] = field(default_factory=list)
    next_page_token: str | None = None


@dataclass
class DeletedMessageRecord:
    """Audit entry written for every fully removed message."""

    id: str
    subject: str
    sender: str
    deleted_at: str = field(default_factory=lambda: datetime.now().isoformat())
    rule_set_used: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> DeletedMessageRecord:
        return cls(
            id=data["id"],
            subject=data.get("subject", ""),
            sender=data.get("sender", ""),
            deleted_at=data.get("deleted_at", ""),
            rule_set_used=data.get("rule_set_used", ""),
        )


@dataclass
class SyncProgress:
    """Counters and status text for the current or last run."""

    processed: int = 0
    deleted: int = 0
    current_action: str = ""
    percentage: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> SyncProgress:
        return cls(
            processed=int(data.get("processed", 0)),
            deleted=int(data.get("deleted", 0)),
            current_action=data.get("current_action", ""),
            percentage=float(data.get("percentage", 0.0)),
        )


@dataclass
class TaskState:
    """Persisted snapshot of a run, recoverable after a restart."""

    is_running: bool = False
    total_processed: int = 0
    total_deleted: int = 0
    started_at: str | None = None
    last_error: str | None = None
    current_phase: str = ""
    estimated_time_remaining: int | None = None  # seconds
    mode: str = ExecutionMode.FOREGROUND.value

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> TaskState:
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass(frozen=True)
class AuthState:
    is_authenticated: bool = False
    access_token: str | None = None
