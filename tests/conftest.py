"""Shared fixtures for tests."""

from __future__ import annotations

import threading

import pytest

from inbox_sweeper.engine import SyncEngine
from inbox_sweeper.gmail_client import MailboxError, MailboxNotFoundError
from inbox_sweeper.models import Message, MessagePage, RuleSet
from inbox_sweeper.notifications import Notifier
from inbox_sweeper.storage import Storage


class FakeMailbox:
    """In-memory mailbox serving fixed pages of messages."""

    def __init__(self, pages: list[list[Message]]) -> None:
        self.pages = pages
        self.messages = {m.id: m for page in pages for m in page}
        self.fail_list_on_page: int | None = None
        self.fail_detail: set[str] = set()
        self.fail_delete: set[str] = set()
        self.not_found: set[str] = set()
        self.on_detail = None  # callable(message_id) run before returning a message
        self.list_calls: list[str | None] = []
        self.fetched: list[str] = []
        self.trashed: list[str] = []
        self.deleted: list[str] = []

    def list_messages(self, page_token=None, page_size=50) -> MessagePage:
        self.list_calls.append(page_token)
        index = int(page_token or 0)
        if self.fail_list_on_page == index:
            raise MailboxError("Failed to fetch Gmail messages: 500 boom", status=500, body="boom")
        if index >= len(self.pages):
            return MessagePage()
        next_token = str(index + 1) if index + 1 < len(self.pages) else None
        return MessagePage(message_ids=[m.id for m in self.pages[index]], next_page_token=next_token)

    def get_message_detail(self, message_id: str) -> Message:
        if self.on_detail is not None:
            self.on_detail(message_id)
        if message_id in self.fail_detail:
            raise MailboxError("Failed to fetch message details: 500", status=500)
        self.fetched.append(message_id)
        return self.messages[message_id]

    def trash_message(self, message_id: str) -> None:
        if message_id in self.not_found:
            raise MailboxNotFoundError("Failed to trash message: 404", status=404)
        if message_id in self.fail_delete:
            raise MailboxError("Failed to trash message: 403", status=403)
        self.trashed.append(message_id)

    def delete_message(self, message_id: str) -> None:
        self.deleted.append(message_id)


class RecordingNotifier(Notifier):
    def __init__(self, allowed: bool = True) -> None:
        self.allowed = allowed
        self.sent = []
        self.dismissed: list[str] = []

    def request_permission(self) -> bool:
        return self.allowed

    def notify(self, notification) -> None:
        self.sent.append(notification)

    def dismiss(self, key: str) -> None:
        self.dismissed.append(key)

    def titles(self) -> list[str]:
        return [n.title for n in self.sent]


def spam(message_id: str) -> Message:
    return Message(
        id=message_id,
        subject=f"Flash SALE {message_id}",
        sender="Deals <deals@shop.example>",
        body="Huge discount and a coupon inside",
    )


def ham(message_id: str) -> Message:
    return Message(
        id=message_id,
        subject="Lunch tomorrow?",
        sender="Alice Smith <alice@example.com>",
        body="Are you free at noon?",
    )


@pytest.fixture
def storage(tmp_path):
    with Storage(db_path=tmp_path / "storage.db") as s:
        yield s


@pytest.fixture
def promo_rules() -> RuleSet:
    return RuleSet(
        id="promo",
        name="Promo",
        keywords=("sale", "discount", "coupon"),
        min_subject_or_sender_matches=1,
        min_body_matches=2,
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_engine(storage, notifier):
    """Build an engine around a FakeMailbox with pacing disabled."""

    def _make(mailbox: FakeMailbox, **kwargs) -> SyncEngine:
        kwargs.setdefault("notifier", notifier)
        return SyncEngine(
            storage,
            mailbox_factory=lambda token: mailbox,
            message_delay=0,
            page_delay=0,
            **kwargs,
        )

    return _make


@pytest.fixture
def gate():
    """Event used to hold a fake mailbox call until the test releases it."""
    event = threading.Event()
    yield event
    event.set()
