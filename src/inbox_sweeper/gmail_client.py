"""Gmail API client functions for listing, reading and deleting messages."""

from __future__ import annotations

import base64
import binascii
import logging
import re

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from inbox_sweeper.constants import PAGE_SIZE, RETRYABLE_STATUSES
from inbox_sweeper.models import Message, MessagePage

logger = logging.getLogger(__name__)

_FROM_RE = re.compile(r"^(.*?)\s*<([^>]+)>$")


class MailboxError(Exception):
    """A remote mailbox call returned a non-success response."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    @classmethod
    def from_http_error(cls, exc: HttpError, action: str) -> MailboxError:
        status = getattr(exc.resp, "status", None)
        content = exc.content
        body = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else str(content or "")
        error_cls = MailboxNotFoundError if status == 404 else cls
        return error_cls(f"Failed to {action}: {status} {body}".strip(), status=status, body=body)


class MailboxNotFoundError(MailboxError):
    """The message no longer exists on the server."""


def _is_retryable_http_error(exc: BaseException) -> bool:
    return isinstance(exc, HttpError) and exc.resp.status in RETRYABLE_STATUSES


def parse_from_header(from_value: str) -> tuple[str, str]:
    """Parse a From header into (display name, email address).

    Handles formats like:
      "John Doe <john@example.com>" -> ("John Doe", "john@example.com")
      "<john@example.com>"          -> ("", "john@example.com")
      "john@example.com"            -> ("", "john@example.com")
    """
    if not from_value:
        return ("", "")
    m = _FROM_RE.match(from_value.strip())
    if m:
        name = m.group(1).strip().strip('"').strip("'")
        return (name, m.group(2).strip())
    email = from_value.strip().strip("<>")
    return ("", email)


def build_service(access_token: str) -> Resource:
    """Build a Gmail service that authenticates with a bare bearer token."""
    creds = Credentials(token=access_token)
    return build("gmail", "v1", credentials=creds, cache_discovery=False)


@retry(
    retry=retry_if_exception(_is_retryable_http_error),
    wait=wait_exponential(multiplier=1, min=1, max=60),
    stop=stop_after_attempt(5),
    reraise=True,
)
def _execute_with_retry(request):
    return request.execute()


def _execute(request, action: str):
    try:
        return _execute_with_retry(request)
    except HttpError as exc:
        raise MailboxError.from_http_error(exc, action) from exc


def _header(headers: list[dict], name: str) -> str:
    wanted = name.lower()
    for h in headers:
        if h.get("name", "").lower() == wanted:
            return h.get("value", "")
    return ""


def _decode_body_data(data: str) -> str | None:
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None


def _iter_plain_text_data(payload: dict):
    parts = payload.get("parts")
    if parts:
        for part in parts:
            yield from _iter_plain_text_data(part)
        return
    if payload.get("mimeType", "text/plain") != "text/plain":
        return
    data = (payload.get("body") or {}).get("data")
    if data:
        yield data


def extract_plain_text(payload: dict) -> str:
    """Return the first decodable text/plain part of a message payload.

    Parts are searched depth-first. Parts that fail to decode are skipped,
    and a message without a usable part yields an empty body.
    """
    for data in _iter_plain_text_data(payload):
        text = _decode_body_data(data)
        if text is not None:
            return text
        logger.debug("Skipping undecodable text/plain part")
    return ""


def list_messages(
    service,
    page_token: str | None = None,
    page_size: int = PAGE_SIZE,
    query: str | None = None,
) -> MessagePage:
    """Fetch one page of message ids. A missing next token marks the last page."""
    kwargs: dict = {"userId": "me", "maxResults": page_size, "fields": "messages/id,nextPageToken"}
    if query:
        kwargs["q"] = query
    if page_token:
        kwargs["pageToken"] = page_token

    resp = _execute(service.users().messages().list(**kwargs), "fetch Gmail messages")
    return MessagePage(
        message_ids=[m["id"] for m in resp.get("messages", [])],
        next_page_token=resp.get("nextPageToken") or None,
    )


def get_message_detail(service, message_id: str) -> Message:
    """Fetch a full message and extract subject, sender and plain-text body."""
    resp = _execute(
        service.users().messages().get(userId="me", id=message_id, format="full"),
        "fetch message details",
    )
    payload = resp.get("payload") or {}
    headers = payload.get("headers", [])
    return Message(
        id=message_id,
        subject=_header(headers, "subject"),
        sender=_header(headers, "from"),
        body=extract_plain_text(payload),
    )


def trash_message(service, message_id: str) -> None:
    _execute(service.users().messages().trash(userId="me", id=message_id), "trash message")


def delete_message(service, message_id: str) -> None:
    """Permanently delete a message. Requires the full mail scope."""
    _execute(service.users().messages().delete(userId="me", id=message_id), "delete message")


class GmailMailbox:
    """Mailbox bound to one Gmail service for the duration of a run."""

    def __init__(self, service) -> None:
        self.service = service

    @classmethod
    def from_token(cls, access_token: str) -> GmailMailbox:
        return cls(build_service(access_token))

    def list_messages(self, page_token: str | None = None, page_size: int = PAGE_SIZE) -> MessagePage:
        return list_messages(self.service, page_token=page_token, page_size=page_size)

    def get_message_detail(self, message_id: str) -> Message:
        return get_message_detail(self.service, message_id)

    def trash_message(self, message_id: str) -> None:
        trash_message(self.service, message_id)

    def delete_message(self, message_id: str) -> None:
        delete_message(self.service, message_id)
