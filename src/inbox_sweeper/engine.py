"""Sync engine - pages through the mailbox, classifies and deletes messages."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from datetime import datetime

from .audit_log import AuditLog
from .classifier import message_matches
from .constants import (
    ESTIMATED_PAGES,
    KEY_SYNC_PROGRESS,
    KEY_TASK_STATE,
    MESSAGE_DELAY,
    MILESTONE_EVERY_DELETIONS,
    PAGE_DELAY,
    PAGE_SIZE,
    PROGRESS_NOTIFICATION_KEY,
    PROGRESS_SAVE_EVERY,
    STATUS_EVERY_DELETIONS,
    STATUS_EVERY_MESSAGES,
)
from .gmail_client import GmailMailbox, MailboxNotFoundError
from .models import (
    DeletedMessageRecord,
    ExecutionMode,
    Message,
    RuleSet,
    SyncProgress,
    SyncStatus,
    TaskState,
)
from .notifications import Notification, Notifier, NullNotifier
from .storage import Storage

logger = logging.getLogger(__name__)


class SyncPreconditionError(Exception):
    """A run was rejected before it started."""


def estimate_time_remaining(processed: int, elapsed_seconds: float) -> int | None:
    """Rough seconds-remaining estimate from the current processing rate.

    The mailbox size is unknown up front, so the total is assumed to be at
    least three times what has been processed so far, and never below 1000.
    """
    if processed <= 0 or elapsed_seconds <= 0:
        return None
    rate = processed / elapsed_seconds
    remaining = max(processed * 3, 1000) - processed
    return round(remaining / rate)


def _format_duration(seconds: float) -> str:
    seconds = round(seconds)
    minutes = round(seconds / 60)
    return f"{minutes}m" if minutes > 0 else f"{seconds}s"


class SyncEngine:
    """Runs one mailbox clean-up at a time on a worker thread.

    Collaborators are injected: ``storage`` persists run snapshots,
    ``notifier`` shows notifications, and ``mailbox_factory`` turns the
    bearer token captured at ``start()`` into a mailbox client for the run.
    """

    def __init__(
        self,
        storage: Storage,
        notifier: Notifier | None = None,
        mailbox_factory=None,
        audit_log: AuditLog | None = None,
        page_size: int = PAGE_SIZE,
        message_delay: float = MESSAGE_DELAY,
        page_delay: float = PAGE_DELAY,
    ) -> None:
        self.storage = storage
        self.notifier = notifier if notifier is not None else NullNotifier()
        self.mailbox_factory = mailbox_factory if mailbox_factory is not None else GmailMailbox.from_token
        self.audit_log = audit_log if audit_log is not None else AuditLog(storage)
        self.page_size = page_size
        self.message_delay = message_delay
        self.page_delay = page_delay

        self.status = SyncStatus.IDLE
        self.mode = ExecutionMode.FOREGROUND
        self.rule_set: RuleSet | None = None
        self.progress = SyncProgress.from_dict(storage.get(KEY_SYNC_PROGRESS, {}))
        self.task_state = TaskState.from_dict(storage.get(KEY_TASK_STATE, {}))

        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._thread: threading.Thread | None = None
        self._started_monotonic = 0.0
        self._page_count = 0
        self._permission: bool | None = None
        self._progress_notification_shown = False
        self._finishing = False

        self._recover_interrupted_run()

    # --- state ---

    @property
    def is_running(self) -> bool:
        return self.status is SyncStatus.RUNNING

    @property
    def last_error(self) -> str | None:
        return self.task_state.last_error

    def snapshot(self) -> tuple[SyncStatus, ExecutionMode, SyncProgress, TaskState]:
        """Return copies of the live run state."""
        with self._lock:
            return self.status, self.mode, replace(self.progress), replace(self.task_state)

    @property
    def has_background_permission(self) -> bool:
        """Cached permission answer; False until it has been requested."""
        return bool(self._permission)

    def can_run_in_background(self) -> bool:
        """Ask the notifier for permission once and remember the answer."""
        if self._permission is None:
            try:
                self._permission = bool(self.notifier.request_permission())
            except Exception as exc:  # noqa: BLE001
                logger.warning("Notification permission request failed: %s", exc)
                self._permission = False
        return self._permission

    # --- control ---

    def start(
        self,
        token: str | None,
        rule_set: RuleSet | None,
        mode: ExecutionMode = ExecutionMode.FOREGROUND,
    ) -> None:
        """Start a run in the background thread.

        Raises SyncPreconditionError when a run is already active, or when
        the token or rule set is missing.
        """
        with self._lock:
            if self.status is SyncStatus.RUNNING:
                raise SyncPreconditionError("A sync is already running")
            if not token:
                raise SyncPreconditionError("No access token available")
            if rule_set is None:
                raise SyncPreconditionError("No preset selected")

            if mode is ExecutionMode.BACKGROUND and not self.can_run_in_background():
                logger.warning("Notification permission denied, running in foreground")
                mode = ExecutionMode.FOREGROUND

            self._cancel.clear()
            self._finishing = False
            self.status = SyncStatus.RUNNING
            self.mode = mode
            self.rule_set = rule_set
            self._started_monotonic = time.monotonic()
            self._page_count = 0
            self.progress = SyncProgress(current_action="Connecting to Gmail...")
            self.task_state = TaskState(
                is_running=True,
                started_at=datetime.now().isoformat(),
                current_phase="Initializing",
                mode=mode.value,
            )
            self._save()

        logger.info("Starting sync with preset %r (%s)", rule_set.name, mode.value)
        self._notify_background(
            Notification(
                "Email Cleaning Started",
                f'Starting to clean emails using "{rule_set.name}" preset',
                data={"type": "sync_started", "preset_name": rule_set.name},
                priority="high",
            )
        )
        self._notify_progress("Connecting to Gmail...", "Initializing")

        self._thread = threading.Thread(
            target=self._run, args=(token, rule_set), name="inbox-sweeper-sync", daemon=True
        )
        self._thread.start()

    def cancel(self) -> bool:
        """Request the active run to stop at its next checkpoint."""
        if not self.is_running:
            return False
        logger.info("Cancellation requested")
        self._cancel.set()
        return True

    def wait(self, timeout: float | None = None) -> SyncStatus:
        if self._thread is not None:
            self._thread.join(timeout)
        return self.status

    def set_execution_mode(self, mode: ExecutionMode) -> bool:
        """Switch how progress is reported for the active run.

        Returns False when no run is active or background reporting is not
        permitted. Counters carry over unchanged.
        """
        if mode is ExecutionMode.BACKGROUND and not self.can_run_in_background():
            return False

        # Held while notifying so _finish cannot dismiss progress in between.
        with self._lock:
            if self.status is not SyncStatus.RUNNING or self._finishing:
                return False
            if mode is self.mode:
                return True
            self.mode = mode
            self.task_state.mode = mode.value
            self._save()

            logger.info("Execution mode changed to %s", mode.value)
            if mode is ExecutionMode.BACKGROUND:
                self._send(
                    Notification(
                        "Email Cleaning Continues",
                        "Moving to background mode with notifications",
                        data={"type": "background_transition"},
                    )
                )
                self._notify_progress(None, self.task_state.current_phase)
            else:
                self._dismiss_progress()
        return True

    # --- worker ---

    def _run(self, token: str, rule_set: RuleSet) -> None:
        try:
            mailbox = self.mailbox_factory(token)
            outcome = self._process_mailbox(mailbox, rule_set)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Sync run failed")
            self._finish(SyncStatus.ERRORED, "Error", error=str(exc))
            return
        if outcome is SyncStatus.STOPPED:
            self._finish(SyncStatus.STOPPED, "Stopped")
        else:
            self._finish(SyncStatus.COMPLETED, "Completed")

    def _process_mailbox(self, mailbox, rule_set: RuleSet) -> SyncStatus:
        page_token: str | None = None
        self._set_phase("Fetching")
        self._notify_progress("Fetching email list from Gmail...", "Setup")

        while True:
            if self._cancel.is_set():
                return SyncStatus.STOPPED

            self._page_count += 1
            self._set_phase(f"Fetching page {self._page_count}")
            page = mailbox.list_messages(page_token, page_size=self.page_size)
            if not page.message_ids:
                break

            total = len(page.message_ids)
            logger.debug("Page %d has %d messages", self._page_count, total)
            self._notify_progress(f"Processing page {self._page_count} ({total} emails)", "Processing")

            for index, message_id in enumerate(page.message_ids):
                if self._cancel.is_set():
                    return SyncStatus.STOPPED
                if index % STATUS_EVERY_MESSAGES == 0:
                    self._set_phase("Analyzing")
                    self._notify_progress(
                        f"Checking email {index + 1}/{total} on page {self._page_count}", "Analyzing"
                    )
                self._process_message(mailbox, message_id, rule_set)
                if self._cancel.wait(self.message_delay):
                    return SyncStatus.STOPPED

            page_token = page.next_page_token
            if not page_token:
                break
            if self._cancel.wait(self.page_delay):
                return SyncStatus.STOPPED

        return SyncStatus.COMPLETED

    def _process_message(self, mailbox, message_id: str, rule_set: RuleSet) -> None:
        try:
            message = mailbox.get_message_detail(message_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Skipping message %s, detail fetch failed: %s", message_id, exc)
            return

        with self._lock:
            self.progress.processed += 1
            self.task_state.total_processed = self.progress.processed
        deleted = message_matches(message, rule_set) and self._delete(mailbox, message)
        if deleted:
            self.audit_log.append(
                DeletedMessageRecord(
                    id=message.id,
                    subject=message.subject,
                    sender=message.sender,
                    rule_set_used=rule_set.name,
                )
            )
            with self._lock:
                self.progress.deleted += 1
                self.task_state.total_deleted = self.progress.deleted
            self._after_deletion(message)

        self._publish_progress(force=deleted)

    def _delete(self, mailbox, message: Message) -> bool:
        try:
            mailbox.trash_message(message.id)
            mailbox.delete_message(message.id)
        except MailboxNotFoundError:
            logger.info("Message %s was already removed", message.id)
            return False
        except Exception as exc:  # noqa: BLE001
            logger.warning("Skipping message %s, delete failed: %s", message.id, exc)
            return False
        logger.debug("Deleted message %s", message.id)
        return True

    def _after_deletion(self, message: Message) -> None:
        deleted = self.progress.deleted
        if deleted % STATUS_EVERY_DELETIONS == 0:
            self._set_phase("Cleaning")
            self._notify_progress(f'Deleted "{message.subject[:30]}..."', "Cleaning")
        if deleted % MILESTONE_EVERY_DELETIONS == 0:
            self._notify_background(
                Notification(
                    "Cleaning Progress",
                    f"Deleted {deleted} emails so far.",
                    data={"type": "milestone", "deleted": deleted, "processed": self.progress.processed},
                )
            )

    # --- progress ---

    def _set_phase(self, phase: str) -> None:
        if self.task_state.current_phase != phase:
            logger.debug("Phase: %s", phase)
        with self._lock:
            self.task_state.current_phase = phase

    def _publish_progress(self, force: bool = False) -> None:
        processed = self.progress.processed
        with self._lock:
            self.progress.current_action = f"Processing email {processed}"
            self.progress.percentage = min(self._page_count / ESTIMATED_PAGES * 100, 95.0)
            self.task_state.total_processed = processed
            self.task_state.total_deleted = self.progress.deleted
            self.task_state.estimated_time_remaining = estimate_time_remaining(
                processed, time.monotonic() - self._started_monotonic
            )
            if force or processed % PROGRESS_SAVE_EVERY == 0:
                self._save()

    def _finish(self, status: SyncStatus, phase: str, error: str | None = None) -> None:
        elapsed = time.monotonic() - self._started_monotonic
        with self._lock:
            self._finishing = True
            self.progress.current_action = phase
            if status is SyncStatus.COMPLETED:
                self.progress.percentage = 100.0
            self.task_state.is_running = False
            self.task_state.current_phase = phase
            self.task_state.total_processed = self.progress.processed
            self.task_state.total_deleted = self.progress.deleted
            self.task_state.estimated_time_remaining = None
            self.task_state.last_error = error
            self._save()

        self._dismiss_progress()
        processed, deleted = self.progress.processed, self.progress.deleted
        logger.info("Sync %s: processed %d, deleted %d", status.value, processed, deleted)

        if status is SyncStatus.COMPLETED:
            if deleted > 0:
                body = f"Successfully cleaned {deleted} emails in {_format_duration(elapsed)}!"
            else:
                body = f'Scan complete! No emails matched your "{self.rule_set.name}" preset criteria.'
            self._send(
                Notification(
                    "Email Cleaning Complete",
                    body,
                    data={
                        "type": "sync_completed",
                        "processed": processed,
                        "deleted": deleted,
                        "duration": round(elapsed),
                        "preset_used": self.rule_set.name,
                    },
                    priority="high",
                )
            )
        elif status is SyncStatus.ERRORED:
            self._send(
                Notification(
                    "Email Cleaning Error",
                    f"An error occurred: {error}",
                    data={"type": "sync_error", "error": error, "processed": processed, "deleted": deleted},
                    priority="high",
                )
            )
        else:
            self._send(
                Notification(
                    "Email Cleaning Stopped",
                    "Email cleaning has been stopped by user",
                    data={"type": "sync_stopped", "processed": processed, "deleted": deleted},
                )
            )

        # A new run may start once the status leaves RUNNING.
        with self._lock:
            self.status = status

    def _save(self) -> None:
        self.storage.set(KEY_TASK_STATE, self.task_state.to_dict())
        self.storage.set(KEY_SYNC_PROGRESS, self.progress.to_dict())

    def _recover_interrupted_run(self) -> None:
        if self.task_state.is_running:
            logger.warning("Previous sync did not finish, marking it as interrupted")
            self.task_state.is_running = False
            self.task_state.current_phase = "Interrupted"
            self.task_state.estimated_time_remaining = None
            self._save()

    # --- notifications ---

    def _send(self, notification: Notification) -> None:
        if not self.can_run_in_background():
            return
        try:
            self.notifier.notify(notification)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to send notification %r: %s", notification.title, exc)

    def _notify_background(self, notification: Notification) -> None:
        if self.mode is ExecutionMode.BACKGROUND:
            self._send(notification)

    def _notify_progress(self, action: str | None, phase: str) -> None:
        if self.mode is not ExecutionMode.BACKGROUND:
            return
        processed, deleted = self.progress.processed, self.progress.deleted
        self._send(
            Notification(
                f"Email Cleaning - {phase}" if phase else "Email Cleaning in Progress",
                action or f"Processed {processed} emails, deleted {deleted}",
                data={"type": "progress", "processed": processed, "deleted": deleted, "phase": phase},
                key=PROGRESS_NOTIFICATION_KEY,
                ongoing=True,
            )
        )
        self._progress_notification_shown = True

    def _dismiss_progress(self) -> None:
        if self._progress_notification_shown:
            self._progress_notification_shown = False
            try:
                self.notifier.dismiss(PROGRESS_NOTIFICATION_KEY)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to dismiss progress notification: %s", exc)
