"""Observable view of sync state for the presentation layer."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from .constants import KEY_TASK_STATE, POLL_INTERVAL
from .engine import SyncEngine
from .models import DeletedMessageRecord, ExecutionMode, SyncProgress, SyncStatus, TaskState

logger = logging.getLogger(__name__)

APP_ACTIVE = "active"
APP_BACKGROUND = "background"


@dataclass
class SyncState:
    status: SyncStatus = SyncStatus.IDLE
    mode: ExecutionMode = ExecutionMode.FOREGROUND
    is_running: bool = False
    progress: SyncProgress = field(default_factory=SyncProgress)
    task_state: TaskState = field(default_factory=TaskState)
    deleted_messages: list[DeletedMessageRecord] = field(default_factory=list)
    can_run_in_background: bool = False


class SyncStateAccessor:
    """Polls the engine while a run is active and bridges app lifecycle events.

    Reads may lag the engine by up to ``poll_interval`` seconds.
    """

    def __init__(self, engine: SyncEngine, poll_interval: float = POLL_INTERVAL) -> None:
        self.engine = engine
        self.poll_interval = poll_interval
        self.app_state = APP_ACTIVE
        self._listeners: list[Callable[[SyncState], None]] = []
        self._stop = threading.Event()
        self._poller: threading.Thread | None = None
        self.state = self._load()

    def subscribe(self, listener: Callable[[SyncState], None]) -> Callable[[], None]:
        """Register a listener called after every refresh. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def refresh(self) -> SyncState:
        """Reload state now, and start or stop polling to match the run."""
        state = self._update()
        if state.is_running or state.task_state.is_running:
            self.start_polling()
        return state

    def start_polling(self) -> None:
        if self._poller is not None and self._poller.is_alive():
            return
        self._stop.clear()
        self._poller = threading.Thread(target=self._poll, name="inbox-sweeper-poller", daemon=True)
        self._poller.start()

    def stop_polling(self) -> None:
        self._stop.set()
        if self._poller is not None and self._poller is not threading.current_thread():
            self._poller.join()
        self._poller = None

    @property
    def is_polling(self) -> bool:
        return self._poller is not None and self._poller.is_alive()

    # --- lifecycle bridge ---

    def handle_app_state_change(self, next_state: str) -> None:
        """React to the host process moving between foreground and background."""
        previous, self.app_state = self.app_state, next_state

        if previous == APP_ACTIVE and next_state == APP_BACKGROUND:
            logger.debug("App went to background")
            if (
                self.engine.is_running
                and self.engine.mode is ExecutionMode.FOREGROUND
                and self.engine.can_run_in_background()
            ):
                logger.info("Transitioning sync to background mode")
                self.engine.set_execution_mode(ExecutionMode.BACKGROUND)
        elif previous == APP_BACKGROUND and next_state == APP_ACTIVE:
            logger.debug("App came to foreground")
            self.refresh()

    def handle_notification_received(self, notification=None) -> None:  # noqa: ARG002
        self.refresh()

    def request_notification_permissions(self) -> bool:
        allowed = self.engine.can_run_in_background()
        self.state.can_run_in_background = allowed
        return allowed

    def clear_deleted_messages(self) -> None:
        self.engine.audit_log.clear()
        self._update()

    # --- internals ---

    def _load(self) -> SyncState:
        status, mode, progress, task_state = self.engine.snapshot()
        if status is not SyncStatus.RUNNING:
            # Idle or finished: the saved snapshot also covers earlier processes.
            task_state = TaskState.from_dict(self.engine.storage.get(KEY_TASK_STATE, {}))
        return SyncState(
            status=status,
            mode=mode,
            is_running=status is SyncStatus.RUNNING,
            progress=progress,
            task_state=task_state,
            deleted_messages=self.engine.audit_log.get_all(),
            can_run_in_background=self.engine.has_background_permission,
        )

    def _update(self) -> SyncState:
        self.state = self._load()
        for listener in list(self._listeners):
            listener(self.state)
        return self.state

    def _poll(self) -> None:
        while not self._stop.wait(self.poll_interval):
            state = self._update()
            if not state.is_running:
                break
