"""Tests for the sync engine."""

import pytest

from conftest import FakeMailbox, RecordingNotifier, ham, spam
from inbox_sweeper.audit_log import AuditLog
from inbox_sweeper.constants import KEY_TASK_STATE, PROGRESS_NOTIFICATION_KEY
from inbox_sweeper.engine import SyncEngine, SyncPreconditionError, estimate_time_remaining
from inbox_sweeper.models import ExecutionMode, SyncStatus, TaskState


def test_run_deletes_matching_messages(make_engine, storage, promo_rules):
    """Matching messages are trashed, deleted and recorded."""
    mailbox = FakeMailbox([[spam("m1"), ham("m2"), spam("m3")]])
    engine = make_engine(mailbox)

    engine.start("token", promo_rules)
    assert engine.wait(timeout=5) is SyncStatus.COMPLETED

    assert engine.progress.processed == 3
    assert engine.progress.deleted == 2
    assert mailbox.trashed == ["m1", "m3"]
    assert mailbox.deleted == ["m1", "m3"]

    records = AuditLog(storage).get_all()
    assert [r.id for r in records] == ["m1", "m3"]
    assert records[0].rule_set_used == "Promo"
    assert records[0].sender == "Deals <deals@shop.example>"

    state = TaskState.from_dict(storage.get(KEY_TASK_STATE))
    assert state.is_running is False
    assert state.current_phase == "Completed"
    assert state.total_processed == 3
    assert state.total_deleted == 2
    assert state.last_error is None


def test_pages_followed_until_no_token(make_engine, promo_rules):
    """Every page is fetched until there is no next page token."""
    mailbox = FakeMailbox([[spam("a1"), ham("a2")], [ham("b1")], [spam("c1")]])
    engine = make_engine(mailbox)

    engine.start("token", promo_rules)
    engine.wait(timeout=5)

    assert mailbox.list_calls == [None, "1", "2"]
    assert mailbox.fetched == ["a1", "a2", "b1", "c1"]
    assert engine.progress.processed == 4
    assert engine.progress.deleted == 2


def test_empty_mailbox_completes(make_engine, promo_rules, notifier):
    """An empty mailbox completes with nothing deleted."""
    engine = make_engine(FakeMailbox([]))

    engine.start("token", promo_rules)
    assert engine.wait(timeout=5) is SyncStatus.COMPLETED
    assert engine.progress.processed == 0
    assert "No emails matched" in notifier.sent[-1].body


def test_list_failure_on_page_two_errors_run(make_engine, storage, promo_rules, notifier):
    """A listing failure ends the run with an error and keeps earlier work."""
    mailbox = FakeMailbox([[spam("a1"), ham("a2")], [spam("b1")], [spam("c1")]])
    mailbox.fail_list_on_page = 1
    engine = make_engine(mailbox)

    engine.start("token", promo_rules)
    assert engine.wait(timeout=5) is SyncStatus.ERRORED

    assert engine.progress.processed == 2
    assert engine.progress.deleted == 1
    assert "boom" in engine.last_error
    assert [r.id for r in AuditLog(storage).get_all()] == ["a1"]

    state = TaskState.from_dict(storage.get(KEY_TASK_STATE))
    assert state.is_running is False
    assert state.current_phase == "Error"
    assert "boom" in state.last_error
    assert notifier.sent[-1].title == "Email Cleaning Error"


def test_mailbox_factory_failure_errors_run(storage, promo_rules):
    """A failure building the mailbox client ends the run with an error."""
    def broken_factory(token):
        raise RuntimeError("cannot connect")

    engine = SyncEngine(storage, mailbox_factory=broken_factory, message_delay=0, page_delay=0)
    engine.start("token", promo_rules)

    assert engine.wait(timeout=5) is SyncStatus.ERRORED
    assert engine.last_error == "cannot connect"


def test_message_failures_are_skipped(make_engine, storage, promo_rules):
    """Per-message failures are skipped and the run continues."""
    mailbox = FakeMailbox([[spam("m1"), spam("m2"), spam("m3"), spam("m4")]])
    mailbox.fail_detail = {"m1"}
    mailbox.fail_delete = {"m2"}
    mailbox.not_found = {"m3"}
    engine = make_engine(mailbox)

    engine.start("token", promo_rules)
    assert engine.wait(timeout=5) is SyncStatus.COMPLETED

    assert engine.progress.processed == 3
    assert engine.progress.deleted == 1
    assert engine.last_error is None
    assert [r.id for r in AuditLog(storage).get_all()] == ["m4"]


def test_cancel_stops_at_next_checkpoint(make_engine, storage, promo_rules):
    """Cancelling stops the run before the next message."""
    page = [spam(f"m{i}") for i in range(1, 6)]
    mailbox = FakeMailbox([page, [spam("n1")]])
    engine = make_engine(mailbox)

    def cancel_on_second(message_id):
        if message_id == "m2":
            engine.cancel()

    mailbox.on_detail = cancel_on_second
    engine.start("token", promo_rules)

    assert engine.wait(timeout=5) is SyncStatus.STOPPED
    # The in-flight message finishes, nothing after it is touched.
    assert mailbox.fetched == ["m1", "m2"]
    assert engine.progress.processed == 2
    assert mailbox.deleted == ["m1", "m2"]
    assert mailbox.list_calls == [None]

    state = TaskState.from_dict(storage.get(KEY_TASK_STATE))
    assert state.current_phase == "Stopped"
    assert state.last_error is None


def test_cancel_when_idle_is_noop(make_engine):
    """Cancelling without a run does nothing."""
    engine = make_engine(FakeMailbox([]))
    assert engine.cancel() is False


def test_start_requires_token(make_engine, promo_rules):
    """Starting without a token is rejected."""
    engine = make_engine(FakeMailbox([]))
    with pytest.raises(SyncPreconditionError, match="access token"):
        engine.start(None, promo_rules)
    with pytest.raises(SyncPreconditionError):
        engine.start("", promo_rules)
    assert engine.status is SyncStatus.IDLE


def test_start_requires_rule_set(make_engine):
    """Starting without a preset is rejected."""
    engine = make_engine(FakeMailbox([]))
    with pytest.raises(SyncPreconditionError, match="preset"):
        engine.start("token", None)
    assert engine.status is SyncStatus.IDLE


def test_second_start_rejected_while_running(make_engine, promo_rules, gate):
    """Only one run can be active at a time."""
    mailbox = FakeMailbox([[spam("m1")]])
    mailbox.on_detail = lambda message_id: gate.wait(5)
    engine = make_engine(mailbox)

    engine.start("token", promo_rules)
    with pytest.raises(SyncPreconditionError, match="already running"):
        engine.start("token", promo_rules)

    gate.set()
    assert engine.wait(timeout=5) is SyncStatus.COMPLETED
    assert engine.progress.processed == 1


def test_new_run_resets_counters(make_engine, promo_rules):
    """A new run starts counting from zero."""
    mailbox = FakeMailbox([[spam("m1"), spam("m2")]])
    engine = make_engine(mailbox)

    engine.start("token", promo_rules)
    engine.wait(timeout=5)
    engine.start("token", promo_rules)
    engine.wait(timeout=5)

    assert engine.progress.processed == 2
    assert engine.progress.deleted == 2


def test_foreground_run_sends_only_terminal_notification(make_engine, promo_rules, notifier):
    """Foreground runs only notify when they finish."""
    engine = make_engine(FakeMailbox([[spam("m1"), ham("m2")]]))

    engine.start("token", promo_rules)
    engine.wait(timeout=5)

    assert notifier.titles() == ["Email Cleaning Complete"]
    assert "Successfully cleaned 1 emails" in notifier.sent[0].body


def test_background_run_sends_progress_notifications(make_engine, promo_rules, notifier):
    """Background runs send start, progress and completion notifications."""
    engine = make_engine(FakeMailbox([[spam("m1"), ham("m2")]]))

    engine.start("token", promo_rules, mode=ExecutionMode.BACKGROUND)
    engine.wait(timeout=5)

    titles = notifier.titles()
    assert titles[0] == "Email Cleaning Started"
    assert titles[-1] == "Email Cleaning Complete"
    progress = [n for n in notifier.sent if n.key == PROGRESS_NOTIFICATION_KEY]
    assert progress
    assert all(n.ongoing for n in progress)
    assert notifier.dismissed == [PROGRESS_NOTIFICATION_KEY]


def test_milestone_notification(storage, promo_rules):
    """Every 25 deletions sends a milestone notification."""
    notifier = RecordingNotifier()
    mailbox = FakeMailbox([[spam(f"m{i}") for i in range(25)]])
    engine = SyncEngine(
        storage, notifier=notifier, mailbox_factory=lambda token: mailbox, message_delay=0, page_delay=0
    )

    engine.start("token", promo_rules, mode=ExecutionMode.BACKGROUND)
    engine.wait(timeout=5)

    milestones = [n for n in notifier.sent if n.data.get("type") == "milestone"]
    assert len(milestones) == 1
    assert milestones[0].data["deleted"] == 25


def test_background_without_permission_falls_back(make_engine, promo_rules):
    """Background runs fall back to foreground without permission."""
    notifier = RecordingNotifier(allowed=False)
    engine = make_engine(FakeMailbox([[spam("m1")]]), notifier=notifier)

    engine.start("token", promo_rules, mode=ExecutionMode.BACKGROUND)
    assert engine.mode is ExecutionMode.FOREGROUND
    engine.wait(timeout=5)
    assert notifier.sent == []


def test_switch_to_background_mid_run(make_engine, promo_rules, notifier, gate):
    """A running sync can move to background mode."""
    mailbox = FakeMailbox([[spam("m1"), spam("m2")]])
    mailbox.on_detail = lambda message_id: gate.wait(5) if message_id == "m2" else None
    engine = make_engine(mailbox)

    engine.start("token", promo_rules)
    assert engine.set_execution_mode(ExecutionMode.BACKGROUND) is True
    assert engine.mode is ExecutionMode.BACKGROUND
    assert "Email Cleaning Continues" in notifier.titles()

    gate.set()
    assert engine.wait(timeout=5) is SyncStatus.COMPLETED
    assert engine.progress.processed == 2
    assert engine.progress.deleted == 2


def test_set_execution_mode_requires_running(make_engine):
    """Mode changes need an active run."""
    engine = make_engine(FakeMailbox([]))
    assert engine.set_execution_mode(ExecutionMode.BACKGROUND) is False


def test_interrupted_run_is_recovered(storage):
    """A run left marked as running is recovered as interrupted."""
    storage.set(KEY_TASK_STATE, TaskState(is_running=True, total_processed=7, current_phase="Analyzing").to_dict())

    engine = SyncEngine(storage)

    assert engine.status is SyncStatus.IDLE
    state = TaskState.from_dict(storage.get(KEY_TASK_STATE))
    assert state.is_running is False
    assert state.current_phase == "Interrupted"
    assert state.total_processed == 7


def test_audit_log_cap_respected_by_engine(storage, promo_rules):
    """The engine honours the cap of an injected audit log."""
    mailbox = FakeMailbox([[spam(f"m{i}") for i in range(5)]])
    engine = SyncEngine(
        storage,
        mailbox_factory=lambda token: mailbox,
        audit_log=AuditLog(storage, limit=3),
        message_delay=0,
        page_delay=0,
    )

    engine.start("token", promo_rules)
    engine.wait(timeout=5)

    assert [r.id for r in engine.audit_log.get_all()] == ["m2", "m3", "m4"]


def test_estimate_time_remaining():
    """Remaining time follows the current rate and assumed total."""
    assert estimate_time_remaining(0, 10) is None
    assert estimate_time_remaining(10, 0) is None
    # 10 msgs/s, assumed total 1000
    assert estimate_time_remaining(100, 10) == 90
    # assumed total grows to 3x processed
    assert estimate_time_remaining(1000, 100) == 200


def test_injected_empty_audit_log_is_kept(storage):
    """An empty injected audit log is used as given, not replaced by a default."""
    log = AuditLog(storage, limit=3)
    notifier = RecordingNotifier()

    engine = SyncEngine(storage, notifier=notifier, audit_log=log)

    assert engine.audit_log is log
    assert engine.notifier is notifier


def test_mode_switch_rejected_while_finishing(make_engine, promo_rules):
    """A mode switch racing the end of a run must not leave a progress notification behind."""
    switch_results = []

    class SwitchingNotifier(RecordingNotifier):
        def notify(self, notification) -> None:
            super().notify(notification)
            if notification.title == "Email Cleaning Complete":
                switch_results.append(engine.set_execution_mode(ExecutionMode.BACKGROUND))

    notifier = SwitchingNotifier()
    engine = make_engine(FakeMailbox([[spam("m1")]]), notifier=notifier)

    engine.start("token", promo_rules)
    assert engine.wait(timeout=5) is SyncStatus.COMPLETED

    assert switch_results == [False]
    assert engine.mode is ExecutionMode.FOREGROUND
    assert notifier.titles() == ["Email Cleaning Complete"]
    assert not [n for n in notifier.sent if n.key == PROGRESS_NOTIFICATION_KEY]


def test_finished_run_status_is_terminal(make_engine, promo_rules):
    """A finished run leaves the engine in a terminal status."""
    engine = make_engine(FakeMailbox([[ham("m1")]]))
    assert engine.status.is_terminal is False

    engine.start("token", promo_rules)
    assert engine.wait(timeout=5).is_terminal is True
