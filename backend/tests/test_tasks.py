"""Celery tasks run eagerly against mocked sessions and scans."""
from datetime import timedelta
from unittest.mock import MagicMock, patch

from jobscan import tasks
from jobscan.errors import NoCredentialError
from jobscan.models import GmailCredential, OAuthState, User, utcnow
from jobscan.oauth_state_db import OAUTH_STATE_TTL_SECONDS
from jobscan.services.ingestion import ScanResult


def test_run_gmail_scan_returns_counts():
    session = MagicMock()
    with patch.object(tasks, "SessionLocal", return_value=session), \
            patch.object(tasks, "run_scan_for_owner", return_value=ScanResult(processed_count=2)) as run:
        out = tasks.run_gmail_scan.apply(args=[5]).get()

    assert out == {"processedCount": 2, "jobRelatedCount": 0, "skippedCount": 0, "errorCount": 0}
    run.assert_called_once_with(session, 5)
    session.close.assert_called_once()


def test_run_gmail_scan_reports_scan_errors():
    session = MagicMock()
    with patch.object(tasks, "SessionLocal", return_value=session), \
            patch.object(tasks, "run_scan_for_owner", side_effect=NoCredentialError(owner_id=5)):
        out = tasks.run_gmail_scan.apply(args=[5]).get()

    assert out["error"] == "no_credential"
    session.close.assert_called_once()


def test_run_gmail_scan_skips_owner_locked_by_another_process(fake_redis):
    fake_redis.held = True
    session = MagicMock()
    with patch.object(tasks, "SessionLocal", return_value=session):
        out = tasks.run_gmail_scan.apply(args=[5]).get()

    assert out["error"] == "scan_in_progress"
    assert fake_redis.lock_names == ["scan-lock:5"]
    session.commit.assert_not_called()
    session.close.assert_called_once()

def test_scan_all_owners_queues_connected_owners(db):
    for i in range(2):
        user = User(email=f"u{i}@example.com")
        db.add(user)
        db.flush()
        db.add(GmailCredential(owner_id=user.id, access_token="a"))
    db.add(User(email="not-connected@example.com"))
    db.commit()
    # the task closes its session
    db.close = MagicMock()

    with patch.object(tasks, "SessionLocal", return_value=db), \
            patch.object(tasks, "run_gmail_scan") as task:
        queued = tasks.scan_all_owners()

    assert queued == 2
    assert sorted(c.args[0] for c in task.delay.call_args_list) == [1, 2]


def test_beat_schedules_periodic_scan_of_all_owners():
    from jobscan.celery_app import celery_app

    entry = celery_app.conf.beat_schedule["scan-all-owners"]
    assert entry["task"] == tasks.scan_all_owners.name
    assert entry["schedule"] > 0


def test_scan_all_owners_removes_expired_oauth_states(db):
    db.add(OAuthState(state_token="fresh", created_at=utcnow()))
    db.add(OAuthState(state_token="stale", created_at=utcnow() - timedelta(seconds=OAUTH_STATE_TTL_SECONDS + 1)))
    db.commit()
    db.close = MagicMock()

    with patch.object(tasks, "SessionLocal", return_value=db), \
            patch.object(tasks, "run_gmail_scan"):
        assert tasks.scan_all_owners() == 0

    assert [r.state_token for r in db.query(OAuthState).all()] == ["fresh"]
