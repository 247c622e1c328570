import os
import tempfile
from pathlib import Path

# Settings must point somewhere writable before any tasksync module is imported:
# tasksync.db builds its engine from them at import time.
_BOOT_DIR = Path(tempfile.mkdtemp(prefix="tasksync-tests-"))
_BOOT_SETTINGS = _BOOT_DIR / "settings.yml"
_BOOT_SETTINGS.write_text(
    f"""
app:
  name: "TaskSync"
security:
  jwt_secret: "test-jwt-secret"
  jwt_expire_minutes: 60
database:
  path: "{_BOOT_DIR / 'boot.db'}"
realtime:
  queue_size: 50
  heartbeat_seconds: 1
  max_sessions: 20
tasks:
  serialize_updates: true
logging:
  level: "INFO"
  directory: "{_BOOT_DIR / 'logs'}"
  retention_days: 7
""".lstrip()
)
os.environ["TASKSYNC_SETTINGS"] = str(_BOOT_SETTINGS)

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from tasksync.db import Base, build_engine  # noqa: E402
from tasksync import models  # noqa: E402,F401
from tasksync.notifications import NotificationService  # noqa: E402
from tasksync.repositories import SqlNotificationStore, SqlTaskStore  # noqa: E402
from tasksync.tasks import TaskLifecycleService  # noqa: E402

from fakes import RecordingChannel  # noqa: E402


def make_session(engine):
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    return Session()


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(str(tmp_path / "test.db"))
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    s = make_session(engine)
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def notification_service(db, channel):
    return NotificationService(SqlNotificationStore(db), channel)


@pytest.fixture
def service(db, channel, notification_service):
    return TaskLifecycleService(SqlTaskStore(db), notification_service, channel)
