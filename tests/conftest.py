import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from ai_attendance.dependencies import Services
from ai_attendance.errors import RecordError, StorageError
from ai_attendance.outcome import Outcome
from ai_attendance.schemas import AttendanceRecord, FaceDetection
from ai_attendance.services.identity import IdentityGate

FIXED_NOW = datetime(2026, 10, 19, 15, 30, tzinfo=timezone.utc)


# -----------------------------
# Fake collaborators
# -----------------------------
class FakeBlobSink:
    def __init__(self, url="https://storage.example/attendance/img.jpg", fail=False):
        self.url = url
        self.fail = fail
        self.calls = []

    def store(self, image, filename):
        self.calls.append((image, filename))
        if self.fail:
            raise StorageError("upload refused")
        return self.url


class FakeDetector:
    def __init__(self, faces=None, error=None):
        self.faces = faces or []
        self.error = error
        self.calls = 0

    def detect(self, image):
        self.calls += 1
        if self.error is not None:
            return Outcome.failed(self.error)
        return Outcome.ok(list(self.faces))


class FakeInsights:
    def __init__(self, text="Attendance looks steady.", error=None):
        self.text = text
        self.error = error
        self.entries = []

    def analyze(self, entries):
        self.entries.append(entries)
        if self.error is not None:
            return Outcome.failed(self.error)
        return Outcome.ok(self.text)


class FakeSubscription:
    def __init__(self, store):
        self.store = store
        self.active = True

    def unsubscribe(self):
        self.active = False


class FakeRecords:
    """In-memory attendance table with a push-on-demand live query."""

    def __init__(self, fail_insert=False):
        self.rows = []
        self.fail_insert = fail_insert
        self.sentinel_written = False
        self.subscriptions = []
        self._next_id = 1

    def insert(self, record):
        if self.fail_insert:
            raise RecordError("insert refused")
        record = record.model_copy(update={"id": f"rec-{self._next_id}"})
        self._next_id += 1
        self.rows.append(record)
        return record

    def recent(self, limit=30):
        rows = [r for r in self.rows if not r.is_initial_record]
        return sorted(rows, key=lambda r: r.timestamp, reverse=True)[:limit]

    def is_empty(self):
        return not self.rows and not self.sentinel_written

    def insert_sentinel(self):
        self.sentinel_written = True

    def subscribe_recent(self, limit, on_snapshot, on_error, interval=5.0, keep_alive=None):
        subscription = FakeSubscription(self)
        subscription.keep_alive = keep_alive
        subscription.limit = limit
        subscription.on_snapshot = on_snapshot
        subscription.on_error = on_error
        self.subscriptions.append(subscription)
        on_snapshot(tuple(self.recent(limit)))
        return subscription

    def push(self):
        for sub in self.subscriptions:
            if sub.active:
                sub.on_snapshot(tuple(self.recent(sub.limit)))

    def break_connection(self, error=None):
        for sub in self.subscriptions:
            if sub.active:
                sub.active = False
                sub.on_error(error or ConnectionError("offline"))


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.ok = status_code < 400
        self.reason = "OK" if self.ok else "Forbidden"

    def json(self):
        return self.payload


class FakeHttp:
    """Stands in for a requests.Session."""

    def __init__(self, response=None, error=None, delay=0):
        self.response = response
        self.error = error
        self.delay = delay
        self.requests = []

    def post(self, url, params=None, json=None, timeout=None):
        self.requests.append({"url": url, "params": params, "json": json, "timeout": timeout})
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


class FakeAuthError(Exception):
    def __init__(self, message, code=None, status=400):
        super().__init__(message)
        self.code = code
        self.status = status


class FakeQuery:
    """Chainable stand-in for the Supabase query builder."""

    def __init__(self, table, data=None, error=None):
        self.table = table
        self.data = data if data is not None else []
        self.error = error
        self.calls = []

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return method

    def execute(self):
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self.data)


class FakeAuth:
    def __init__(self):
        self.users = {}
        self.current = None
        self.calls = []
        self.fail_with = None
        self.admin = SimpleNamespace(sign_out=self._admin_sign_out)

    def _user(self, uid, email, name):
        return SimpleNamespace(id=uid, email=email, user_metadata={"display_name": name})

    def _maybe_fail(self, name):
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    def sign_up(self, credentials):
        self._maybe_fail("sign_up")
        uid = f"uid-{len(self.users) + 1}"
        name = credentials["options"]["data"]["display_name"]
        user = self._user(uid, credentials["email"], name)
        self.users[credentials["email"]] = (credentials["password"], user)
        self.current = SimpleNamespace(user=user, access_token=f"token-{uid}")
        return SimpleNamespace(user=user, session=self.current)

    def sign_in_with_password(self, credentials):
        self._maybe_fail("sign_in_with_password")
        password, user = self.users.get(credentials["email"], (None, None))
        if user is None or password != credentials["password"]:
            raise FakeAuthError("Invalid login credentials", code="invalid_credentials")
        self.current = SimpleNamespace(user=user, access_token=f"token-{user.id}")
        return SimpleNamespace(user=user, session=self.current)

    def sign_out(self):
        self._maybe_fail("sign_out")
        self.current = None

    def get_session(self):
        self.calls.append("get_session")
        return self.current

    def get_user(self, token):
        for _, user in self.users.values():
            if token == f"token-{user.id}":
                return SimpleNamespace(user=user)
        raise FakeAuthError("invalid JWT", code="bad_jwt", status=401)

    def on_auth_state_change(self, callback):
        self.listener = callback
        return SimpleNamespace(unsubscribe=lambda: None)

    def _admin_sign_out(self, token):
        self._maybe_fail("admin.sign_out")


class FakeSupabase:
    def __init__(self):
        self.auth = FakeAuth()
        self.queries = []
        self.table_error = None

    def table(self, name):
        query = FakeQuery(name, error=self.table_error)
        self.queries.append(query)
        return query


# -----------------------------
# Fixtures
# -----------------------------
def make_face(confidence=0.93):
    return FaceDetection(detection_confidence=confidence)


def make_record(user_id="u1", confidence=0.8, timestamp=FIXED_NOW, **kwargs):
    return AttendanceRecord(
        timestamp=timestamp,
        image_url="https://storage.example/x.jpg",
        face_detected=True,
        confidence=confidence,
        user_id=user_id,
        name=kwargs.pop("name", user_id),
        **kwargs,
    )


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def gate(supabase):
    return IdentityGate(supabase)


@pytest.fixture
def records():
    return FakeRecords()


@pytest.fixture
def services(supabase, records):
    from ai_attendance.dashboard import DashboardAggregator

    return Services(
        identity=IdentityGate(supabase),
        identity_factory=lambda: IdentityGate(supabase),
        blob_sink=FakeBlobSink(),
        detector=FakeDetector(faces=[make_face(0.93)]),
        records=records,
        insights=FakeInsights(),
        aggregator=DashboardAggregator(records, window=30, poll_interval=0.01),
    )


@pytest.fixture
def yesterday():
    return FIXED_NOW - timedelta(days=1)
