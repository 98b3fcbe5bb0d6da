import hashlib
import hmac
import os
import tempfile
import time
from datetime import datetime, timedelta, timezone

import pytest

# Settings are read once at import time, so the environment must be ready first
_STATE_ROOT = tempfile.mkdtemp(prefix="livetv-tests-")
os.environ.setdefault("LICENSE_STORE_BACKEND", "memory")
os.environ.setdefault("LICENSE_RETENTION_DAYS", "0")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("DATABASE_PATH", os.path.join(_STATE_ROOT, "licenses.db"))
os.environ.setdefault("CLIENT_STATE_DIR", os.path.join(_STATE_ROOT, "client"))

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]


class FakeClock:
    """Manually advanced UTC clock"""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sign_payload():
    """Build a Stripe-Signature header value for a payload"""

    def _sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
        timestamp = int(time.time()) if timestamp is None else timestamp
        signed = f"{timestamp}.".encode("utf-8") + payload
        digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    return _sign
