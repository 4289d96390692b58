import os

# Settings are cached on first use, so the environment must be in place
# before anything from boxinator is imported.
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.pop("SMTP_HOST", None)
os.environ.pop("DATABASE_URL", None)

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from boxinator.application.service import ShipmentService
from boxinator.auth_local import create_access_token, hash_password
from boxinator.domain.records import AccountType
from boxinator.infrastructure.memory_store import MemoryShipmentStore

PASSWORD = "correct-horse"


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send_receipt(self, email, shipment, is_guest=False):
        if self.fail:
            raise ConnectionError("smtp unreachable")
        self.sent.append((email, shipment.id, is_guest))


class RacingStore:
    """Delegates to a real store, holding the first call of ``method`` in
    each thread at a barrier until every party has made that call."""

    def __init__(self, inner, method, parties=2):
        self._inner = inner
        self._method = method
        self._barrier = threading.Barrier(parties, timeout=5)
        self._local = threading.local()

    def __getattr__(self, name):
        attr = getattr(self._inner, name)
        if name != self._method:
            return attr

        def wrapper(*args, **kwargs):
            result = attr(*args, **kwargs)
            if not getattr(self._local, "waited", False):
                self._local.waited = True
                self._barrier.wait()
            return result

        return wrapper


def run_concurrently(*calls):
    """Run each call on its own thread; exceptions are returned, not raised."""
    def outcome(call):
        try:
            return call()
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(outcome, calls))


@pytest.fixture
def store():
    store = MemoryShipmentStore()
    store.create_country({"name": "Norway", "code": "NO", "multiplier": 0.0, "is_active": True})
    store.create_country({"name": "Germany", "code": "DE", "multiplier": 5.0, "is_active": True})
    store.create_country({"name": "Atlantis", "code": "AT", "multiplier": 9.0, "is_active": False})
    return store


@pytest.fixture
def norway(store):
    return store.find_country_by_name("Norway")


@pytest.fixture
def germany(store):
    return store.find_country_by_name("Germany")


@pytest.fixture
def atlantis(store):
    return store.find_country_by_name("Atlantis")


def make_account(store, email, account_type=AccountType.REGISTERED_USER, password=PASSWORD):
    return store.create_account({
        "email": email,
        "password_hash": hash_password(password) if password else None,
        "first_name": "Test",
        "last_name": "User",
        "account_type": account_type,
        "is_email_verified": True,
    })


@pytest.fixture
def admin(store):
    return make_account(store, "admin@boxinator.com", AccountType.ADMINISTRATOR)


@pytest.fixture
def user(store):
    return make_account(store, "user@boxinator.com")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(store, notifier):
    return ShipmentService(store, notifier=notifier)


@pytest.fixture
def client(store):
    from boxinator.main import create_app

    app = create_app(store=store)
    with TestClient(app) as client:
        yield client


def auth_headers(account):
    return {"Authorization": f"Bearer {create_access_token(account.id, account.email)}"}
