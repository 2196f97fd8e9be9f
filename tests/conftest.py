import os
from dataclasses import dataclass
from datetime import datetime, timedelta

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("TWILIO_ACCOUNT_SID", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from floorops.database import Base, build_engine, get_db  # noqa: E402
from floorops.main import app  # noqa: E402
from floorops.models import Client, Engineer, Material, User, UserRole  # noqa: E402
from floorops.security_utils import create_jwt_token  # noqa: E402
from floorops.services.sms_service import get_otp_dispatcher  # noqa: E402
from floorops.shared.timeutils import get_clock  # noqa: E402

START = datetime(2025, 6, 1, 8, 0, 0)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class SentOtp:
    destination: str
    code: str
    subject_type: str
    subject_id: str


class RecordingDispatcher:
    """Stands in for the SMS gateway and keeps every code it was handed"""

    def __init__(self):
        self.sent: list[SentOtp] = []

    def dispatch(self, destination, code, subject_type, subject_id):
        self.sent.append(SentOtp(destination, code, subject_type, subject_id))

    def last_code(self, subject_id: str) -> str:
        codes = [s.code for s in self.sent if s.subject_id == subject_id]
        assert codes, f"no OTP dispatched for {subject_id}"
        return codes[-1]


def wrong_code(code: str) -> str:
    return str((int(code) + 1) % 10 ** len(code)).zfill(len(code))


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'floorops-test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def seed(db):
    """Two engineers, one client and one material, plus an admin and engineer logins"""
    engineer = Engineer(name="Ravi Kumar", email="ravi@example.com", mobile_number="+919800000001")
    other_engineer = Engineer(name="Anil Das", email="anil@example.com", mobile_number="+919800000002")
    client = Client(
        name="Acme Interiors",
        primary_contact="+919876543210",
        address="12 MG Road, Bengaluru",
    )
    inactive_client = Client(name="Closed Co", primary_contact="+919876500000", is_active=False)
    material = Material(name="Vinyl plank", unit="box", reorder_level=10)
    db.add_all([engineer, other_engineer, client, inactive_client, material])
    db.flush()

    admin = User(email="admin@example.com", name="Admin", role=UserRole.ADMIN.value)
    engineer_user = User(
        email="ravi@example.com",
        name="Ravi Kumar",
        role=UserRole.ENGINEER.value,
        engineer_id=engineer.id,
    )
    other_user = User(
        email="anil@example.com",
        name="Anil Das",
        role=UserRole.ENGINEER.value,
        engineer_id=other_engineer.id,
    )
    db.add_all([admin, engineer_user, other_user])
    db.commit()

    return {
        "admin": admin,
        "engineer": engineer,
        "engineer_user": engineer_user,
        "other_engineer": other_engineer,
        "other_user": other_user,
        "client": client,
        "inactive_client": inactive_client,
        "material": material,
    }


def auth_headers(user: User) -> dict:
    token = create_jwt_token({"sub": user.id}, timedelta(hours=1))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api(session_factory, clock, dispatcher):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_otp_dispatcher] = lambda: dispatcher
    yield TestClient(app)
    app.dependency_overrides.clear()
