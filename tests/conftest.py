import os
from datetime import datetime

import pytest

# Set testing environment before the app reads its settings
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.main import app
from app.api.deps import get_clock, get_notifier, get_rating_recalculator
from app.core.database import get_db, Base
from app.core.security import UserRole, create_principal_token
from app.models import Appointment, AppointmentStatus, Doctor

# Monday 2 June 2025, 08:00
NOW = datetime(2025, 6, 2, 8, 0)

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


class FrozenClock:
    def __init__(self, moment: datetime):
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def today(self):
        return self.moment.date()


class RecordingNotifier:
    def __init__(self):
        self.booked = []
        self.no_shows = []
        self.reminders = []

    def appointment_booked(self, appointment):
        self.booked.append(appointment.id)

    def appointment_no_show(self, appointment):
        self.no_shows.append(appointment.id)

    def appointment_reminder(self, appointment):
        self.reminders.append(appointment.id)


class RecordingRatings:
    def __init__(self):
        self.doctors = []

    def recalculate(self, doctor_id):
        self.doctors.append(doctor_id)


@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(test_db):
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def ratings():
    return RecordingRatings()


@pytest.fixture
def client(test_db, clock, notifier, ratings):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_rating_recalculator] = lambda: ratings
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_doctor(db, user_id: int, schedule=None) -> Doctor:
    doctor = Doctor(
        user_id=user_id,
        first_name="Test",
        last_name=f"Doctor{user_id}",
        specialization="General Practice",
        schedule=schedule if schedule is not None else {
            "monday": ["09:00-12:00"],
            "wednesday": ["14:00-16:00"],
            "friday": ["09:00-10:00"],
        },
        slot_duration=30,
        is_verified=True
    )
    db.add(doctor)
    db.commit()
    db.refresh(doctor)
    return doctor


def make_appointment(db, doctor_id: int, patient_id: int, when: datetime,
                     status: AppointmentStatus = AppointmentStatus.PENDING) -> Appointment:
    appointment = Appointment(
        doctor_id=doctor_id,
        patient_id=patient_id,
        date_heure=when,
        status=status
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


def auth_headers(user_id: int, role: UserRole) -> dict:
    return {"Authorization": f"Bearer {create_principal_token(user_id, role)}"}


# Account ids used across the suite
PATIENT_ID = 1
OTHER_PATIENT_ID = 2
DOCTOR_USER_ID = 100
OTHER_DOCTOR_USER_ID = 200
ADMIN_ID = 999


@pytest.fixture
def doctor(db):
    return make_doctor(db, DOCTOR_USER_ID)


@pytest.fixture
def other_doctor(db):
    return make_doctor(db, OTHER_DOCTOR_USER_ID)


@pytest.fixture
def patient_headers():
    return auth_headers(PATIENT_ID, UserRole.PATIENT)


@pytest.fixture
def other_patient_headers():
    return auth_headers(OTHER_PATIENT_ID, UserRole.PATIENT)


@pytest.fixture
def doctor_headers():
    return auth_headers(DOCTOR_USER_ID, UserRole.DOCTOR)


@pytest.fixture
def other_doctor_headers():
    return auth_headers(OTHER_DOCTOR_USER_ID, UserRole.DOCTOR)


@pytest.fixture
def admin_headers():
    return auth_headers(ADMIN_ID, UserRole.ADMIN)
