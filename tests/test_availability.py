import pytest
from datetime import date, datetime

from app.core.exceptions import ConflictError
from app.models import AppointmentStatus, Leave
from app.services.availability_service import AvailabilityService
from app.services.weekly_template import DayNames
from tests.conftest import make_appointment, make_doctor, PATIENT_ID

API = "/api/v1"


def slots_of(client, doctor_id, day):
    response = client.get(f"{API}/doctors/{doctor_id}/slots", params={"date": day})
    assert response.status_code == 200
    return response.json()


class TestSlots:

    def test_booking_removes_slot(self, client, doctor, patient_headers):
        """Booked slots disappear from the free list and are counted in meta."""
        body = slots_of(client, doctor.id, "2025-06-09")
        assert body["status"] == "success"
        assert body["data"] == ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30"]
        assert body["meta"]["day_of_week"] == "monday"
        assert body["meta"]["total_slots"] == 6
        assert body["meta"]["booked_slots"] == 0

        response = client.post(
            f"{API}/doctors/{doctor.id}/appointments",
            json={"date_heure": "2025-06-09T09:30:00"},
            headers=patient_headers
        )
        assert response.status_code == 201
        assert response.json()["data"]["statut"] == "pending"

        body = slots_of(client, doctor.id, "2025-06-09")
        assert body["data"] == ["09:00", "10:00", "10:30", "11:00", "11:30"]
        assert body["meta"] == {
            "doctor_id": doctor.id,
            "date": "2025-06-09",
            "day_of_week": "monday",
            "total_slots": 6,
            "booked_slots": 1,
            "available_slots": 5,
            "is_on_leave": False,
        }

    def test_closed_appointments_free_the_slot(self, client, db, doctor):
        for status in (AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW):
            make_appointment(db, doctor.id, PATIENT_ID, datetime(2025, 6, 9, 9, 0), status)
        make_appointment(db, doctor.id, PATIENT_ID, datetime(2025, 6, 9, 10, 0), AppointmentStatus.CONFIRMED)

        body = slots_of(client, doctor.id, "2025-06-09")
        assert "09:00" in body["data"]
        assert "10:00" not in body["data"]
        assert body["meta"]["booked_slots"] == 1

    def test_defaults_to_today(self, client, doctor):
        response = client.get(f"{API}/doctors/{doctor.id}/slots")
        assert response.status_code == 200
        assert response.json()["meta"]["date"] == "2025-06-02"

    def test_day_without_hours(self, client, doctor):
        body = slots_of(client, doctor.id, "2025-06-10")
        assert body["data"] == []
        assert body["meta"]["total_slots"] == 0
        assert body["meta"]["is_on_leave"] is False

    def test_unknown_doctor(self, client, test_db):
        response = client.get(f"{API}/doctors/999/slots", params={"date": "2025-06-09"})
        assert response.status_code == 404
        assert response.json() == {
            "status": "error",
            "error": "not_found",
            "message": "Doctor not found",
        }

    def test_french_day_keys(self, db, clock):
        """Slot lookup and the schedule conflict check share the same day keys."""
        doctor = make_doctor(db, 300, schedule={"lundi": ["09:00-12:00"]})
        service = AvailabilityService(db, clock, DayNames("fr"))

        result = service.get_available_slots(doctor.id, date(2025, 6, 9))
        assert result.meta["day_of_week"] == "lundi"
        assert len(result.slots) == 6

        make_appointment(db, doctor.id, PATIENT_ID, datetime(2025, 6, 9, 9, 30))
        with pytest.raises(ConflictError):
            service.update_schedule(doctor.id, {"lundi": ["14:00-17:00"]})


class TestLeaves:

    def test_leave_blocks_slots(self, client, doctor, doctor_headers):
        response = client.post(
            f"{API}/doctor/leaves",
            json={"start_date": "2025-06-10", "end_date": "2025-06-12", "reason": "Conference"},
            headers=doctor_headers
        )
        assert response.status_code == 201
        leave = response.json()["data"]
        assert leave["start_date"] == "2025-06-10"
        assert leave["reason"] == "Conference"

        body = slots_of(client, doctor.id, "2025-06-11")
        assert body["data"] == []
        assert body["meta"]["is_on_leave"] is True
        assert body["meta"]["total_slots"] == 0
        assert body["meta"]["booked_slots"] == 0
        assert body["meta"]["available_slots"] == 0

        body = slots_of(client, doctor.id, "2025-06-13")
        assert body["data"] == ["09:00", "09:30"]
        assert body["meta"]["is_on_leave"] is False

    def test_booking_on_leave_day(self, client, db, doctor, patient_headers):
        db.add(Leave(doctor_id=doctor.id, start_date=date(2025, 6, 10), end_date=date(2025, 6, 12)))
        db.commit()

        response = client.post(
            f"{API}/doctors/{doctor.id}/appointments",
            json={"date_heure": "2025-06-11T14:00:00"},
            headers=patient_headers
        )
        assert response.status_code == 409
        assert response.json()["error"] == "slot_taken"

    def test_leave_conflicting_with_appointment(self, client, db, doctor, doctor_headers):
        """A leave over a booked day is refused and nothing is stored."""
        make_appointment(db, doctor.id, PATIENT_ID, datetime(2025, 6, 11, 14, 0))

        response = client.post(
            f"{API}/doctor/leaves",
            json={"start_date": "2025-06-10", "end_date": "2025-06-12"},
            headers=doctor_headers
        )
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

        response = client.get(f"{API}/doctor/availability", headers=doctor_headers)
        assert response.json()["data"]["leaves"] == []

    def test_leave_end_bound_is_inclusive(self, client, db, doctor, doctor_headers):
        make_appointment(db, doctor.id, PATIENT_ID, datetime(2025, 6, 12, 23, 30))

        response = client.post(
            f"{API}/doctor/leaves",
            json={"start_date": "2025-06-12", "end_date": "2025-06-12"},
            headers=doctor_headers
        )
        assert response.status_code == 409

    def test_cancelled_appointment_does_not_block_leave(self, client, db, doctor, doctor_headers):
        make_appointment(
            db, doctor.id, PATIENT_ID, datetime(2025, 6, 11, 14, 0), AppointmentStatus.CANCELLED
        )

        response = client.post(
            f"{API}/doctor/leaves",
            json={"start_date": "2025-06-10", "end_date": "2025-06-12"},
            headers=doctor_headers
        )
        assert response.status_code == 201

    def test_end_before_start(self, client, doctor, doctor_headers):
        response = client.post(
            f"{API}/doctor/leaves",
            json={"start_date": "2025-06-12", "end_date": "2025-06-10"},
            headers=doctor_headers
        )
        assert response.status_code == 422
        assert response.json()["error"] == "validation"

    def test_start_in_the_past(self, client, doctor, doctor_headers):
        response = client.post(
            f"{API}/doctor/leaves",
            json={"start_date": "2025-06-01", "end_date": "2025-06-03"},
            headers=doctor_headers
        )
        assert response.status_code == 422

    def test_leave_starting_today(self, client, doctor, doctor_headers):
        response = client.post(
            f"{API}/doctor/leaves",
            json={"start_date": "2025-06-02", "end_date": "2025-06-02"},
            headers=doctor_headers
        )
        assert response.status_code == 201

    def test_delete_leave(self, client, db, doctor, other_doctor, doctor_headers, other_doctor_headers):
        leave = Leave(doctor_id=doctor.id, start_date=date(2025, 6, 10), end_date=date(2025, 6, 12))
        db.add(leave)
        db.commit()
        leave_id = leave.id

        response = client.delete(f"{API}/doctor/leaves/{leave_id}", headers=other_doctor_headers)
        assert response.status_code == 403
        assert response.json()["error"] == "not_owner"

        response = client.delete(f"{API}/doctor/leaves/{leave_id}", headers=doctor_headers)
        assert response.status_code == 200
        assert response.json() == {"status": "success", "message": "Leave deleted"}

        response = client.delete(f"{API}/doctor/leaves/{leave_id}", headers=doctor_headers)
        assert response.status_code == 404

    def test_patient_cannot_manage_leaves(self, client, doctor, patient_headers):
        response = client.post(
            f"{API}/doctor/leaves",
            json={"start_date": "2025-06-10", "end_date": "2025-06-12"},
            headers=patient_headers
        )
        assert response.status_code == 403


class TestSchedule:

    def test_update_schedule(self, client, doctor, doctor_headers):
        response = client.put(
            f"{API}/doctor/schedule",
            json={"schedule": {"tuesday": ["8:00-10:00"]}},
            headers=doctor_headers
        )
        assert response.status_code == 200
        assert response.json()["data"] == {"tuesday": ["08:00-10:00"]}

        body = slots_of(client, doctor.id, "2025-06-10")
        assert body["data"] == ["08:00", "08:30", "09:00", "09:30"]

    def test_conflicting_schedule_is_rejected(self, client, doctor, doctor_headers, patient_headers):
        """The stored template is unchanged when an upcoming booking would be stranded."""
        response = client.post(
            f"{API}/doctors/{doctor.id}/appointments",
            json={"date_heure": "2025-06-09T09:30:00"},
            headers=patient_headers
        )
        assert response.status_code == 201

        response = client.put(
            f"{API}/doctor/schedule",
            json={"schedule": {"monday": ["14:00-17:00"]}},
            headers=doctor_headers
        )
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

        response = client.get(f"{API}/doctors/{doctor.id}/availability")
        assert response.json()["data"]["schedule"]["monday"] == ["09:00-12:00"]

    def test_schedule_still_covering_bookings(self, client, db, doctor, doctor_headers):
        make_appointment(db, doctor.id, PATIENT_ID, datetime(2025, 6, 9, 9, 30), AppointmentStatus.CONFIRMED)

        response = client.put(
            f"{API}/doctor/schedule",
            json={"schedule": {"monday": ["09:00-10:00"]}},
            headers=doctor_headers
        )
        assert response.status_code == 200

    def test_closed_and_past_appointments_do_not_block(self, client, db, doctor, doctor_headers):
        make_appointment(db, doctor.id, PATIENT_ID, datetime(2025, 6, 9, 9, 30), AppointmentStatus.CANCELLED)
        make_appointment(db, doctor.id, PATIENT_ID, datetime(2025, 5, 26, 9, 30), AppointmentStatus.CONFIRMED)

        response = client.put(
            f"{API}/doctor/schedule",
            json={"schedule": {"tuesday": ["09:00-12:00"]}},
            headers=doctor_headers
        )
        assert response.status_code == 200

    @pytest.mark.parametrize("schedule", [
        {"monday": ["9h-12h"]},
        {"funday": ["09:00-12:00"]},
        {"monday": ["12:00-09:00"]},
        {"monday": ["09:00-12:00", "10:00-11:00"]},
    ])
    def test_invalid_schedule(self, client, doctor, doctor_headers, schedule):
        response = client.put(
            f"{API}/doctor/schedule",
            json={"schedule": schedule},
            headers=doctor_headers
        )
        assert response.status_code == 422
        assert response.json()["error"] == "validation"

    def test_doctor_without_profile(self, client, test_db, doctor_headers):
        response = client.put(
            f"{API}/doctor/schedule",
            json={"schedule": {"monday": ["09:00-12:00"]}},
            headers=doctor_headers
        )
        assert response.status_code == 404


class TestAvailabilityDump:

    def test_schedule_and_upcoming_leaves(self, client, db, doctor):
        db.add_all([
            Leave(doctor_id=doctor.id, start_date=date(2025, 5, 1), end_date=date(2025, 5, 3)),
            Leave(doctor_id=doctor.id, start_date=date(2025, 6, 20), end_date=date(2025, 6, 22)),
            Leave(doctor_id=doctor.id, start_date=date(2025, 6, 1), end_date=date(2025, 6, 2)),
        ])
        db.commit()

        response = client.get(f"{API}/doctors/{doctor.id}/availability")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["schedule"]["monday"] == ["09:00-12:00"]
        assert [leave["start_date"] for leave in data["leaves"]] == ["2025-06-01", "2025-06-20"]

    def test_own_availability(self, client, doctor, doctor_headers):
        response = client.get(f"{API}/doctor/availability", headers=doctor_headers)
        assert response.status_code == 200
        assert response.json()["data"]["schedule"] == doctor.schedule
