from app.core.security import UserRole
from app.models import Appointment, TimeSlot
from tests.conftest import auth_headers

slot_payload = {
    "title": "Thesis consultation",
    "date": "2026-11-05",
    "start_time": "13:00",
    "end_time": "13:30",
    "max_bookings": 2
}

class TestTimeSlots:

    def test_list_is_public(self, client, make_user, make_slot):
        """Anyone can browse slots with their booking counts."""
        staff = make_user(UserRole.STAFF, name="Dana Staff")
        make_slot(staff, max_bookings=3)

        response = client.get("/api/v1/timeslots")
        assert response.status_code == 200

        [slot] = response.json()
        assert slot["max_bookings"] == 3
        assert slot["current_bookings"] == 0
        assert slot["owner"]["name"] == "Dana Staff"

    def test_staff_creates_slot(self, client, make_user):
        staff = make_user(UserRole.STAFF)

        response = client.post("/api/v1/timeslots", json=slot_payload, headers=auth_headers(staff))
        assert response.status_code == 201

        data = response.json()
        assert data["title"] == slot_payload["title"]
        assert data["max_bookings"] == 2
        assert data["owner"]["id"] == staff.id

    def test_missing_capacity_defaults_to_one(self, client, make_user):
        staff = make_user(UserRole.STAFF)
        payload = {k: v for k, v in slot_payload.items() if k != "max_bookings"}

        response = client.post("/api/v1/timeslots", json=payload, headers=auth_headers(staff))
        assert response.status_code == 201
        assert response.json()["max_bookings"] == 1

    def test_invalid_capacity_rejected(self, client, make_user):
        staff = make_user(UserRole.STAFF)

        for bad in (0, -3):
            payload = dict(slot_payload, max_bookings=bad)
            response = client.post("/api/v1/timeslots", json=payload, headers=auth_headers(staff))
            assert response.status_code == 422

    def test_blank_fields_rejected(self, client, make_user):
        staff = make_user(UserRole.STAFF)
        payload = dict(slot_payload, title="   ")

        response = client.post("/api/v1/timeslots", json=payload, headers=auth_headers(staff))
        assert response.status_code == 422

    def test_student_cannot_create(self, client, make_user):
        student = make_user()

        response = client.post("/api/v1/timeslots", json=slot_payload, headers=auth_headers(student))
        assert response.status_code == 403

    def test_admin_creates_slot_for_staff(self, client, make_user):
        admin = make_user(UserRole.ADMIN)
        staff = make_user(UserRole.STAFF)
        payload = dict(slot_payload, staff_id=staff.id)

        response = client.post("/api/v1/timeslots", json=payload, headers=auth_headers(admin))
        assert response.status_code == 201
        assert response.json()["owner"]["id"] == staff.id

    def test_admin_unknown_staff(self, client, make_user):
        admin = make_user(UserRole.ADMIN)
        payload = dict(slot_payload, staff_id=777)

        response = client.post("/api/v1/timeslots", json=payload, headers=auth_headers(admin))
        assert response.status_code == 404

    def test_owner_deletes_slot_with_appointments(self, client, db, make_user, make_slot):
        staff = make_user(UserRole.STAFF)
        student = make_user()
        slot = make_slot(staff)
        slot_id = slot.id
        client.post(
            "/api/v1/appointments", json={"time_slot_id": slot_id}, headers=auth_headers(student)
        )

        response = client.delete(f"/api/v1/timeslots/{slot_id}", headers=auth_headers(staff))
        assert response.status_code == 200
        assert response.json()["message"] == "Time slot deleted"

        assert db.query(TimeSlot).filter(TimeSlot.id == slot_id).count() == 0
        assert db.query(Appointment).filter(Appointment.slot_id == slot_id).count() == 0

    def test_staff_cannot_delete_foreign_slot(self, client, db, make_user, make_slot):
        """Deleting someone else's slot is forbidden and changes nothing."""
        staff = make_user(UserRole.STAFF)
        intruder = make_user(UserRole.STAFF)
        student = make_user()
        slot = make_slot(staff)
        slot_id = slot.id
        client.post(
            "/api/v1/appointments", json={"time_slot_id": slot_id}, headers=auth_headers(student)
        )

        response = client.delete(f"/api/v1/timeslots/{slot_id}", headers=auth_headers(intruder))
        assert response.status_code == 403

        assert db.query(TimeSlot).filter(TimeSlot.id == slot_id).count() == 1
        assert db.query(Appointment).filter(Appointment.slot_id == slot_id).count() == 1

    def test_delete_missing_slot(self, client, make_user):
        admin = make_user(UserRole.ADMIN)

        response = client.delete("/api/v1/timeslots/404", headers=auth_headers(admin))
        assert response.status_code == 404
        assert response.json()["detail"] == "Time slot not found"
