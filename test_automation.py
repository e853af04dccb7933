# test_automation.py
import models
import scheduling
from create_admin import ROOMS, TIME_SLOTS, init_admin, seed_reference_data
from schemas import ClassCreate


def test_seed_is_idempotent(db):
    admin = init_admin(db, email="Root@Test.id", password="secret123")
    assert admin.is_admin and admin.email == "root@test.id"
    assert db.query(models.TimeSlot).count() == len(TIME_SLOTS)
    assert db.query(models.Room).count() == len(ROOMS)

    assert seed_reference_data(db) == 0
    again = init_admin(db, email="root@test.id", password="other")
    assert again.id == admin.id
    assert db.query(models.User).count() == 1


def test_session_plan():
    plan = scheduling.session_plan()
    assert len(plan) == 11
    assert plan[0][:2] == (1, "Pertemuan 1")
    assert plan[9][:2] == (10, "Pertemuan 10")
    assert plan[10][1] == "Responsi" and plan[10][2].value == "EXAM"


def test_auto_sessions_on_class_create(db):
    admin = init_admin(db, email="root@test.id", password="secret123")
    semester = models.Semester(name="2025/2026 Ganjil", is_active=True)
    course = models.Course(code="IF303", name="Jaringan Komputer")
    db.add_all([semester, course])
    db.commit()
    slot = db.query(models.TimeSlot).filter_by(slot_number=2).one()
    room = db.query(models.Room).filter_by(code="LAB-B").one()

    data = scheduling.create_class(db, admin, ClassCreate(
        course_id=course.id, semester_id=semester.id, name="A", quota=25,
        day_of_week=5, time_slot_id=slot.id, room_id=room.id,
    ))
    count = db.query(models.ClassSession).filter_by(class_id=data["id"]).count()
    assert count == 11
    assert data["enrolled_count"] == 0
    assert all(not s["is_finalized"] for s in data["sessions"])
