# test_inhal.py
import pytest

import attendance
import inhal
from conftest import IMAGE
from errors import AppError, Forbidden, InvalidState
from schemas import BatchAttendanceItem


def _mark(db, world, session, student, status):
    attendance.update_batch_attendance(db, world.assistant, session.id, [
        BatchAttendanceItem(student_id=student.id, status=status),
    ])


def test_absent_student_pays_for_make_up(db, store, world):
    session = world.sessions[0]
    _mark(db, world, session, world.alice, "ALPHA")
    payment = inhal.submit_inhal(db, store, world.alice, session.id, "inhal.png", IMAGE)
    assert payment["status"] == "PENDING"
    assert payment["amount"] == 30000

    verified = inhal.verify_inhal(db, world.admin, payment["id"])
    assert verified["status"] == "VERIFIED"
    row = attendance.find_attendance(db, world.cls.id, world.alice.id, session.id)
    assert row.status == "INHAL"
    assert row.approved_by_id == world.admin.id


def test_missing_row_counts_as_alpha(db, store, world):
    session = world.sessions[1]
    payment = inhal.submit_inhal(db, store, world.bob, session.id, "inhal.png", IMAGE)
    inhal.verify_inhal(db, world.admin, payment["id"])
    assert attendance.find_attendance(db, world.cls.id, world.bob.id, session.id).status == "INHAL"


@pytest.mark.parametrize("status", ["HADIR", "INHAL"])
def test_present_students_are_not_eligible(db, store, world, status):
    session = world.sessions[2]
    _mark(db, world, session, world.alice, status)
    with pytest.raises(InvalidState, match=f"status: {status}"):
        inhal.submit_inhal(db, store, world.alice, session.id, "inhal.png", IMAGE)


def test_pending_submission_is_not_eligible(db, store, world):
    session = world.sessions[2]
    attendance.submit_attendance(db, world.alice, session.id)
    with pytest.raises(InvalidState, match="PENDING"):
        inhal.submit_inhal(db, store, world.alice, session.id, "inhal.png", IMAGE)


def test_excused_and_rejected_students_may_apply(db, store, world):
    _mark(db, world, world.sessions[3], world.alice, "IZIN_LAIN")
    assert inhal.submit_inhal(db, store, world.alice, world.sessions[3].id, "a.png", IMAGE)["status"] == "PENDING"
    _mark(db, world, world.sessions[4], world.alice, "REJECTED")
    assert inhal.submit_inhal(db, store, world.alice, world.sessions[4].id, "b.png", IMAGE)["status"] == "PENDING"


def test_duplicate_submission_is_a_bad_request(db, store, world):
    session = world.sessions[5]
    inhal.submit_inhal(db, store, world.alice, session.id, "inhal.png", IMAGE)
    with pytest.raises(AppError) as exc:
        inhal.submit_inhal(db, store, world.alice, session.id, "inhal.png", IMAGE)
    assert exc.value.status_code == 400


def test_unenrolled_student_is_forbidden(db, store, world):
    with pytest.raises(Forbidden):
        inhal.submit_inhal(db, store, world.outsider, world.sessions[0].id, "inhal.png", IMAGE)


def test_rejection_leaves_attendance_alpha(db, store, world):
    session = world.sessions[6]
    _mark(db, world, session, world.bob, "ALPHA")
    payment = inhal.submit_inhal(db, store, world.bob, session.id, "inhal.png", IMAGE)
    rejected = inhal.reject_inhal(db, world.admin, payment["id"])
    assert rejected["status"] == "REJECTED"
    assert rejected["verified_by"]["id"] == world.admin.id
    assert attendance.find_attendance(db, world.cls.id, world.bob.id, session.id).status == "ALPHA"
    with pytest.raises(InvalidState):
        inhal.verify_inhal(db, world.admin, payment["id"])


def test_stats_and_listing(db, store, world):
    p1 = inhal.submit_inhal(db, store, world.alice, world.sessions[7].id, "a.png", IMAGE)
    p2 = inhal.submit_inhal(db, store, world.bob, world.sessions[7].id, "b.png", IMAGE)
    inhal.submit_inhal(db, store, world.bob, world.sessions[8].id, "c.png", IMAGE)
    inhal.verify_inhal(db, world.admin, p1["id"])
    inhal.reject_inhal(db, world.admin, p2["id"])

    stats = inhal.inhal_stats(db)
    assert stats == {"total": 3, "pending": 1, "verified": 1, "rejected": 1,
                     "total_revenue": 30000, "inhal_amount": 30000}
    items, meta = inhal.list_inhal(db, "verified")
    assert meta["total"] == 1 and items[0]["id"] == p1["id"]
    mine, _ = inhal.my_inhal(db, world.bob)
    assert len(mine) == 2
    assert inhal.inhal_status(db, world.bob, world.sessions[7].id)["status"] == "REJECTED"
    assert inhal.inhal_status(db, world.alice, world.sessions[8].id) is None
