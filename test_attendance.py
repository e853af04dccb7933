# test_attendance.py
import pytest

import attendance
import models
from errors import Conflict, Forbidden, InvalidState, NotFound
from schemas import AttendanceStatusItem, BatchAttendanceItem


def test_submit_then_approve(db, world):
    session = world.sessions[0]
    row = attendance.submit_attendance(db, world.alice, session.id)
    assert row["status"] == "PENDING"
    assert row["submitted_at"] is not None

    approved = attendance.approve_attendance(db, world.assistant, row["id"])
    assert approved["status"] == "HADIR"
    assert approved["approved_by_id"] == world.assistant.id

    with pytest.raises(InvalidState, match="not pending"):
        attendance.reject_attendance(db, world.assistant, row["id"])


def test_double_submit_conflicts(db, world):
    session = world.sessions[0]
    attendance.submit_attendance(db, world.alice, session.id)
    with pytest.raises(Conflict):
        attendance.submit_attendance(db, world.alice, session.id)
    assert db.query(models.StudentAttendance).filter_by(session_id=session.id).count() == 1


def test_submit_requires_enrollment(db, world):
    with pytest.raises(Forbidden):
        attendance.submit_attendance(db, world.outsider, world.sessions[0].id)
    with pytest.raises(NotFound):
        attendance.submit_attendance(db, world.alice, 9999)


def test_rejected_student_can_not_resubmit(db, world):
    session = world.sessions[1]
    row = attendance.submit_attendance(db, world.alice, session.id)
    attendance.reject_attendance(db, world.assistant, row["id"])
    with pytest.raises(Conflict):
        attendance.submit_attendance(db, world.alice, session.id)


def test_only_the_class_assistant_may_decide(db, world):
    row = attendance.submit_attendance(db, world.alice, world.sessions[0].id)
    # authorization is checked before the state of the row
    with pytest.raises(Forbidden):
        attendance.approve_attendance(db, world.bob, row["id"])
    with pytest.raises(NotFound):
        attendance.approve_attendance(db, world.assistant, 9999)


def test_finalize_backfills_alpha_once(db, world):
    session = world.sessions[2]
    attendance.submit_attendance(db, world.alice, session.id)
    result = attendance.finalize_session(db, world.assistant, session.id)
    assert result == {"session_id": session.id, "is_finalized": True, "alpha_created": 1, "total_students": 2}

    rows = {a.enrollment_user_id: a.status for a in db.query(models.StudentAttendance).filter_by(session_id=session.id)}
    assert rows == {world.alice.id: "PENDING", world.bob.id: "ALPHA"}

    with pytest.raises(InvalidState, match="already finalized"):
        attendance.finalize_session(db, world.assistant, session.id)
    assert db.query(models.StudentAttendance).filter_by(session_id=session.id).count() == 2


def test_alpha_after_finalize_may_still_submit(db, world):
    session = world.sessions[2]
    attendance.finalize_session(db, world.assistant, session.id)
    row = attendance.submit_attendance(db, world.bob, session.id)
    assert row["status"] == "PENDING"


def test_batch_update_reports_per_item(db, world):
    session = world.sessions[3]
    results = attendance.update_batch_attendance(db, world.assistant, session.id, [
        BatchAttendanceItem(student_id=world.alice.id, status="HADIR", grade=90),
        BatchAttendanceItem(student_id=world.bob.id, status="IZIN_SAKIT", grade=70),
        BatchAttendanceItem(student_id=world.outsider.id, status="HADIR"),
        BatchAttendanceItem(student_id=world.alice.id, status="PENDING"),
    ])
    assert [r["success"] for r in results] == [True, True, False, False]
    assert results[0]["grade"] == 90
    assert results[1]["grade"] is None
    assert "not enrolled" in results[2]["error"]

    rows = {a.enrollment_user_id: a for a in db.query(models.StudentAttendance).filter_by(session_id=session.id)}
    assert rows[world.alice.id].status == "HADIR" and rows[world.alice.id].grade == 90
    assert rows[world.bob.id].status == "IZIN_SAKIT" and rows[world.bob.id].grade is None


def test_status_change_voids_grade(db, world):
    session = world.sessions[4]
    attendance.update_batch_attendance(db, world.assistant, session.id, [
        BatchAttendanceItem(student_id=world.alice.id, status="HADIR", grade=80),
    ])
    attendance.update_attendance_status(db, world.admin, session.id, [
        AttendanceStatusItem(student_id=world.alice.id, status="ALPHA"),
    ])
    row = attendance.find_attendance(db, world.cls.id, world.alice.id, session.id)
    assert row.status == "ALPHA" and row.grade is None


def test_batch_drops_grade_unless_present(db, world):
    session = world.sessions[5]
    results = attendance.update_batch_attendance(db, world.assistant, session.id, [
        BatchAttendanceItem(student_id=world.alice.id, status="INHAL", grade=80),
        BatchAttendanceItem(student_id=world.bob.id, status="hadir", grade=65),
    ])
    assert results[0] == {"student_id": world.alice.id, "success": True, "status": "INHAL", "grade": None}
    assert results[1]["grade"] == 65
    row = attendance.find_attendance(db, world.cls.id, world.alice.id, session.id)
    assert row.status == "INHAL" and row.grade is None


def test_admin_override_keeps_grade_when_still_gradable(db, world):
    session = world.sessions[4]
    attendance.update_batch_attendance(db, world.assistant, session.id, [
        BatchAttendanceItem(student_id=world.alice.id, status="HADIR", grade=75),
    ])
    results = attendance.update_attendance_status(db, world.admin, session.id, [
        AttendanceStatusItem(student_id=world.alice.id, status="INHAL"),
        AttendanceStatusItem(student_id=world.outsider.id, status="HADIR"),
    ])
    assert results[0] == {"student_id": world.alice.id, "success": True, "status": "INHAL", "grade": 75}
    assert results[1]["success"] is False


def test_assistant_check_in(db, world):
    session = world.sessions[0]
    row = attendance.check_in(db, world.assistant, session.id)
    assert row["status"] == "HADIR" and row["user"]["id"] == world.assistant.id
    with pytest.raises(Conflict):
        attendance.check_in(db, world.assistant, session.id)
    with pytest.raises(Forbidden):
        attendance.check_in(db, world.alice, session.id)


def test_admin_validates_assistant_presence(db, world):
    session = world.sessions[5]
    row = attendance.validate_assistant(db, world.admin, world.assistant.id, session.id, "izin")
    assert row["status"] == "IZIN"
    row = attendance.validate_assistant(db, world.admin, world.assistant.id, session.id)
    assert row["status"] == "HADIR"
    assert db.query(models.AssistantAttendance).filter_by(session_id=session.id).count() == 1
    with pytest.raises(InvalidState):
        attendance.validate_assistant(db, world.admin, world.alice.id, session.id)
