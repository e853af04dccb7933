# test_grading.py
import pytest

import attendance
import grading
import reports
from errors import Forbidden, InvalidState, NotFound, ValidationError
from schemas import BatchAttendanceItem, SessionGradeItem


@pytest.fixture
def graded(db, world):
    """Session 1: Alice HADIR, Bob ALPHA. Session 2: Alice INHAL, Bob HADIR."""
    s1, s2 = world.sessions[0], world.sessions[1]
    attendance.update_batch_attendance(db, world.assistant, s1.id, [
        BatchAttendanceItem(student_id=world.alice.id, status="HADIR", grade=80),
        BatchAttendanceItem(student_id=world.bob.id, status="ALPHA"),
    ])
    attendance.update_batch_attendance(db, world.assistant, s2.id, [
        BatchAttendanceItem(student_id=world.alice.id, status="INHAL"),
        BatchAttendanceItem(student_id=world.bob.id, status="HADIR", grade=70),
    ])
    grading.update_grade(db, world.assistant, world.alice.id, s2.id, 90)
    return world


def test_update_grade_on_present_student(db, graded):
    result = grading.update_grade(db, graded.assistant, graded.alice.id, graded.sessions[0].id, 95)
    assert result["grade"] == 95 and result["status"] == "HADIR"


def test_absent_students_can_not_be_graded(db, graded):
    with pytest.raises(InvalidState, match="ALPHA"):
        grading.update_grade(db, graded.assistant, graded.bob.id, graded.sessions[0].id, 60)
    with pytest.raises(InvalidState, match="not found"):
        grading.update_grade(db, graded.assistant, graded.bob.id, graded.sessions[5].id, 60)
    with pytest.raises(NotFound):
        grading.update_grade(db, graded.assistant, graded.outsider.id, graded.sessions[0].id, 60)


def test_grade_range_and_graders(db, graded):
    with pytest.raises(ValidationError):
        grading.update_grade(db, graded.assistant, graded.alice.id, graded.sessions[0].id, 101)
    with pytest.raises(Forbidden):
        grading.update_grade(db, graded.bob, graded.alice.id, graded.sessions[0].id, 50)
    # admins pass every assistant check on grades
    assert grading.update_grade(db, graded.admin, graded.alice.id, graded.sessions[0].id, 50)["grade"] == 50


def test_session_batch_skips_bad_entries(db, graded):
    results = grading.update_session_grades(db, graded.assistant, graded.sessions[0].id, [
        SessionGradeItem(student_id=graded.alice.id, grade=88),
        SessionGradeItem(student_id=graded.bob.id, grade=77),
        SessionGradeItem(student_id=graded.alice.id, grade=-5),
    ])
    assert [r["success"] for r in results] == [True, False, False]
    row = attendance.find_attendance(db, graded.cls.id, graded.alice.id, graded.sessions[0].id)
    assert row.grade == 88


def test_grade_views(db, graded):
    view = grading.session_grades(db, graded.assistant, graded.sessions[0].id)
    assert view["stats"] == {"total": 2, "present": 1, "graded": 1}
    by_id = {s["student_id"]: s for s in view["students"]}
    assert by_id[graded.alice.id]["can_grade"] is True
    assert by_id[graded.bob.id]["can_grade"] is False

    grid = grading.class_grades(db, graded.assistant, graded.cls.id)
    alice = next(s for s in grid["students"] if s["student_id"] == graded.alice.id)
    assert alice["average_grade"] == 85.0
    assert len(alice["sessions"]) == 11

    stats = grading.class_grade_stats(db, graded.admin, graded.cls.id)
    assert stats["total_sessions"] == 11
    assert stats["total_students"] == 2
    assert stats["graded_sessions"] == 2
    assert stats["average_grade"] == 77.5


def test_student_report(db, graded):
    report = reports.student_class_report(db, graded.alice, graded.cls.id)
    summary = report["summary"]
    assert summary["total_sessions"] == 11
    assert summary["recorded_sessions"] == 2
    assert summary["present_count"] == 2
    assert summary["attendance_percentage"] == 100.0
    assert summary["average_grade"] == 85.0

    bob = reports.student_class_report(db, graded.bob, graded.cls.id)["summary"]
    assert bob["present_count"] == 1 and bob["attendance_percentage"] == 50.0

    with pytest.raises(Forbidden):
        reports.student_class_report(db, graded.outsider, graded.cls.id)


def test_class_recap_counts(db, graded):
    recap = reports.class_recap(db, graded.assistant, graded.cls.id)
    assert recap["total_students"] == 2
    first = recap["stats"][0]
    assert (first["hadir"], first["alpha"]) == (1, 1)
    second = recap["stats"][1]
    assert (second["hadir"], second["inhal"]) == (1, 1)
    # sessions with no rows count everyone as alpha
    assert recap["stats"][10]["alpha"] == 2
    with pytest.raises(Forbidden):
        reports.class_recap(db, graded.alice, graded.cls.id)


def test_my_recap(db, graded):
    recap = reports.my_recap(db, graded.bob)
    assert len(recap) == 1
    assert recap[0]["stats"]["present_count"] == 1
    assert [c["status"] for c in recap[0]["sessions"][:3]] == ["ALPHA", "HADIR", None]
