# grading.py
"""Grades live on attendance rows and only on HADIR / INHAL ones."""
import logging

import models
from access import Capability, authorize, get_enrollment
from attendance import find_attendance, get_session
from audit import log_audit
from database import get_or_404, transaction
from errors import AppError, InvalidState, NotFound
from workflow import GRADABLE_STATUSES, is_gradable, validate_grade

logger = logging.getLogger(__name__)


def _require_grader(db, user, class_id):
    authorize(db, user, Capability.ADMIN, Capability.ASSISTANT_OF_CLASS, class_id=class_id,
              message="You are not assigned as an assistant for this class.")


def _gradable_row(db, session, student_id):
    if get_enrollment(db, student_id, session.class_id) is None:
        raise NotFound("Student not enrolled in this class.")
    row = find_attendance(db, session.class_id, student_id, session.id)
    if row is None or not is_gradable(row.status):
        current = row.status if row else "not found"
        raise InvalidState(f"Cannot grade: student status is {current}. Only HADIR and INHAL can be graded.")
    return row


def update_grade(db, actor, student_id, session_id, grade):
    session = get_session(db, session_id)
    _require_grader(db, actor, session.class_id)
    value = validate_grade(grade)
    row = _gradable_row(db, session, student_id)
    with transaction(db):
        row.grade = value
        log_audit(db, actor.id, "GRADE", row.id, "UPDATE", f"student {student_id} session {session.id} -> {value}")
    db.refresh(row)
    return {"student_id": student_id, "session_id": session.id, "status": row.status, "grade": row.grade}


def update_session_grades(db, actor, session_id, grades):
    """Each grade is checked on its own; one bad entry does not block the rest."""
    session = get_session(db, session_id)
    _require_grader(db, actor, session.class_id)
    results = []
    with transaction(db):
        for item in grades:
            try:
                value = validate_grade(item.grade)
                row = _gradable_row(db, session, item.student_id)
            except AppError as e:
                results.append({"student_id": item.student_id, "success": False, "error": e.message})
                continue
            row.grade = value
            results.append({"student_id": item.student_id, "success": True, "grade": value})
        ok = sum(1 for r in results if r["success"])
        log_audit(db, actor.id, "SESSION", session.id, "GRADES_BATCH", f"{ok} updated, {len(results) - ok} skipped")
    return results


def class_grades(db, actor, class_id):
    cls = get_or_404(db, models.Class, class_id, "Class not found.")
    _require_grader(db, actor, cls.id)
    students = []
    for e in sorted(cls.enrollments, key=lambda e: e.user.name):
        by_session = {a.session_id: a for a in e.attendances}
        cells, grades = [], []
        for s in cls.sessions:
            a = by_session.get(s.id)
            cells.append({"session_id": s.id, "session_number": s.session_number,
                          "status": a.status if a else None, "grade": a.grade if a else None})
            if a is not None and a.grade is not None:
                grades.append(a.grade)
        students.append({
            "student_id": e.user.id, "name": e.user.name, "nim": e.user.nim,
            "sessions": cells,
            "average_grade": round(sum(grades) / len(grades), 2) if grades else None,
        })
    return {"class_id": cls.id, "class_name": cls.name,
            "sessions": [{"id": s.id, "session_number": s.session_number, "topic": s.topic} for s in cls.sessions],
            "students": students}


def session_grades(db, actor, session_id):
    session = get_session(db, session_id)
    _require_grader(db, actor, session.class_id)
    by_student = {
        a.enrollment_user_id: a
        for a in db.query(models.StudentAttendance).filter_by(session_id=session.id)
    }
    students = []
    for e in sorted(session.class_.enrollments, key=lambda e: e.user.name):
        a = by_student.get(e.user_id)
        students.append({
            "student_id": e.user_id, "name": e.user.name, "nim": e.user.nim,
            "attendance_id": a.id if a else None,
            "status": a.status if a else None,
            "grade": a.grade if a else None,
            "can_grade": a is not None and is_gradable(a.status),
        })
    return {
        "session": {"id": session.id, "session_number": session.session_number, "topic": session.topic},
        "students": students,
        "stats": {
            "total": len(students),
            "present": sum(1 for s in students if s["status"] in {g.value for g in GRADABLE_STATUSES}),
            "graded": sum(1 for s in students if s["grade"] is not None),
        },
    }


def class_grade_stats(db, actor, class_id):
    cls = get_or_404(db, models.Class, class_id, "Class not found.")
    _require_grader(db, actor, cls.id)
    per_student = []
    graded_sessions = set()
    for e in cls.enrollments:
        grades = [a.grade for a in e.attendances if a.grade is not None and is_gradable(a.status)]
        graded_sessions.update(a.session_id for a in e.attendances if a.grade is not None)
        per_student.append({
            "student_id": e.user_id,
            "graded_count": len(grades),
            "average_grade": round(sum(grades) / len(grades), 2) if grades else None,
        })
    averages = [s["average_grade"] for s in per_student if s["average_grade"] is not None]
    return {
        "total_sessions": len(cls.sessions),
        "total_students": len(cls.enrollments),
        "graded_sessions": len(graded_sessions),
        "average_grade": round(sum(averages) / len(averages), 2) if averages else 0,
        "student_stats": per_student,
    }
