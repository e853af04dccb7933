# reports.py
"""Read-side views: pending queues, rosters, recap grids and student reports."""
import models
from access import Capability, authorize, require_assistant, require_enrollment
from attendance import get_session
from database import get_or_404
from serializers import (
    DAY_NAMES, course_dict, room_dict, semester_dict, session_dict, time_slot_dict, user_brief,
)
from workflow import AttendanceStatus, IZIN_STATUSES, PRESENT_STATUSES, parse_status


def _avg(values, digits=2):
    return round(sum(values) / len(values), digits) if values else None


def pending_for_session(db, actor, session_id):
    session = get_session(db, session_id)
    require_assistant(db, actor, session.class_id)
    rows = (
        db.query(models.StudentAttendance)
        .filter_by(session_id=session.id, status=AttendanceStatus.PENDING.value)
        .order_by(models.StudentAttendance.submitted_at)
        .all()
    )
    return [
        {"id": a.id, "student": user_brief(a.enrollment.user), "submitted_at": a.submitted_at, "status": a.status}
        for a in rows
    ]


def class_sessions(db, actor, class_id):
    cls = get_or_404(db, models.Class, class_id, "Class not found.")
    require_assistant(db, actor, cls.id)
    result = []
    for s in cls.sessions:
        pending = sum(1 for a in s.student_attendances if a.status == AttendanceStatus.PENDING.value)
        result.append(dict(session_dict(s), pending_count=pending))
    return result


def session_roster(db, actor, session_id):
    session = get_session(db, session_id)
    require_assistant(db, actor, session.class_id)
    by_student = {a.enrollment_user_id: a for a in session.student_attendances}
    roster = []
    for e in sorted(session.class_.enrollments, key=lambda e: e.user.name):
        a = by_student.get(e.user_id)
        roster.append({
            "student_id": e.user_id,
            "student_name": e.user.name,
            "student_email": e.user.email,
            "enrolled_at": e.enrolled_at,
            "attendance": None if a is None else {
                "id": a.id, "status": a.status, "grade": a.grade,
                "submitted_at": a.submitted_at, "approved_at": a.approved_at,
            },
        })
    statuses = [r["attendance"]["status"] if r["attendance"] else None for r in roster]
    cls = session.class_
    return {
        "session": session_dict(session),
        "class": {"id": cls.id, "name": cls.name, "course": course_dict(cls.course),
                  "day_name": DAY_NAMES.get(cls.day_of_week), "room": room_dict(cls.room),
                  "time_slot": time_slot_dict(cls.time_slot)},
        "student_count": len(roster),
        "status_counts": {
            "pending": statuses.count(AttendanceStatus.PENDING.value),
            "hadir": statuses.count(AttendanceStatus.HADIR.value),
            "alpha": sum(1 for s in statuses if s is None or s == AttendanceStatus.ALPHA.value),
        },
        "roster": roster,
    }


def class_recap(db, actor, class_id):
    """Student x session grid for assistants of the class and admins."""
    cls = get_or_404(db, models.Class, class_id, "Class not found.")
    authorize(db, actor, Capability.ADMIN, Capability.ASSISTANT_OF_CLASS, class_id=cls.id,
              message="Access denied. Not assigned to this class.")
    sessions = list(cls.sessions)
    students = []
    for e in sorted(cls.enrollments, key=lambda e: e.user.name):
        by_session = {a.session_id: a for a in e.attendances}
        grid = {}
        for s in sessions:
            a = by_session.get(s.id)
            grid[s.session_number] = {"status": a.status, "grade": a.grade} if a else None
        students.append({"id": e.user.id, "name": e.user.name, "email": e.user.email, "attendances": grid})

    stats = []
    for s in sessions:
        counts = {"session_number": s.session_number, "hadir": 0, "alpha": 0, "pending": 0, "izin": 0, "inhal": 0}
        for st in students:
            cell = st["attendances"][s.session_number]
            status = parse_status(cell["status"]) if cell else AttendanceStatus.ALPHA
            if status == AttendanceStatus.HADIR:
                counts["hadir"] += 1
            elif status == AttendanceStatus.PENDING:
                counts["pending"] += 1
            elif status == AttendanceStatus.INHAL:
                counts["inhal"] += 1
            elif status in IZIN_STATUSES:
                counts["izin"] += 1
            else:
                counts["alpha"] += 1
        stats.append(counts)

    return {
        "class": {
            "id": cls.id, "name": cls.name, "course": course_dict(cls.course),
            "semester": semester_dict(cls.semester), "day_name": DAY_NAMES.get(cls.day_of_week),
            "time_slot": time_slot_dict(cls.time_slot), "room": room_dict(cls.room),
            "assistants": [user_brief(a.user) for a in cls.assistants],
        },
        "sessions": [{"id": s.id, "session_number": s.session_number, "topic": s.topic, "type": s.type}
                     for s in sessions],
        "students": students,
        "stats": stats,
        "total_students": len(students),
    }


def _summary(cells):
    recorded = [c for c in cells if c["status"] is not None]
    present = sum(1 for c in recorded if c["status"] in {s.value for s in PRESENT_STATUSES})
    grades = [c["grade"] for c in cells if c["grade"] is not None]
    return {
        "recorded_sessions": len(recorded),
        "present_count": present,
        "attendance_percentage": round(present / len(recorded) * 100, 2) if recorded else 0,
        "average_grade": _avg(grades),
        "graded_sessions": len(grades),
    }


def _cells(enrollment):
    by_session = {a.session_id: a for a in enrollment.attendances}
    cells = []
    for s in enrollment.class_.sessions:
        a = by_session.get(s.id)
        cells.append({
            "id": s.id, "session_number": s.session_number, "topic": s.topic, "type": s.type,
            "status": a.status if a else None,
            "grade": a.grade if a else None,
            "submitted_at": a.submitted_at if a else None,
            "approved_at": a.approved_at if a else None,
        })
    return cells


def student_class_report(db, student, class_id):
    enrollment = require_enrollment(db, student.id, class_id)
    cls = enrollment.class_
    cells = _cells(enrollment)
    return {
        "class": {"id": cls.id, "name": cls.name, "day_of_week": cls.day_of_week,
                  "day_name": DAY_NAMES.get(cls.day_of_week), "time_slot": time_slot_dict(cls.time_slot),
                  "room": room_dict(cls.room), "course": course_dict(cls.course),
                  "semester": semester_dict(cls.semester)},
        "enrolled_at": enrollment.enrolled_at,
        "sessions": cells,
        "summary": dict(_summary(cells), total_sessions=len(cells)),
    }


def my_recap(db, student):
    recap = []
    for e in db.query(models.Enrollment).filter_by(user_id=student.id).order_by(models.Enrollment.class_id):
        cls = e.class_
        cells = _cells(e)
        recap.append({
            "class_id": cls.id, "class_name": cls.name,
            "course": course_dict(cls.course), "semester": semester_dict(cls.semester),
            "sessions": cells,
            "stats": dict(_summary(cells), total_sessions=len(cells)),
        })
    return recap
