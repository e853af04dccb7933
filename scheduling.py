# scheduling.py
"""Semesters, reference data, classes and their sessions, assistant assignment, schedule grids."""
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

import models
from audit import log_audit
from database import get_or_404, transaction
from enrollment import enrolled_count
from errors import Conflict, NotFound, ValidationError
from schemas import paginate
from serializers import (
    DAY_NAMES, class_dict, course_dict, room_dict, semester_dict, time_slot_dict, user_brief,
    assistant_attendance_dict,
)
from workflow import SessionType

logger = logging.getLogger(__name__)

SESSIONS_PER_CLASS = 11
SCHEDULE_CONFLICT = "Schedule conflict: This time slot is already taken for this room and day."


def session_plan():
    """(number, topic, type) for every session a new class gets."""
    plan = [(n, f"Pertemuan {n}", SessionType.REGULAR) for n in range(1, SESSIONS_PER_CLASS)]
    plan.append((SESSIONS_PER_CLASS, "Responsi", SessionType.EXAM))
    return plan


# --- Reference data (cached reads) ---
def list_time_slots(db, cache):
    return cache.get_or_load("time_slots", lambda: [
        time_slot_dict(t) for t in db.query(models.TimeSlot).order_by(models.TimeSlot.slot_number)
    ])


def list_rooms(db, cache):
    return cache.get_or_load("rooms", lambda: [
        room_dict(r) for r in db.query(models.Room).order_by(models.Room.code)
    ])


def create_room(db, cache, admin, code, name):
    if db.query(models.Room).filter_by(code=code).first():
        raise Conflict("Room code already exists.")
    room = models.Room(code=code, name=name)
    try:
        with transaction(db):
            db.add(room)
            db.flush()
            log_audit(db, admin.id, "ROOM", room.id, "CREATE", code)
    except IntegrityError:
        raise Conflict("Room code already exists.")
    cache.invalidate("rooms")
    return room_dict(room)


def list_courses(db, cache, page=1, limit=100):
    rows = cache.get_or_load("courses", lambda: [
        course_dict(c) for c in db.query(models.Course).order_by(models.Course.code)
    ])
    page, limit = max(1, page), max(1, min(limit, 100))
    start = (page - 1) * limit
    total = len(rows)
    return rows[start:start + limit], {"page": page, "limit": limit, "total": total,
                                       "pages": max(1, -(-total // limit))}


def create_course(db, cache, admin, code, name):
    if db.query(models.Course).filter_by(code=code).first():
        raise Conflict("Course code already exists.")
    course = models.Course(code=code, name=name)
    try:
        with transaction(db):
            db.add(course)
            db.flush()
            log_audit(db, admin.id, "COURSE", course.id, "CREATE", code)
    except IntegrityError:
        raise Conflict("Course code already exists.")
    cache.invalidate("courses")
    return course_dict(course)


# --- Semesters ---
def active_semester(db):
    return db.query(models.Semester).filter_by(is_active=True).first()


def list_semesters(db, page=1, limit=100):
    counts = dict(db.query(models.Class.semester_id, func.count(models.Class.id)).group_by(models.Class.semester_id).all())
    items, meta = paginate(db.query(models.Semester).order_by(models.Semester.id.desc()), page, limit)
    return [dict(semester_dict(s), class_count=counts.get(s.id, 0)) for s in items], meta


def create_semester(db, admin, name):
    semester = models.Semester(name=name, is_active=False)
    with transaction(db):
        db.add(semester)
        db.flush()
        log_audit(db, admin.id, "SEMESTER", semester.id, "CREATE", name)
    return semester_dict(semester)


def activate_semester(db, admin, semester_id):
    """Deactivate every semester, then activate one, in a single transaction."""
    semester = get_or_404(db, models.Semester, semester_id, "Semester not found.")
    with transaction(db):
        db.query(models.Semester).update({models.Semester.is_active: False}, synchronize_session="fetch")
        semester.is_active = True
        log_audit(db, admin.id, "SEMESTER", semester.id, "ACTIVATE", semester.name)
    logger.info("Semester %s activated by %s", semester.id, admin.id)
    return semester_dict(semester)


# --- Classes ---
def _check_slot_free(db, day_of_week, time_slot_id, room_id, exclude_id=None):
    q = db.query(models.Class).filter_by(day_of_week=day_of_week, time_slot_id=time_slot_id, room_id=room_id)
    if exclude_id is not None:
        q = q.filter(models.Class.id != exclude_id)
    if q.first() is not None:
        raise Conflict(SCHEDULE_CONFLICT)


def _integrity_conflict(e):
    text = str(e.orig).lower()
    if "uq_class_schedule" in text or "day_of_week" in text:
        return Conflict(SCHEDULE_CONFLICT)
    return Conflict("Class with this name already exists for this course and semester.")


def create_class(db, admin, data):
    get_or_404(db, models.Course, data.course_id, "Course not found.")
    get_or_404(db, models.Semester, data.semester_id, "Semester not found.")
    get_or_404(db, models.TimeSlot, data.time_slot_id, "Time slot not found.")
    get_or_404(db, models.Room, data.room_id, "Room not found.")
    _check_slot_free(db, data.day_of_week, data.time_slot_id, data.room_id)

    cls = models.Class(
        course_id=data.course_id, semester_id=data.semester_id, name=data.name, quota=data.quota,
        day_of_week=data.day_of_week, time_slot_id=data.time_slot_id, room_id=data.room_id,
    )
    try:
        with transaction(db):
            db.add(cls)
            db.flush()
            for number, topic, kind in session_plan():
                db.add(models.ClassSession(class_id=cls.id, session_number=number, topic=topic, type=kind.value))
            log_audit(db, admin.id, "CLASS", cls.id, "CREATE", f"{data.name} day {data.day_of_week}")
    except IntegrityError as e:
        raise _integrity_conflict(e)
    logger.info("Class %s created with %d sessions", cls.id, SESSIONS_PER_CLASS)
    db.refresh(cls)
    return class_dict(cls, enrolled=0, with_sessions=True)


def update_class(db, admin, class_id, data):
    cls = get_or_404(db, models.Class, class_id, "Class not found.")
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "course_id" in changes:
        get_or_404(db, models.Course, changes["course_id"], "Course not found.")
    if "time_slot_id" in changes:
        get_or_404(db, models.TimeSlot, changes["time_slot_id"], "Time slot not found.")
    if "room_id" in changes:
        get_or_404(db, models.Room, changes["room_id"], "Room not found.")
    if "quota" in changes and changes["quota"] < enrolled_count(db, cls.id):
        raise ValidationError("Quota can not be lower than the current number of enrolled students.")
    _check_slot_free(
        db,
        changes.get("day_of_week", cls.day_of_week),
        changes.get("time_slot_id", cls.time_slot_id),
        changes.get("room_id", cls.room_id),
        exclude_id=cls.id,
    )
    try:
        with transaction(db):
            for key, value in changes.items():
                setattr(cls, key, value)
            log_audit(db, admin.id, "CLASS", cls.id, "UPDATE", ", ".join(sorted(changes)))
    except IntegrityError as e:
        raise _integrity_conflict(e)
    db.refresh(cls)
    return class_dict(cls, enrolled=enrolled_count(db, cls.id))


def _enrolled_counts(db, class_ids):
    if not class_ids:
        return {}
    return dict(
        db.query(models.Enrollment.class_id, func.count())
        .filter(models.Enrollment.class_id.in_(class_ids))
        .group_by(models.Enrollment.class_id).all()
    )


def list_classes(db, semester_id=None, page=1, limit=100):
    q = db.query(models.Class)
    if semester_id is not None:
        get_or_404(db, models.Semester, semester_id, "Semester not found.")
        q = q.filter(models.Class.semester_id == semester_id)
    q = q.order_by(models.Class.day_of_week, models.Class.time_slot_id, models.Class.id)
    items, meta = paginate(q, page, limit)
    counts = _enrolled_counts(db, [c.id for c in items])
    return [class_dict(c, enrolled=counts.get(c.id, 0)) for c in items], meta


def open_classes(db):
    semester = active_semester(db)
    if semester is None:
        raise NotFound("No active semester found.")
    classes = db.query(models.Class).filter_by(semester_id=semester.id).order_by(
        models.Class.day_of_week, models.Class.time_slot_id).all()
    counts = _enrolled_counts(db, [c.id for c in classes])
    result = []
    for c in classes:
        n = counts.get(c.id, 0)
        result.append(dict(class_dict(c, enrolled=n), available_quota=c.quota - n, is_available=c.quota > n))
    return result


def master_schedule(db, semester_id):
    """schedule[day][slot_number][room_code] -> class summary or None."""
    semester = get_or_404(db, models.Semester, semester_id, "Semester not found.")
    rooms = db.query(models.Room).order_by(models.Room.code).all()
    slots = db.query(models.TimeSlot).order_by(models.TimeSlot.slot_number).all()
    classes = db.query(models.Class).filter_by(semester_id=semester.id).all()
    counts = _enrolled_counts(db, [c.id for c in classes])

    schedule = {day: {s.slot_number: {r.code: None for r in rooms} for s in slots} for day in DAY_NAMES}
    for c in classes:
        schedule[c.day_of_week][c.time_slot.slot_number][c.room.code] = {
            "id": c.id,
            "name": c.name,
            "course": course_dict(c.course),
            "quota": c.quota,
            "enrolled": counts.get(c.id, 0),
            "assistants": [user_brief(a.user) for a in c.assistants],
        }
    return {
        "semester": semester_dict(semester),
        "rooms": [room_dict(r) for r in rooms],
        "time_slots": [time_slot_dict(s) for s in slots],
        "day_names": DAY_NAMES,
        "schedule": schedule,
    }


def student_schedule(db, student):
    semester = active_semester(db)
    if semester is None:
        return {"semester": None, "schedule": {}, "message": "No active semester."}
    slots = db.query(models.TimeSlot).order_by(models.TimeSlot.slot_number).all()
    enrollments = (
        db.query(models.Enrollment).join(models.Class)
        .filter(models.Enrollment.user_id == student.id, models.Class.semester_id == semester.id).all()
    )
    schedule = {day: {s.slot_number: None for s in slots} for day in DAY_NAMES}
    for e in enrollments:
        c = e.class_
        schedule[c.day_of_week][c.time_slot.slot_number] = dict(class_dict(c), role="praktikan")
    return {"semester": semester_dict(semester), "time_slots": [time_slot_dict(s) for s in slots],
            "day_names": DAY_NAMES, "schedule": schedule}


def teaching_schedule(db, assistant):
    assignments = db.query(models.ClassAssistant).filter_by(user_id=assistant.id).all()
    counts = _enrolled_counts(db, [a.class_id for a in assignments])
    return [
        dict(class_dict(a.class_, with_sessions=True), student_count=counts.get(a.class_id, 0))
        for a in assignments
    ]


# --- Assistants ---
def assign_assistant(db, admin, class_id, user_id):
    cls = get_or_404(db, models.Class, class_id, "Class not found.")
    user = get_or_404(db, models.User, user_id, "User not found.")
    if db.query(models.ClassAssistant).filter_by(class_id=cls.id, user_id=user.id).first():
        raise Conflict("User is already assigned as assistant for this class.")
    try:
        with transaction(db):
            db.add(models.ClassAssistant(class_id=cls.id, user_id=user.id))
            log_audit(db, admin.id, "CLASS", cls.id, "ASSIGN_ASSISTANT", str(user.id))
    except IntegrityError:
        raise Conflict("User is already assigned as assistant for this class.")
    return {"class_id": cls.id, "user": user_brief(user)}


def remove_assistant(db, admin, class_id, user_id):
    row = db.query(models.ClassAssistant).filter_by(class_id=class_id, user_id=user_id).first()
    if row is None:
        raise NotFound("Assignment not found.")
    with transaction(db):
        db.delete(row)
        log_audit(db, admin.id, "CLASS", class_id, "REMOVE_ASSISTANT", str(user_id))
    return {"class_id": class_id, "user_id": user_id}


def assistant_logs(db, class_id=None, user_id=None):
    q = db.query(models.AssistantAttendance).join(models.ClassSession)
    if class_id is not None:
        q = q.filter(models.ClassSession.class_id == class_id)
    if user_id is not None:
        q = q.filter(models.AssistantAttendance.user_id == user_id)
    q = q.order_by(models.AssistantAttendance.check_in_time.desc(), models.AssistantAttendance.id.desc())
    return [assistant_attendance_dict(a) for a in q]


def assistant_recap(db, semester_id=None):
    if semester_id is None:
        semester = active_semester(db)
        if semester is None:
            return []
        semester_id = semester.id
    recap = []
    for c in db.query(models.Class).filter_by(semester_id=semester_id).order_by(models.Class.id):
        sessions = list(c.sessions)
        assistants = []
        for a in c.assistants:
            cells = []
            for s in sessions:
                hit = next((x for x in s.assistant_attendances if x.user_id == a.user_id), None)
                cells.append({"session_number": s.session_number, "checked_in": hit is not None,
                              "check_in_time": hit.check_in_time if hit else None})
            present = sum(1 for x in cells if x["checked_in"])
            assistants.append({
                "assistant": user_brief(a.user),
                "sessions": cells,
                "stats": {
                    "present_count": present,
                    "total_sessions": len(sessions),
                    "attendance_percentage": round(present / len(sessions) * 100) if sessions else 0,
                },
            })
        recap.append({"class_id": c.id, "class_name": c.name, "course": course_dict(c.course),
                      "total_sessions": len(sessions), "assistants": assistants})
    return recap
