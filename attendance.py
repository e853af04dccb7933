# attendance.py
"""
Attendance writes: student self check-in, assistant approve / reject,
batch override, admin override, session finalization, assistant check-in.

Each write computes the next status with ``workflow.transition`` and
validates everything before touching a row, so a batch can skip a bad item
without a savepoint.
"""
import logging

from sqlalchemy.exc import IntegrityError

import models
from access import require_assistant, require_enrollment, get_enrollment
from audit import log_audit
from database import get_or_404, transaction
from errors import AppError, Conflict, Forbidden, InvalidState
from models import utcnow
from serializers import attendance_dict, assistant_attendance_dict
from workflow import Action, AttendanceStatus, parse_status, resolve_grade, transition

logger = logging.getLogger(__name__)

_KEEP = object()  # leave the stored grade alone unless the new status voids it


def find_attendance(db, class_id, student_id, session_id):
    return db.query(models.StudentAttendance).filter_by(
        enrollment_class_id=class_id, enrollment_user_id=student_id, session_id=session_id
    ).first()


def get_session(db, session_id):
    return get_or_404(db, models.ClassSession, session_id, "Session not found.")


def apply_status(db, session, student_id, action, target=None, grade=_KEEP, actor_id=None, proof_file_url=None):
    """Validate and stage one attendance change. Nothing is written when this raises."""
    if get_enrollment(db, student_id, session.class_id) is None:
        raise Forbidden("Student is not enrolled in this class.")
    row = find_attendance(db, session.class_id, student_id, session.id)
    new_status = transition(row.status if row else None, action, target)
    new_grade = resolve_grade(new_status, grade) if grade is not _KEEP else (
        resolve_grade(new_status, row.grade) if row else None
    )

    if row is None:
        row = models.StudentAttendance(
            enrollment_class_id=session.class_id,
            enrollment_user_id=student_id,
            session_id=session.id,
        )
        db.add(row)
    row.status = new_status.value
    row.grade = new_grade
    if action == Action.SUBMIT:
        row.submitted_at = utcnow()
    if actor_id is not None and action != Action.SUBMIT:
        row.approved_by_id = actor_id
        row.approved_at = utcnow()
    if proof_file_url is not None:
        row.proof_file_url = proof_file_url
    return row


def submit_attendance(db, student, session_id):
    session = get_session(db, session_id)
    require_enrollment(db, student.id, session.class_id)
    try:
        with transaction(db):
            row = apply_status(db, session, student.id, Action.SUBMIT)
    except IntegrityError:
        # a concurrent submit won the unique key
        raise Conflict("Attendance already submitted for this session.")
    logger.info("Student %s submitted attendance for session %s", student.id, session.id)
    db.refresh(row)
    return attendance_dict(row)


def _decide(db, actor, attendance_id, action):
    row = get_or_404(db, models.StudentAttendance, attendance_id, "Attendance record not found.")
    session = row.session
    require_assistant(db, actor, session.class_id)
    with transaction(db):
        apply_status(db, session, row.enrollment_user_id, action, actor_id=actor.id)
        log_audit(db, actor.id, "ATTENDANCE", row.id, action.value, f"student {row.enrollment_user_id} session {session.id}")
    db.refresh(row)
    return attendance_dict(row)


def approve_attendance(db, actor, attendance_id):
    return _decide(db, actor, attendance_id, Action.APPROVE)


def reject_attendance(db, actor, attendance_id):
    return _decide(db, actor, attendance_id, Action.REJECT)


def _apply_batch(db, actor, session, updates, with_grade):
    results = []
    with transaction(db):
        for item in updates:
            try:
                grade = _KEEP
                if with_grade:
                    # the assistant grid only grades students marked present
                    grade = item.grade if parse_status(item.status) == AttendanceStatus.HADIR else None
                row = apply_status(db, session, item.student_id, Action.OVERRIDE,
                                   target=item.status, grade=grade, actor_id=actor.id)
                db.flush()
            except AppError as e:
                results.append({"student_id": item.student_id, "success": False, "error": e.message})
                continue
            results.append({"student_id": item.student_id, "success": True,
                            "status": row.status, "grade": row.grade})
        ok = sum(1 for r in results if r["success"])
        log_audit(db, actor.id, "SESSION", session.id, "BATCH_UPDATE", f"{ok} updated, {len(results) - ok} failed")
    return results


def update_batch_attendance(db, actor, session_id, updates):
    session = get_session(db, session_id)
    require_assistant(db, actor, session.class_id)
    return _apply_batch(db, actor, session, updates, with_grade=True)


def update_attendance_status(db, admin, session_id, updates):
    """Admin grid edit; same per-item semantics as the assistant batch, without grades."""
    session = get_session(db, session_id)
    return _apply_batch(db, admin, session, updates, with_grade=False)


def finalize_session(db, actor, session_id):
    session = get_session(db, session_id)
    require_assistant(db, actor, session.class_id)
    with transaction(db):
        # re-read under lock so two finalizers can not both back-fill
        session = db.query(models.ClassSession).filter_by(id=session_id).populate_existing().with_for_update().one()
        if session.is_finalized:
            raise InvalidState("Session already finalized.")
        enrolled = [e.user_id for e in db.query(models.Enrollment).filter_by(class_id=session.class_id)]
        existing = {
            a.enrollment_user_id
            for a in db.query(models.StudentAttendance).filter_by(session_id=session.id)
        }
        created = 0
        for student_id in enrolled:
            if student_id in existing:
                continue
            apply_status(db, session, student_id, Action.FINALIZE)
            created += 1
        session.is_finalized = True
        log_audit(db, actor.id, "SESSION", session.id, "FINALIZE", f"{created} marked ALPHA")
    logger.info("Session %s finalized by %s, %d ALPHA rows created", session.id, actor.id, created)
    return {"session_id": session.id, "is_finalized": True, "alpha_created": created,
            "total_students": len(enrolled)}


def check_in(db, actor, session_id):
    session = get_session(db, session_id)
    require_assistant(db, actor, session.class_id)
    if db.query(models.AssistantAttendance).filter_by(user_id=actor.id, session_id=session.id).first():
        raise Conflict("Already checked in for this session.")
    row = models.AssistantAttendance(user_id=actor.id, session_id=session.id, status="HADIR", check_in_time=utcnow())
    try:
        with transaction(db):
            db.add(row)
    except IntegrityError:
        raise Conflict("Already checked in for this session.")
    db.refresh(row)
    return assistant_attendance_dict(row)


def validate_assistant(db, admin, user_id, session_id, status="HADIR"):
    """Admin records (or corrects) an assistant's presence for a session."""
    session = get_session(db, session_id)
    get_or_404(db, models.User, user_id, "User not found.")
    if db.query(models.ClassAssistant).filter_by(class_id=session.class_id, user_id=user_id).first() is None:
        raise InvalidState("User is not assigned as assistant for this class.")
    row = db.query(models.AssistantAttendance).filter_by(user_id=user_id, session_id=session.id).first()
    with transaction(db):
        if row is None:
            row = models.AssistantAttendance(user_id=user_id, session_id=session.id, check_in_time=utcnow())
            db.add(row)
        row.status = (status or "HADIR").upper()
        log_audit(db, admin.id, "ASSISTANT_ATTENDANCE", session.id, "VALIDATE", f"user {user_id} -> {row.status}")
    db.refresh(row)
    return assistant_attendance_dict(row)
