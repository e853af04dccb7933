# serializers.py
"""Plain-dict views of ORM rows for JSON responses."""

DAY_NAMES = {1: "Senin", 2: "Selasa", 3: "Rabu", 4: "Kamis", 5: "Jumat"}


def _status(value):
    return getattr(value, "value", value)


def user_brief(u):
    if u is None:
        return None
    return {"id": u.id, "name": u.name, "email": u.email, "nim": u.nim}


def user_dict(u):
    return {"id": u.id, "email": u.email, "name": u.name, "nim": u.nim,
            "is_admin": bool(u.is_admin), "created_at": u.created_at}


def course_dict(c):
    return {"id": c.id, "code": c.code, "name": c.name} if c else None


def room_dict(r):
    return {"id": r.id, "code": r.code, "name": r.name} if r else None


def time_slot_dict(t):
    if t is None:
        return None
    return {"id": t.id, "slot_number": t.slot_number, "start_time": t.start_time,
            "end_time": t.end_time, "label": t.label}


def semester_dict(s):
    return {"id": s.id, "name": s.name, "is_active": bool(s.is_active)} if s else None


def session_dict(s):
    return {
        "id": s.id,
        "class_id": s.class_id,
        "session_number": s.session_number,
        "topic": s.topic,
        "type": _status(s.type),
        "date": s.date,
        "is_finalized": bool(s.is_finalized),
    }


def class_dict(c, enrolled=None, with_sessions=False):
    data = {
        "id": c.id,
        "name": c.name,
        "quota": c.quota,
        "day_of_week": c.day_of_week,
        "day_name": DAY_NAMES.get(c.day_of_week),
        "course_id": c.course_id,
        "semester_id": c.semester_id,
        "time_slot_id": c.time_slot_id,
        "room_id": c.room_id,
        "course": course_dict(c.course),
        "semester": semester_dict(c.semester),
        "time_slot": time_slot_dict(c.time_slot),
        "room": room_dict(c.room),
        "assistants": [{"id": a.user.id, "name": a.user.name} for a in c.assistants],
    }
    if enrolled is not None:
        data["enrolled_count"] = enrolled
    if with_sessions:
        data["sessions"] = [session_dict(s) for s in c.sessions]
    return data


def attendance_dict(a):
    return {
        "id": a.id,
        "student_id": a.enrollment_user_id,
        "class_id": a.enrollment_class_id,
        "session_id": a.session_id,
        "status": _status(a.status),
        "grade": a.grade,
        "proof_file_url": a.proof_file_url,
        "submitted_at": a.submitted_at,
        "approved_by_id": a.approved_by_id,
        "approved_at": a.approved_at,
    }


def payment_dict(p):
    return {
        "id": p.id,
        "student": user_brief(p.student),
        "class_id": p.class_id,
        "class_name": p.class_.name if p.class_ else None,
        "course": course_dict(p.class_.course) if p.class_ else None,
        "amount": p.amount,
        "proof_file_name": p.proof_file_name,
        "proof_file_url": p.proof_file_url,
        "status": _status(p.status),
        "verified_by": user_brief(p.verified_by),
        "verified_at": p.verified_at,
        "created_at": p.created_at,
    }


def inhal_dict(p):
    session = p.session
    return {
        "id": p.id,
        "student": user_brief(p.student),
        "session_id": p.session_id,
        "session_number": session.session_number if session else None,
        "class_id": session.class_id if session else None,
        "course": course_dict(session.class_.course) if session else None,
        "amount": p.amount,
        "proof_file_name": p.proof_file_name,
        "proof_file_url": p.proof_file_url,
        "status": _status(p.status),
        "verified_by": user_brief(p.verified_by),
        "verified_at": p.verified_at,
        "created_at": p.created_at,
    }


def permission_dict(r):
    session = r.session
    return {
        "id": r.id,
        "student": user_brief(r.student),
        "session_id": r.session_id,
        "session_number": session.session_number if session else None,
        "class_id": session.class_id if session else None,
        "course": course_dict(session.class_.course) if session else None,
        "reason": r.reason,
        "file_name": r.file_name,
        "file_url": r.file_url,
        "status": _status(r.status),
        "decided_by_id": r.decided_by_id,
        "decided_at": r.decided_at,
        "created_at": r.created_at,
    }


def assistant_attendance_dict(a):
    return {
        "id": a.id,
        "user": user_brief(a.user),
        "session_id": a.session_id,
        "session_number": a.session.session_number if a.session else None,
        "class_id": a.session.class_id if a.session else None,
        "status": a.status,
        "check_in_time": a.check_in_time,
    }


def face_log_dict(log):
    return {
        "id": log.id,
        "student": user_brief(log.student),
        "session_id": log.session_id,
        "confidence_score": log.confidence_score,
        "captured_image": log.captured_image,
        "device_info": log.device_info,
        "recognized_by": user_brief(log.recognized_by),
        "created_at": log.created_at,
    }
