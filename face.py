# face.py
"""Face samples, descriptors and recognition-based attendance marks."""
import logging

from sqlalchemy.orm import joinedload

import models
import storage as object_storage
from access import Capability, authorize, require_enrollment
from attendance import apply_status, get_session
from audit import log_audit
from config import settings
from database import transaction
from errors import NotFound, ValidationError
from models import utcnow
from schemas import paginate
from serializers import attendance_dict, face_log_dict, user_brief
from workflow import Action

logger = logging.getLogger(__name__)

MIN_IMAGES = 5
MAX_IMAGES = 10


def _face_dict(f):
    return {
        "id": f.id,
        "user_id": f.user_id,
        "sample_count": f.sample_count,
        "sample_images": f.sample_images or [],
        "is_trained": bool(f.is_trained),
        "trained_at": f.trained_at,
        "updated_at": f.updated_at,
    }


def upload_images(db, store, user, images):
    if not MIN_IMAGES <= len(images) <= MAX_IMAGES:
        raise ValidationError(f"Need {MIN_IMAGES}-{MAX_IMAGES} images.")
    urls = [store.upload_data_url(img, object_storage.FACES, f"user-{user.id}") for img in images]

    face = db.query(models.FaceData).filter_by(user_id=user.id).first()
    old = list(face.sample_images or []) if face else []
    with transaction(db):
        if face is None:
            face = models.FaceData(user_id=user.id, face_descriptors=[])
            db.add(face)
        face.sample_images = urls
        face.sample_count = len(urls)
        face.is_trained = False
    for url in old:
        store.delete_url(url)
    db.refresh(face)
    return _face_dict(face)


def save_descriptors(db, user, descriptors):
    face = db.query(models.FaceData).filter_by(user_id=user.id).first()
    if face is None:
        raise NotFound("Upload face images first.")
    if not descriptors:
        raise ValidationError("Descriptors required.")
    with transaction(db):
        face.face_descriptors = descriptors
        face.is_trained = True
        face.trained_at = utcnow()
    db.refresh(face)
    return _face_dict(face)


def face_status(db, user):
    face = db.query(models.FaceData).filter_by(user_id=user.id).first()
    if face is None:
        return {"registered": False}
    return dict(_face_dict(face), registered=True)


def delete_face(db, store, user):
    face = db.query(models.FaceData).filter_by(user_id=user.id).first()
    if face is None:
        raise NotFound("Face data not found.")
    urls = list(face.sample_images or [])
    with transaction(db):
        db.delete(face)
    for url in urls:
        store.delete_url(url)


def _require_operator(db, actor, class_id):
    authorize(db, actor, Capability.ADMIN, Capability.ASSISTANT_OF_CLASS, class_id=class_id,
              message="You are not assigned as an assistant for this class.")


def session_descriptors(db, actor, session_id):
    session = get_session(db, session_id)
    _require_operator(db, actor, session.class_id)
    enrollments = (
        db.query(models.Enrollment)
        .options(joinedload(models.Enrollment.user).joinedload(models.User.face_data))
        .filter_by(class_id=session.class_id).all()
    )
    known = [
        {"user_id": e.user.id, "name": e.user.name, "nim": e.user.nim,
         "descriptors": e.user.face_data.face_descriptors}
        for e in enrollments if e.user.face_data is not None and e.user.face_data.is_trained
    ]
    return {"session_id": session.id, "total_enrolled": len(enrollments),
            "with_face_data": len(known), "face_descriptors": known}


def mark_attendance(db, store, actor, data):
    session = get_session(db, data.session_id)
    _require_operator(db, actor, session.class_id)
    if data.confidence_score < settings.FACE_MIN_CONFIDENCE:
        raise ValidationError("Low confidence.")
    require_enrollment(db, data.student_id, session.class_id, "Student is not enrolled in this class.")

    image_url = None
    if data.captured_image:
        image_url = store.upload_data_url(data.captured_image, object_storage.ATTENDANCE,
                                          f"session-{session.id}-student-{data.student_id}")
    with transaction(db):
        row = apply_status(db, session, data.student_id, Action.FACE_MARK, actor_id=actor.id)
        log = models.FaceAttendanceLog(
            student_id=data.student_id,
            session_id=session.id,
            confidence_score=data.confidence_score,
            captured_image=image_url,
            device_info=data.device_info,
            recognized_by_id=actor.id,
        )
        db.add(log)
        log_audit(db, actor.id, "ATTENDANCE", session.id, "FACE_MARK",
                  f"student {data.student_id} confidence {data.confidence_score:.2f}")
    db.refresh(row)
    db.refresh(log)
    return {"attendance": attendance_dict(row), "log": face_log_dict(log)}


def face_stats(db):
    total_users = db.query(models.User).filter_by(is_admin=False).count()
    registered = db.query(models.FaceData).count()
    trained = db.query(models.FaceData).filter_by(is_trained=True).count()
    return {
        "total_users": total_users,
        "registered_users": registered,
        "trained_users": trained,
        "registration_rate": round(registered / total_users * 100, 1) if total_users else 0,
        "total_face_attendances": db.query(models.FaceAttendanceLog).count(),
    }


def students_with_face_data(db, page=1, limit=50):
    q = db.query(models.User).filter_by(is_admin=False).order_by(models.User.name)
    items, meta = paginate(q, page, limit)
    data = []
    for u in items:
        f = u.face_data
        data.append(dict(user_brief(u), face_data=None if f is None else {
            "sample_count": f.sample_count, "is_trained": bool(f.is_trained), "trained_at": f.trained_at,
        }))
    return data, meta


def face_logs(db, page=1, limit=50):
    q = db.query(models.FaceAttendanceLog).order_by(models.FaceAttendanceLog.created_at.desc(),
                                                     models.FaceAttendanceLog.id.desc())
    items, meta = paginate(q, page, limit)
    return [face_log_dict(x) for x in items], meta
