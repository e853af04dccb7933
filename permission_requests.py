# permission_requests.py
import logging

from sqlalchemy.exc import IntegrityError

import models
import storage as object_storage
from access import get_enrollment, require_enrollment
from attendance import apply_status, get_session
from audit import log_audit
from database import get_or_404, lock_row, transaction
from errors import Conflict
from models import utcnow
from serializers import permission_dict
from workflow import Action, RequestStatus, ensure_pending, map_reason_to_status, parse_status, transition

logger = logging.getLogger(__name__)


def submit_permission(db, store, student, session_id, reason, file_name, file_data):
    """Create or resubmit the student's request for a session; it always goes back to PENDING."""
    session = get_session(db, session_id)
    require_enrollment(db, student.id, session.class_id)
    request = db.query(models.PermissionRequest).filter_by(student_id=student.id, session_id=session.id).first()
    # an approved letter may still back an attendance row, so only a pending one is replaced on disk
    old_url = request.file_url if request is not None and request.status == RequestStatus.PENDING.value else None

    url = store.upload_data_url(file_data, object_storage.PERMISSIONS, f"student-{student.id}-session-{session.id}")
    try:
        with transaction(db):
            if request is None:
                request = models.PermissionRequest(student_id=student.id, session_id=session.id)
                db.add(request)
            request.reason = reason
            request.file_name = file_name
            request.file_url = url
            request.status = RequestStatus.PENDING.value
            request.decided_by_id = None
            request.decided_at = None
    except IntegrityError:
        store.delete_url(url)
        raise Conflict("Permission request already submitted for this session.")
    if old_url and old_url != url:
        store.delete_url(old_url)
    logger.info("Student %s requested permission for session %s", student.id, session.id)
    db.refresh(request)
    return permission_dict(request)


def approve_permission(db, admin, request_id, new_status=None):
    request = get_or_404(db, models.PermissionRequest, request_id, "Permission request not found.")
    ensure_pending(request.status, "Permission request")
    status = parse_status(new_status, "new_status") if new_status else map_reason_to_status(request.reason)
    # reject an unusable override before anything is written
    transition(None, Action.EXCUSE, status)

    session = request.session
    updated = False
    with transaction(db):
        request = lock_row(db, models.PermissionRequest, request_id)
        ensure_pending(request.status, "Permission request")
        request.status = RequestStatus.APPROVED.value
        request.decided_by_id = admin.id
        request.decided_at = utcnow()
        if get_enrollment(db, request.student_id, session.class_id) is not None:
            apply_status(db, session, request.student_id, Action.EXCUSE, target=status,
                         actor_id=admin.id, proof_file_url=request.file_url)
            updated = True
            log_audit(db, admin.id, "PERMISSION", request.id, "APPROVE", status.value)
        else:
            log_audit(db, admin.id, "PERMISSION", request.id, "APPROVE",
                      f"{status.value}; student not enrolled, attendance untouched")
    logger.info("Permission %s approved as %s (attendance updated: %s)", request.id, status.value, updated)
    db.refresh(request)
    return {"permission": permission_dict(request), "attendance_status": status.value,
            "attendance_updated": updated}


def reject_permission(db, admin, request_id):
    request = get_or_404(db, models.PermissionRequest, request_id, "Permission request not found.")
    ensure_pending(request.status, "Permission request")
    with transaction(db):
        request = lock_row(db, models.PermissionRequest, request_id)
        ensure_pending(request.status, "Permission request")
        request.status = RequestStatus.REJECTED.value
        request.decided_by_id = admin.id
        request.decided_at = utcnow()
        log_audit(db, admin.id, "PERMISSION", request.id, "REJECT")
    db.refresh(request)
    return permission_dict(request)


def list_permissions(db, status=None):
    q = db.query(models.PermissionRequest)
    if status:
        q = q.filter(models.PermissionRequest.status == status.upper())
    return [permission_dict(r) for r in q.order_by(models.PermissionRequest.created_at.desc(), models.PermissionRequest.id.desc())]


def my_permissions(db, student):
    q = db.query(models.PermissionRequest).filter_by(student_id=student.id)
    return [permission_dict(r) for r in q.order_by(models.PermissionRequest.created_at.desc(), models.PermissionRequest.id.desc())]
