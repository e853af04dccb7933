# inhal.py
"""INHAL: a paid make-up that turns an absence into a counted attendance."""
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

import models
import storage as object_storage
from access import get_enrollment, require_enrollment
from attendance import apply_status, find_attendance, get_session
from audit import log_audit
from config import settings
from database import get_or_404, lock_row, transaction
from errors import Conflict, InvalidState
from models import utcnow
from schemas import paginate
from serializers import inhal_dict
from workflow import INHAL_INELIGIBLE, Action, AttendanceStatus, PaymentStatus, ensure_pending, parse_status

logger = logging.getLogger(__name__)


def _duplicate():
    return Conflict("INHAL payment already submitted for this session.", status_code=400)


def submit_inhal(db, store, student, session_id, proof_file_name, proof_file_data):
    session = get_session(db, session_id)
    require_enrollment(db, student.id, session.class_id)
    row = find_attendance(db, session.class_id, student.id, session.id)
    # no row yet counts as ALPHA
    current = parse_status(row.status) if row else AttendanceStatus.ALPHA
    if current in INHAL_INELIGIBLE:
        raise InvalidState(f"Cannot apply for INHAL with status: {current.value}")
    if db.query(models.InhalPayment).filter_by(student_id=student.id, session_id=session.id).first():
        raise _duplicate()

    url = store.upload_data_url(proof_file_data, object_storage.PAYMENTS, f"inhal-{student.id}-{session.id}")
    payment = models.InhalPayment(
        student_id=student.id,
        session_id=session.id,
        amount=settings.INHAL_AMOUNT,
        proof_file_name=proof_file_name,
        proof_file_url=url,
        status=PaymentStatus.PENDING.value,
    )
    try:
        with transaction(db):
            db.add(payment)
    except IntegrityError:
        store.delete_url(url)
        raise _duplicate()
    logger.info("Student %s submitted INHAL for session %s", student.id, session.id)
    db.refresh(payment)
    return inhal_dict(payment)


def verify_inhal(db, admin, payment_id):
    payment = get_or_404(db, models.InhalPayment, payment_id, "INHAL payment not found.")
    ensure_pending(payment.status, "INHAL payment")
    session = payment.session
    with transaction(db):
        payment = lock_row(db, models.InhalPayment, payment_id)
        ensure_pending(payment.status, "INHAL payment")
        payment.status = PaymentStatus.VERIFIED.value
        payment.verified_by_id = admin.id
        payment.verified_at = utcnow()
        if get_enrollment(db, payment.student_id, session.class_id) is not None:
            apply_status(db, session, payment.student_id, Action.MAKE_UP, actor_id=admin.id)
        log_audit(db, admin.id, "INHAL", payment.id, "VERIFY", f"student {payment.student_id} session {session.id}")
    logger.info("INHAL %s verified by %s", payment.id, admin.id)
    db.refresh(payment)
    return inhal_dict(payment)


def reject_inhal(db, admin, payment_id):
    payment = get_or_404(db, models.InhalPayment, payment_id, "INHAL payment not found.")
    ensure_pending(payment.status, "INHAL payment")
    with transaction(db):
        payment = lock_row(db, models.InhalPayment, payment_id)
        ensure_pending(payment.status, "INHAL payment")
        payment.status = PaymentStatus.REJECTED.value
        payment.verified_by_id = admin.id
        payment.verified_at = utcnow()
        log_audit(db, admin.id, "INHAL", payment.id, "REJECT")
    db.refresh(payment)
    return inhal_dict(payment)


def inhal_status(db, student, session_id):
    payment = db.query(models.InhalPayment).filter_by(student_id=student.id, session_id=session_id).first()
    return inhal_dict(payment) if payment else None


def my_inhal(db, student, page=1, limit=50):
    q = db.query(models.InhalPayment).filter_by(student_id=student.id).order_by(
        models.InhalPayment.created_at.desc(), models.InhalPayment.id.desc())
    items, meta = paginate(q, page, limit)
    return [inhal_dict(p) for p in items], meta


def list_inhal(db, status=None, page=1, limit=50):
    q = db.query(models.InhalPayment)
    if status:
        q = q.filter(models.InhalPayment.status == status.upper())
    q = q.order_by(models.InhalPayment.created_at.desc(), models.InhalPayment.id.desc())
    items, meta = paginate(q, page, limit)
    return [inhal_dict(p) for p in items], meta


def inhal_stats(db):
    counts = dict(
        db.query(models.InhalPayment.status, func.count(models.InhalPayment.id)).group_by(models.InhalPayment.status).all()
    )
    verified = counts.get(PaymentStatus.VERIFIED.value, 0)
    return {
        "total": sum(counts.values()),
        "pending": counts.get(PaymentStatus.PENDING.value, 0),
        "verified": verified,
        "rejected": counts.get(PaymentStatus.REJECTED.value, 0),
        "total_revenue": verified * settings.INHAL_AMOUNT,
        "inhal_amount": settings.INHAL_AMOUNT,
    }
