# enrollment.py
"""
Enrollment by payment.

Students never enroll directly. They upload a proof of payment; an admin
verifies it, which creates the Enrollment in the same transaction after
re-counting the class against its quota.
"""
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

import models
import storage as object_storage
from audit import log_audit
from config import settings
from database import get_or_404, lock_row, transaction
from errors import Conflict, Forbidden
from models import utcnow
from schemas import paginate
from serializers import class_dict, payment_dict
from workflow import PaymentStatus, ensure_pending

logger = logging.getLogger(__name__)


def enroll_directly():
    raise Forbidden("Direct enrollment is disabled. Please use the payment system to enroll in classes.")


def enrolled_count(db, class_id):
    return db.query(func.count()).select_from(models.Enrollment).filter(models.Enrollment.class_id == class_id).scalar()


def my_classes(db, student, page=1, limit=50):
    q = (
        db.query(models.Enrollment).join(models.Class)
        .filter(models.Enrollment.user_id == student.id)
        .order_by(models.Class.semester_id.desc(), models.Class.day_of_week, models.Class.time_slot_id)
    )
    items, meta = paginate(q, page, limit)
    return [dict(class_dict(e.class_, enrolled=enrolled_count(db, e.class_id)), enrolled_at=e.enrolled_at)
            for e in items], meta


def submit_payment(db, store, student, class_id, proof_file_name, proof_file_data):
    get_or_404(db, models.Class, class_id, "Class not found.")
    payment = db.query(models.Payment).filter_by(student_id=student.id, class_id=class_id).first()
    if payment is not None and payment.status == PaymentStatus.VERIFIED.value:
        raise Conflict("Payment already verified; you are enrolled in this class.")

    url = store.upload_data_url(proof_file_data, object_storage.PAYMENTS, f"payment-{student.id}-{class_id}")
    old_url = payment.proof_file_url if payment is not None else None
    try:
        with transaction(db):
            if payment is None:
                payment = models.Payment(student_id=student.id, class_id=class_id, amount=settings.PAYMENT_AMOUNT)
                db.add(payment)
            payment.proof_file_name = proof_file_name
            payment.proof_file_url = url
            payment.status = PaymentStatus.PENDING.value
            payment.verified_by_id = None
            payment.verified_at = None
    except IntegrityError:
        store.delete_url(url)
        raise Conflict("Payment already submitted for this class.")
    # the replaced proof is no longer referenced
    if old_url and old_url != url:
        store.delete_url(old_url)
    logger.info("Student %s submitted payment for class %s", student.id, class_id)
    db.refresh(payment)
    return payment_dict(payment)


def verify_payment(db, admin, payment_id):
    payment = get_or_404(db, models.Payment, payment_id, "Payment not found.")
    ensure_pending(payment.status, "Payment")
    try:
        with transaction(db):
            payment = lock_row(db, models.Payment, payment_id)
            ensure_pending(payment.status, "Payment")
            # lock the class row; the quota count below is authoritative
            cls = db.query(models.Class).filter_by(id=payment.class_id).with_for_update().one()
            if db.query(models.Enrollment).filter_by(class_id=cls.id, user_id=payment.student_id).first():
                raise Conflict("Student is already enrolled in this class.")
            if enrolled_count(db, cls.id) >= cls.quota:
                raise Conflict("Class is full. Cannot enroll student.")
            payment.status = PaymentStatus.VERIFIED.value
            payment.verified_by_id = admin.id
            payment.verified_at = utcnow()
            db.add(models.Enrollment(class_id=cls.id, user_id=payment.student_id))
            log_audit(db, admin.id, "PAYMENT", payment.id, "VERIFY", f"student {payment.student_id} class {cls.id}")
    except IntegrityError:
        raise Conflict("Student is already enrolled in this class.")
    logger.info("Payment %s verified by %s", payment.id, admin.id)
    db.refresh(payment)
    return {"payment": payment_dict(payment),
            "enrollment": {"class_id": payment.class_id, "user_id": payment.student_id}}


def reject_payment(db, admin, payment_id, reason=None):
    payment = get_or_404(db, models.Payment, payment_id, "Payment not found.")
    ensure_pending(payment.status, "Payment")
    with transaction(db):
        payment = lock_row(db, models.Payment, payment_id)
        ensure_pending(payment.status, "Payment")
        payment.status = PaymentStatus.REJECTED.value
        payment.verified_by_id = admin.id
        payment.verified_at = utcnow()
        log_audit(db, admin.id, "PAYMENT", payment.id, "REJECT", reason or "")
    db.refresh(payment)
    return payment_dict(payment)


def payment_status(db, student, class_id):
    payment = db.query(models.Payment).filter_by(student_id=student.id, class_id=class_id).first()
    return payment_dict(payment) if payment else None


def my_payments(db, student, page=1, limit=50):
    q = db.query(models.Payment).filter_by(student_id=student.id).order_by(models.Payment.created_at.desc(), models.Payment.id.desc())
    items, meta = paginate(q, page, limit)
    return [payment_dict(p) for p in items], meta


def _active_semester(db):
    return db.query(models.Semester).filter_by(is_active=True).first()


def list_payments(db, status=None, page=1, limit=50):
    """Payments for classes of the active semester."""
    semester = _active_semester(db)
    if semester is None:
        return [], {"page": page, "limit": limit, "total": 0, "pages": 0}
    q = db.query(models.Payment).join(models.Class).filter(models.Class.semester_id == semester.id)
    if status:
        q = q.filter(models.Payment.status == status.upper())
    q = q.order_by(models.Payment.created_at.desc(), models.Payment.id.desc())
    items, meta = paginate(q, page, limit)
    return [payment_dict(p) for p in items], meta


def payment_stats(db):
    semester = _active_semester(db)
    if semester is None:
        return {"by_status": {}, "total_verified": 0}
    base = db.query(models.Payment).join(models.Class).filter(models.Class.semester_id == semester.id)
    by_status = dict(
        base.with_entities(models.Payment.status, func.count(models.Payment.id)).group_by(models.Payment.status).all()
    )
    total = base.filter(models.Payment.status == PaymentStatus.VERIFIED.value).with_entities(
        func.coalesce(func.sum(models.Payment.amount), 0)
    ).scalar()
    return {"by_status": by_status, "total_verified": int(total or 0)}
