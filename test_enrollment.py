# test_enrollment.py
import pytest
from sqlalchemy import update

import enrollment
import models
from conftest import IMAGE, make_user
from errors import Conflict, Forbidden, InvalidState, NotFound


def test_direct_enrollment_is_disabled():
    with pytest.raises(Forbidden, match="payment system"):
        enrollment.enroll_directly()


def test_verified_payment_creates_enrollment(db, store, world):
    payment = enrollment.submit_payment(db, store, world.outsider, world.cls.id, "bukti.png", IMAGE)
    assert payment["status"] == "PENDING"
    assert payment["amount"] == 5000
    bucket, name = store.parse_url(payment["proof_file_url"])
    assert bucket == "payments" and store.exists(bucket, name)

    result = enrollment.verify_payment(db, world.admin, payment["id"])
    assert result["payment"]["status"] == "VERIFIED"
    assert result["payment"]["verified_by"]["id"] == world.admin.id
    assert db.query(models.Enrollment).filter_by(class_id=world.cls.id, user_id=world.outsider.id).count() == 1

    with pytest.raises(InvalidState):
        enrollment.verify_payment(db, world.admin, payment["id"])
    assert db.query(models.Enrollment).filter_by(class_id=world.cls.id, user_id=world.outsider.id).count() == 1


def test_rejected_payment_does_not_enroll(db, store, world):
    payment = enrollment.submit_payment(db, store, world.outsider, world.cls.id, "bukti.png", IMAGE)
    rejected = enrollment.reject_payment(db, world.admin, payment["id"], "blurry")
    assert rejected["status"] == "REJECTED"
    assert db.query(models.Enrollment).filter_by(user_id=world.outsider.id).count() == 0
    with pytest.raises(InvalidState):
        enrollment.verify_payment(db, world.admin, payment["id"])


def test_resubmission_replaces_rejected_proof(db, store, world):
    first = enrollment.submit_payment(db, store, world.outsider, world.cls.id, "a.png", IMAGE)
    enrollment.reject_payment(db, world.admin, first["id"])
    second = enrollment.submit_payment(db, store, world.outsider, world.cls.id, "b.png", IMAGE)
    assert second["id"] == first["id"]
    assert second["status"] == "PENDING"
    assert second["verified_by"] is None
    assert not store.exists(*store.parse_url(first["proof_file_url"]))


def test_resubmitting_after_verification_conflicts(db, store, world):
    payment = enrollment.submit_payment(db, store, world.outsider, world.cls.id, "a.png", IMAGE)
    enrollment.verify_payment(db, world.admin, payment["id"])
    with pytest.raises(Conflict):
        enrollment.submit_payment(db, store, world.outsider, world.cls.id, "a.png", IMAGE)


def test_quota_is_enforced_at_verification(db, store, world):
    # class quota is 3 and two students are already enrolled
    dave = make_user(db, "dave@test.id")
    p1 = enrollment.submit_payment(db, store, world.outsider, world.cls.id, "a.png", IMAGE)
    p2 = enrollment.submit_payment(db, store, dave, world.cls.id, "b.png", IMAGE)
    enrollment.verify_payment(db, world.admin, p1["id"])
    with pytest.raises(Conflict, match="Class is full"):
        enrollment.verify_payment(db, world.admin, p2["id"])

    assert enrollment.enrolled_count(db, world.cls.id) == 3
    db.expire_all()
    assert db.get(models.Payment, p2["id"]).status == "PENDING"


def test_verifying_an_already_enrolled_student_conflicts(db, store, world):
    payment = enrollment.submit_payment(db, store, world.alice, world.cls.id, "a.png", IMAGE)
    with pytest.raises(Conflict, match="already enrolled"):
        enrollment.verify_payment(db, world.admin, payment["id"])


def test_payment_for_unknown_class(db, store, world):
    with pytest.raises(NotFound):
        enrollment.submit_payment(db, store, world.outsider, 9999, "a.png", IMAGE)


def test_payment_listing_and_stats(db, store, world):
    p = enrollment.submit_payment(db, store, world.outsider, world.cls.id, "a.png", IMAGE)
    enrollment.verify_payment(db, world.admin, p["id"])
    enrollment.submit_payment(db, store, make_user(db, "eve@test.id"), world.cls.id, "b.png", IMAGE)

    items, meta = enrollment.list_payments(db, status="pending")
    assert meta["total"] == 1 and items[0]["status"] == "PENDING"
    stats = enrollment.payment_stats(db)
    assert stats["by_status"] == {"VERIFIED": 1, "PENDING": 1}
    assert stats["total_verified"] == 5000

    mine, _ = enrollment.my_payments(db, world.outsider)
    assert [x["id"] for x in mine] == [p["id"]]
    assert enrollment.payment_status(db, world.outsider, world.cls.id)["status"] == "VERIFIED"
    assert enrollment.payment_status(db, world.alice, world.cls.id) is None


def test_my_classes(db, world):
    items, meta = enrollment.my_classes(db, world.alice)
    assert meta["total"] == 1
    assert items[0]["id"] == world.cls.id
    assert items[0]["enrolled_count"] == 2
    assert items[0]["day_name"] == "Senin"


def test_verify_rechecks_status_under_lock(db, store, world, monkeypatch):
    payment = enrollment.submit_payment(db, store, world.outsider, world.cls.id, "a.png", IMAGE)
    real_get = enrollment.get_or_404

    def get_then_reject_elsewhere(session, model, pk, message=None):
        row = real_get(session, model, pk, message)
        # a second admin rejects between this read and the write
        session.execute(
            update(models.Payment).where(models.Payment.id == pk)
            .values(status="REJECTED").execution_options(synchronize_session=False))
        return row

    monkeypatch.setattr(enrollment, "get_or_404", get_then_reject_elsewhere)
    with pytest.raises(InvalidState, match="already processed"):
        enrollment.verify_payment(db, world.admin, payment["id"])
    assert db.query(models.Enrollment).filter_by(user_id=world.outsider.id).count() == 0
