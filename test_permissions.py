# test_permissions.py
import pytest
from sqlalchemy import update

import attendance
import models
import permission_requests
from conftest import PDF
from errors import Forbidden, InvalidState, ValidationError
from schemas import AttendanceStatusItem


def _submit(db, store, world, student=None, session=None, reason="Sakit demam"):
    return permission_requests.submit_permission(
        db, store, student or world.alice, (session or world.sessions[0]).id, reason, "surat.pdf", PDF)


def test_approval_maps_reason_and_excuses_attendance(db, store, world):
    request = _submit(db, store, world)
    assert request["status"] == "PENDING"
    assert store.parse_url(request["file_url"])[0] == "permissions"

    result = permission_requests.approve_permission(db, world.admin, request["id"])
    assert result["attendance_status"] == "IZIN_SAKIT"
    assert result["attendance_updated"] is True
    assert result["permission"]["status"] == "APPROVED"
    assert result["permission"]["decided_by_id"] == world.admin.id

    row = attendance.find_attendance(db, world.cls.id, world.alice.id, world.sessions[0].id)
    assert row.status == "IZIN_SAKIT"
    assert row.proof_file_url == request["file_url"]


def test_admin_may_choose_the_status(db, store, world):
    request = _submit(db, store, world, reason="urusan keluarga")
    result = permission_requests.approve_permission(db, world.admin, request["id"], "IZIN_KAMPUS")
    assert result["attendance_status"] == "IZIN_KAMPUS"


def test_pending_override_is_refused_before_any_write(db, store, world):
    request = _submit(db, store, world)
    with pytest.raises(InvalidState):
        permission_requests.approve_permission(db, world.admin, request["id"], "PENDING")
    with pytest.raises(ValidationError):
        permission_requests.approve_permission(db, world.admin, request["id"], "LIBUR")
    db.expire_all()
    assert db.get(models.PermissionRequest, request["id"]).status == "PENDING"


def test_approval_overrides_an_existing_pending_submission(db, store, world):
    session = world.sessions[1]
    attendance.submit_attendance(db, world.alice, session.id)
    request = _submit(db, store, world, session=session, reason="Dispensasi kegiatan kampus")
    permission_requests.approve_permission(db, world.admin, request["id"])
    row = attendance.find_attendance(db, world.cls.id, world.alice.id, session.id)
    assert row.status == "IZIN_KAMPUS"


def test_requests_are_decided_once(db, store, world):
    request = _submit(db, store, world)
    permission_requests.reject_permission(db, world.admin, request["id"])
    with pytest.raises(InvalidState, match="already processed"):
        permission_requests.approve_permission(db, world.admin, request["id"])
    with pytest.raises(InvalidState):
        permission_requests.reject_permission(db, world.admin, request["id"])
    assert attendance.find_attendance(db, world.cls.id, world.alice.id, world.sessions[0].id) is None


def test_rejected_request_can_be_resubmitted(db, store, world):
    first = _submit(db, store, world)
    permission_requests.reject_permission(db, world.admin, first["id"])

    second = _submit(db, store, world, reason="Sakit tipes")
    assert second["id"] == first["id"]
    assert second["status"] == "PENDING"
    assert second["decided_by_id"] is None
    assert store.exists(*store.parse_url(second["file_url"]))

    result = permission_requests.approve_permission(db, world.admin, second["id"])
    assert result["attendance_status"] == "IZIN_SAKIT"


def test_bad_replacement_keeps_the_current_letter(db, store, world):
    first = _submit(db, store, world)
    with pytest.raises(ValidationError):
        permission_requests.submit_permission(
            db, store, world.alice, world.sessions[0].id, "Sakit", "surat.pdf", "not-a-data-url")
    db.expire_all()
    request = db.get(models.PermissionRequest, first["id"])
    assert request.file_url == first["file_url"]
    assert store.exists(*store.parse_url(request.file_url))


def test_decision_rechecks_status_under_lock(db, store, world, monkeypatch):
    request = _submit(db, store, world)
    real_get = permission_requests.get_or_404

    def get_then_reject_elsewhere(session, model, pk, message=None):
        row = real_get(session, model, pk, message)
        # another admin decides after this one has read the row
        session.execute(
            update(models.PermissionRequest).where(models.PermissionRequest.id == pk)
            .values(status="REJECTED").execution_options(synchronize_session=False))
        return row

    monkeypatch.setattr(permission_requests, "get_or_404", get_then_reject_elsewhere)
    with pytest.raises(InvalidState, match="already processed"):
        permission_requests.approve_permission(db, world.admin, request["id"])
    assert attendance.find_attendance(db, world.cls.id, world.alice.id, world.sessions[0].id) is None


def test_pending_request_can_be_replaced(db, store, world):
    first = _submit(db, store, world)
    second = _submit(db, store, world, reason="Acara keluarga")
    assert second["id"] == first["id"]
    assert second["reason"] == "Acara keluarga"
    assert not store.exists(*store.parse_url(first["file_url"]))


def test_unenrolled_student_can_not_request(db, store, world):
    with pytest.raises(Forbidden):
        _submit(db, store, world, student=world.outsider)


def test_approval_without_enrollment_leaves_attendance_alone(db, store, world):
    request = _submit(db, store, world, student=world.bob)
    db.query(models.Enrollment).filter_by(class_id=world.cls.id, user_id=world.bob.id).delete()
    db.commit()

    result = permission_requests.approve_permission(db, world.admin, request["id"])
    assert result["permission"]["status"] == "APPROVED"
    assert result["attendance_updated"] is False
    audit = db.query(models.AuditLog).filter_by(target_type="PERMISSION", target_id=request["id"]).one()
    assert "not enrolled" in audit.details


def test_listing(db, store, world):
    _submit(db, store, world)
    _submit(db, store, world, student=world.bob)
    assert len(permission_requests.list_permissions(db, "pending")) == 2
    assert permission_requests.list_permissions(db, "APPROVED") == []
    mine = permission_requests.my_permissions(db, world.bob)
    assert len(mine) == 1 and mine[0]["student"]["id"] == world.bob.id


def test_second_approval_does_not_touch_attendance(db, store, world):
    request = _submit(db, store, world)
    permission_requests.approve_permission(db, world.admin, request["id"])
    attendance.update_attendance_status(db, world.admin, world.sessions[0].id, [
        AttendanceStatusItem(student_id=world.alice.id, status="HADIR"),
    ])
    with pytest.raises(InvalidState):
        permission_requests.approve_permission(db, world.admin, request["id"], "IZIN_LAIN")
    row = attendance.find_attendance(db, world.cls.id, world.alice.id, world.sessions[0].id)
    assert row.status == "HADIR"
