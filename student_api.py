# student_api.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import attendance, enrollment, face, inhal, models, permission_requests, reports, schemas, scheduling
from auth import get_current_user
from database import get_db
from schemas import envelope
from storage import ObjectStorage, get_storage

router = APIRouter(prefix="/api/student", tags=["student"])


@router.get("/schedule")
def get_schedule(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(scheduling.student_schedule(db, current_user), "Schedule retrieved.")

@router.get("/classes/open")
def get_open_classes(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(scheduling.open_classes(db), "Open classes retrieved.")

@router.post("/enroll")
def enroll(current_user: models.User = Depends(get_current_user)):
    enrollment.enroll_directly()

@router.get("/my-classes")
def get_my_classes(page: int = 1, limit: int = 50, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    items, meta = enrollment.my_classes(db, current_user, page, limit)
    return envelope(items, "Classes retrieved.", pagination=meta)

@router.get("/my-classes/{class_id}/report")
def get_class_report(class_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(reports.student_class_report(db, current_user, class_id), "Report retrieved.")

@router.get("/my-recap")
def get_my_recap(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(reports.my_recap(db, current_user), "Recap retrieved.")


# --- Attendance and permissions ---
@router.post("/attendance/submit", status_code=201)
def submit_attendance(body: schemas.AttendanceSubmit, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(attendance.submit_attendance(db, current_user, body.session_id), "Attendance submitted, waiting for approval.")

@router.post("/permissions", status_code=201)
def submit_permission(body: schemas.PermissionSubmit, db: Session = Depends(get_db), store: ObjectStorage = Depends(get_storage), current_user: models.User = Depends(get_current_user)):
    row = permission_requests.submit_permission(db, store, current_user, body.session_id, body.reason, body.file_name, body.file_data)
    return envelope(row, "Permission request submitted.")

@router.get("/permissions")
def get_permissions(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(permission_requests.my_permissions(db, current_user), "Permissions retrieved.")


# --- Payments ---
@router.post("/payments", status_code=201)
def submit_payment(body: schemas.PaymentSubmit, db: Session = Depends(get_db), store: ObjectStorage = Depends(get_storage), current_user: models.User = Depends(get_current_user)):
    row = enrollment.submit_payment(db, store, current_user, body.class_id, body.proof_file_name, body.proof_file_data)
    return envelope(row, "Payment submitted, waiting for verification.")

@router.get("/payments/status/{class_id}")
def get_payment_status(class_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(enrollment.payment_status(db, current_user, class_id), "Payment status retrieved.")

@router.get("/payments")
def get_payments(page: int = 1, limit: int = 50, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    items, meta = enrollment.my_payments(db, current_user, page, limit)
    return envelope(items, "Payments retrieved.", pagination=meta)


# --- INHAL ---
@router.post("/inhal", status_code=201)
def submit_inhal(body: schemas.InhalSubmit, db: Session = Depends(get_db), store: ObjectStorage = Depends(get_storage), current_user: models.User = Depends(get_current_user)):
    row = inhal.submit_inhal(db, store, current_user, body.session_id, body.proof_file_name, body.proof_file_data)
    return envelope(row, "INHAL payment submitted.")

@router.get("/inhal")
def get_inhal(page: int = 1, limit: int = 50, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    items, meta = inhal.my_inhal(db, current_user, page, limit)
    return envelope(items, "INHAL payments retrieved.", pagination=meta)

@router.get("/inhal/status/{session_id}")
def get_inhal_status(session_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(inhal.inhal_status(db, current_user, session_id), "INHAL status retrieved.")


# --- Face ---
@router.post("/face/upload", status_code=201)
def upload_face(body: schemas.FaceUpload, db: Session = Depends(get_db), store: ObjectStorage = Depends(get_storage), current_user: models.User = Depends(get_current_user)):
    return envelope(face.upload_images(db, store, current_user, body.images), "Face images uploaded.")

@router.post("/face/descriptors")
def save_descriptors(body: schemas.FaceDescriptors, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(face.save_descriptors(db, current_user, body.descriptors), "Face descriptors saved.")

@router.get("/face/status")
def get_face_status(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(face.face_status(db, current_user), "Face status retrieved.")

@router.delete("/face")
def delete_face(db: Session = Depends(get_db), store: ObjectStorage = Depends(get_storage), current_user: models.User = Depends(get_current_user)):
    face.delete_face(db, store, current_user)
    return envelope(None, "Face data deleted.")
