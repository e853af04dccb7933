# teaching_api.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import attendance, face, grading, models, reports, schemas, scheduling
from auth import get_current_user
from database import get_db
from schemas import envelope
from storage import ObjectStorage, get_storage

router = APIRouter(prefix="/api/teaching", tags=["teaching"])


@router.get("/schedule")
def get_schedule(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(scheduling.teaching_schedule(db, current_user), "Teaching schedule retrieved.")

@router.post("/check-in", status_code=201)
def check_in(body: schemas.CheckInRequest, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(attendance.check_in(db, current_user, body.session_id), "Checked in.")


# --- Approval queue ---
@router.get("/sessions/{session_id}/pending")
def get_pending(session_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(reports.pending_for_session(db, current_user, session_id), "Pending attendance retrieved.")

@router.put("/attendance/{attendance_id}/approve")
def approve_attendance(attendance_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(attendance.approve_attendance(db, current_user, attendance_id), "Attendance approved.")

@router.put("/attendance/{attendance_id}/reject")
def reject_attendance(attendance_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(attendance.reject_attendance(db, current_user, attendance_id), "Attendance rejected.")


# --- Sessions ---
@router.get("/classes/{class_id}/sessions")
def get_class_sessions(class_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(reports.class_sessions(db, current_user, class_id), "Sessions retrieved.")

@router.get("/sessions/{session_id}/roster")
def get_roster(session_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(reports.session_roster(db, current_user, session_id), "Roster retrieved.")

@router.put("/sessions/{session_id}/update-batch")
def update_batch(session_id: int, body: schemas.BatchAttendanceUpdate, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    results = attendance.update_batch_attendance(db, current_user, session_id, body.updates)
    ok = sum(1 for r in results if r["success"])
    return envelope(results, f"{ok} of {len(results)} records updated.")

@router.get("/classes/{class_id}/recap")
def get_class_recap(class_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(reports.class_recap(db, current_user, class_id), "Recap retrieved.")

@router.post("/sessions/{session_id}/finalize")
def finalize_session(session_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(attendance.finalize_session(db, current_user, session_id), "Session finalized.")


# --- Grades ---
@router.get("/grades/class/{class_id}")
def get_class_grades(class_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(grading.class_grades(db, current_user, class_id), "Grades retrieved.")

@router.get("/grades/class/{class_id}/stats")
def get_class_grade_stats(class_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(grading.class_grade_stats(db, current_user, class_id), "Grade stats retrieved.")

@router.get("/grades/session/{session_id}")
def get_session_grades(session_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(grading.session_grades(db, current_user, session_id), "Grades retrieved.")

@router.put("/grades")
def update_grade(body: schemas.GradeUpdate, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(grading.update_grade(db, current_user, body.student_id, body.session_id, body.grade), "Grade updated.")

@router.put("/grades/session/{session_id}/batch")
def update_session_grades(session_id: int, body: schemas.SessionGradeBatch, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    results = grading.update_session_grades(db, current_user, session_id, body.grades)
    ok = sum(1 for r in results if r["success"])
    return envelope(results, f"{ok} of {len(results)} grades updated.")


# --- Face recognition ---
@router.get("/sessions/{session_id}/face-descriptors")
def get_face_descriptors(session_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return envelope(face.session_descriptors(db, current_user, session_id), "Face descriptors retrieved.")

@router.post("/face/attendance", status_code=201)
def mark_face_attendance(body: schemas.FaceAttendanceMark, db: Session = Depends(get_db), store: ObjectStorage = Depends(get_storage), current_user: models.User = Depends(get_current_user)):
    return envelope(face.mark_attendance(db, store, current_user, body), "Attendance marked by face recognition.")
