# models.py
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, ForeignKey, Enum, DateTime, Text, Boolean, Float, JSON,
    UniqueConstraint, ForeignKeyConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from database import Base
from workflow import AttendanceStatus, PaymentStatus, RequestStatus, SessionType


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum(enum_cls, name):
    return Enum(*[m.value for m in enum_cls], name=name)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(100), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    nim = Column(String(20), nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=func.now())

    enrollments = relationship("Enrollment", back_populates="user", cascade="all, delete-orphan")
    assistant_assignments = relationship("ClassAssistant", back_populates="user", cascade="all, delete-orphan")
    assistant_attendances = relationship("AssistantAttendance", back_populates="user", cascade="all, delete-orphan")
    payments = relationship("Payment", foreign_keys="Payment.student_id", back_populates="student", cascade="all, delete-orphan")
    inhal_payments = relationship("InhalPayment", foreign_keys="InhalPayment.student_id", back_populates="student", cascade="all, delete-orphan")
    permission_requests = relationship("PermissionRequest", foreign_keys="PermissionRequest.student_id", back_populates="student", cascade="all, delete-orphan")
    face_data = relationship("FaceData", back_populates="user", uselist=False, cascade="all, delete-orphan")
    face_logs = relationship("FaceAttendanceLog", foreign_keys="FaceAttendanceLog.student_id", back_populates="student", cascade="all, delete-orphan")


class Semester(Base):
    __tablename__ = "semesters"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=func.now())
    classes = relationship("Class", back_populates="semester")


class Course(Base):
    __tablename__ = "courses"
    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    classes = relationship("Class", back_populates="course")


class Room(Base):
    __tablename__ = "rooms"
    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    classes = relationship("Class", back_populates="room")


class TimeSlot(Base):
    __tablename__ = "time_slots"
    id = Column(Integer, primary_key=True, index=True)
    slot_number = Column(Integer, unique=True, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    label = Column(String(50), nullable=False)
    classes = relationship("Class", back_populates="time_slot")


class Class(Base):
    __tablename__ = "classes"
    __table_args__ = (
        # one class per room / slot / day
        UniqueConstraint("day_of_week", "time_slot_id", "room_id", name="uq_class_schedule"),
        UniqueConstraint("course_id", "semester_id", "name", name="uq_class_name"),
    )
    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False)
    semester_id = Column(Integer, ForeignKey("semesters.id"), nullable=False)
    name = Column(String(50), nullable=False)
    quota = Column(Integer, nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 1=Senin .. 5=Jumat
    time_slot_id = Column(Integer, ForeignKey("time_slots.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    course = relationship("Course", back_populates="classes")
    semester = relationship("Semester", back_populates="classes")
    time_slot = relationship("TimeSlot", back_populates="classes")
    room = relationship("Room", back_populates="classes")
    sessions = relationship("ClassSession", back_populates="class_", cascade="all, delete-orphan",
                            order_by="ClassSession.session_number")
    enrollments = relationship("Enrollment", back_populates="class_", cascade="all, delete-orphan")
    assistants = relationship("ClassAssistant", back_populates="class_", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="class_", cascade="all, delete-orphan")


class ClassSession(Base):
    __tablename__ = "class_sessions"
    __table_args__ = (UniqueConstraint("class_id", "session_number", name="uq_session_number"),)
    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False)
    session_number = Column(Integer, nullable=False)
    topic = Column(String(100), nullable=False)
    type = Column(_enum(SessionType, "session_type"), default=SessionType.REGULAR.value, nullable=False)
    date = Column(DateTime, nullable=True)
    is_finalized = Column(Boolean, default=False, nullable=False)

    class_ = relationship("Class", back_populates="sessions")
    student_attendances = relationship("StudentAttendance", back_populates="session", cascade="all, delete-orphan")
    assistant_attendances = relationship("AssistantAttendance", back_populates="session", cascade="all, delete-orphan")


class Enrollment(Base):
    __tablename__ = "enrollments"
    class_id = Column(Integer, ForeignKey("classes.id"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    enrolled_at = Column(DateTime, default=func.now())

    user = relationship("User", back_populates="enrollments")
    class_ = relationship("Class", back_populates="enrollments")
    attendances = relationship("StudentAttendance", back_populates="enrollment", cascade="all, delete-orphan")


class ClassAssistant(Base):
    __tablename__ = "class_assistants"
    class_id = Column(Integer, ForeignKey("classes.id"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    assigned_at = Column(DateTime, default=func.now())

    user = relationship("User", back_populates="assistant_assignments")
    class_ = relationship("Class", back_populates="assistants")


class StudentAttendance(Base):
    __tablename__ = "student_attendances"
    __table_args__ = (
        UniqueConstraint("enrollment_class_id", "enrollment_user_id", "session_id", name="uq_student_session"),
        ForeignKeyConstraint(
            ["enrollment_class_id", "enrollment_user_id"],
            ["enrollments.class_id", "enrollments.user_id"],
            ondelete="CASCADE",
        ),
    )
    id = Column(Integer, primary_key=True, index=True)
    enrollment_class_id = Column(Integer, nullable=False)
    enrollment_user_id = Column(Integer, nullable=False, index=True)
    session_id = Column(Integer, ForeignKey("class_sessions.id"), nullable=False, index=True)
    status = Column(_enum(AttendanceStatus, "attendance_status"), default=AttendanceStatus.ALPHA.value, nullable=False)
    grade = Column(Float, nullable=True)
    proof_file_url = Column(String(500), nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    approved_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    enrollment = relationship("Enrollment", back_populates="attendances")
    session = relationship("ClassSession", back_populates="student_attendances")
    approved_by = relationship("User", foreign_keys=[approved_by_id])


class AssistantAttendance(Base):
    __tablename__ = "assistant_attendances"
    __table_args__ = (UniqueConstraint("user_id", "session_id", name="uq_assistant_session"),)
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    session_id = Column(Integer, ForeignKey("class_sessions.id"), nullable=False)
    status = Column(String(20), default="HADIR", nullable=False)
    check_in_time = Column(DateTime, default=func.now())

    user = relationship("User", back_populates="assistant_attendances")
    session = relationship("ClassSession", back_populates="assistant_attendances")


class PermissionRequest(Base):
    __tablename__ = "permission_requests"
    __table_args__ = (UniqueConstraint("student_id", "session_id", name="uq_permission_student_session"),)
    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    session_id = Column(Integer, ForeignKey("class_sessions.id"), nullable=False)
    reason = Column(Text, nullable=False)
    file_name = Column(String(255), nullable=True)
    file_url = Column(String(500), nullable=True)
    status = Column(_enum(RequestStatus, "request_status"), default=RequestStatus.PENDING.value, nullable=False)
    decided_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    decided_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    student = relationship("User", foreign_keys=[student_id], back_populates="permission_requests")
    session = relationship("ClassSession")


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (UniqueConstraint("student_id", "class_id", name="uq_payment_student_class"),)
    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False)
    amount = Column(Integer, nullable=False)
    proof_file_name = Column(String(255), nullable=True)
    proof_file_url = Column(String(500), nullable=True)
    status = Column(_enum(PaymentStatus, "payment_status"), default=PaymentStatus.PENDING.value, nullable=False)
    verified_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    student = relationship("User", foreign_keys=[student_id], back_populates="payments")
    class_ = relationship("Class", back_populates="payments")
    verified_by = relationship("User", foreign_keys=[verified_by_id])


class InhalPayment(Base):
    __tablename__ = "inhal_payments"
    __table_args__ = (UniqueConstraint("student_id", "session_id", name="uq_inhal_student_session"),)
    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    session_id = Column(Integer, ForeignKey("class_sessions.id"), nullable=False)
    amount = Column(Integer, nullable=False)
    proof_file_name = Column(String(255), nullable=True)
    proof_file_url = Column(String(500), nullable=True)
    status = Column(_enum(PaymentStatus, "inhal_status"), default=PaymentStatus.PENDING.value, nullable=False)
    verified_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())

    student = relationship("User", foreign_keys=[student_id], back_populates="inhal_payments")
    session = relationship("ClassSession")
    verified_by = relationship("User", foreign_keys=[verified_by_id])


class FaceData(Base):
    __tablename__ = "face_data"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    sample_images = Column(JSON, nullable=True)      # list of storage URLs
    sample_count = Column(Integer, default=0)
    face_descriptors = Column(JSON, nullable=True)   # list of float vectors
    is_trained = Column(Boolean, default=False)
    trained_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="face_data")


class FaceAttendanceLog(Base):
    __tablename__ = "face_attendance_logs"
    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    session_id = Column(Integer, ForeignKey("class_sessions.id"), nullable=False)
    confidence_score = Column(Float, nullable=False)
    captured_image = Column(String(500), nullable=True)
    device_info = Column(String(255), nullable=True)
    recognized_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=func.now())

    student = relationship("User", foreign_keys=[student_id], back_populates="face_logs")
    session = relationship("ClassSession")
    recognized_by = relationship("User", foreign_keys=[recognized_by_id])


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    target_type = Column(String(50))
    target_id = Column(Integer)
    action = Column(String(50))
    details = Column(Text)
    created_at = Column(DateTime, default=func.now())
