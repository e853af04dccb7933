# workflow.py
"""
Attendance state machine and the status vocabularies of the practicum workflow.

Every write to a StudentAttendance status goes through ``transition()``. The
table below is the single source of truth for which (current status, action)
pairs are legal; callers never decide "create vs update" on their own.

    no row / ALPHA --SUBMIT--> PENDING --APPROVE--> HADIR
                                       --REJECT---> REJECTED
    no row --FINALIZE--> ALPHA
    any    --EXCUSE----> IZIN_* (or an explicit admin status)
    any    --MAKE_UP---> INHAL
    any    --FACE_MARK-> HADIR
    any    --OVERRIDE--> any status except PENDING
"""
import enum
from typing import Optional

from errors import Conflict, InvalidState, ValidationError


class AttendanceStatus(str, enum.Enum):
    PENDING = "PENDING"
    HADIR = "HADIR"
    ALPHA = "ALPHA"
    REJECTED = "REJECTED"
    INHAL = "INHAL"
    IZIN_SAKIT = "IZIN_SAKIT"
    IZIN_KAMPUS = "IZIN_KAMPUS"
    IZIN_LAIN = "IZIN_LAIN"


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class SessionType(str, enum.Enum):
    REGULAR = "REGULAR"
    EXAM = "EXAM"


class Action(str, enum.Enum):
    SUBMIT = "SUBMIT"          # student self check-in
    APPROVE = "APPROVE"        # assistant accepts a submission
    REJECT = "REJECT"          # assistant declines a submission
    FINALIZE = "FINALIZE"      # session close back-fill
    OVERRIDE = "OVERRIDE"      # assistant batch / admin grid edit
    EXCUSE = "EXCUSE"          # permission approved
    MAKE_UP = "MAKE_UP"        # INHAL payment verified
    FACE_MARK = "FACE_MARK"    # face recognition hit


GRADABLE_STATUSES = frozenset({AttendanceStatus.HADIR, AttendanceStatus.INHAL})
IZIN_STATUSES = frozenset({
    AttendanceStatus.IZIN_SAKIT,
    AttendanceStatus.IZIN_KAMPUS,
    AttendanceStatus.IZIN_LAIN,
})
# statuses from which an INHAL make-up payment may not be requested
INHAL_INELIGIBLE = frozenset({
    AttendanceStatus.HADIR,
    AttendanceStatus.INHAL,
    AttendanceStatus.PENDING,
})
# statuses counted as "attended" in recaps and reports
PRESENT_STATUSES = frozenset({AttendanceStatus.HADIR, AttendanceStatus.INHAL})

_ANY_BUT_PENDING = frozenset(s for s in AttendanceStatus if s != AttendanceStatus.PENDING)

# (current, action) -> next. ``None`` stands for "no attendance row yet".
FIXED_TRANSITIONS = {
    (None, Action.SUBMIT): AttendanceStatus.PENDING,
    (AttendanceStatus.ALPHA, Action.SUBMIT): AttendanceStatus.PENDING,
    (AttendanceStatus.PENDING, Action.APPROVE): AttendanceStatus.HADIR,
    (AttendanceStatus.PENDING, Action.REJECT): AttendanceStatus.REJECTED,
    (None, Action.FINALIZE): AttendanceStatus.ALPHA,
}

# action -> statuses it may set, from any current status
TARGETED_TRANSITIONS = {
    Action.OVERRIDE: _ANY_BUT_PENDING,
    Action.EXCUSE: _ANY_BUT_PENDING,
    Action.MAKE_UP: frozenset({AttendanceStatus.INHAL}),
    Action.FACE_MARK: frozenset({AttendanceStatus.HADIR}),
}

_DEFAULT_TARGET = {
    Action.MAKE_UP: AttendanceStatus.INHAL,
    Action.FACE_MARK: AttendanceStatus.HADIR,
}


def parse_status(value, field="status") -> AttendanceStatus:
    if isinstance(value, AttendanceStatus):
        return value
    try:
        return AttendanceStatus(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(s.value for s in AttendanceStatus)
        raise ValidationError(f"Invalid {field} '{value}'. Allowed: {allowed}.")


def transition(current, action: Action, target=None) -> AttendanceStatus:
    """Return the status an attendance row moves to, or raise.

    SUBMIT on an already submitted row raises Conflict; every other illegal
    move raises InvalidState.
    """
    current = parse_status(current) if current is not None else None

    if action in TARGETED_TRANSITIONS:
        wanted = parse_status(target) if target is not None else _DEFAULT_TARGET.get(action)
        if wanted is None or wanted not in TARGETED_TRANSITIONS[action]:
            raise InvalidState(f"Status {getattr(wanted, 'value', wanted)} can not be set by {action.value}.")
        return wanted

    nxt = FIXED_TRANSITIONS.get((current, action))
    if nxt is not None:
        return nxt

    if action == Action.SUBMIT:
        raise Conflict("Attendance already submitted for this session.")
    if action in (Action.APPROVE, Action.REJECT):
        raise InvalidState("This attendance is not pending approval.")
    raise InvalidState(
        f"Can not {action.value.lower()} attendance in status {current.value if current else 'none'}."
    )


def is_gradable(status) -> bool:
    return status is not None and parse_status(status) in GRADABLE_STATUSES


def validate_grade(value) -> float:
    try:
        grade = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Grade must be a number, got {value!r}.")
    if grade < 0 or grade > 100:
        raise ValidationError("Grade must be between 0 and 100.")
    return grade


def resolve_grade(status, grade) -> Optional[float]:
    """Grade stored alongside ``status``: kept only for HADIR / INHAL."""
    if grade is None or not is_gradable(status):
        return None
    return validate_grade(grade)


def map_reason_to_status(reason: str) -> AttendanceStatus:
    text = (reason or "").lower()
    if "sakit" in text or "sick" in text:
        return AttendanceStatus.IZIN_SAKIT
    if "kampus" in text or "university" in text or "official" in text:
        return AttendanceStatus.IZIN_KAMPUS
    return AttendanceStatus.IZIN_LAIN


def ensure_pending(status, what: str):
    """Requests and payments are decided exactly once."""
    if status != "PENDING":
        raise InvalidState(f"{what} already processed.")
