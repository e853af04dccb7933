# access.py
"""
Authorization checks.

Every operation declares which capabilities let a caller through; the check
runs once, up front, before any state is read for mutation.
"""
import enum

from fastapi import Depends
from sqlalchemy.orm import Session

import models
from auth import get_current_user
from errors import Forbidden


class Capability(str, enum.Enum):
    ADMIN = "ADMIN"
    ASSISTANT_OF_CLASS = "ASSISTANT_OF_CLASS"
    SELF = "SELF"


def is_assistant(db: Session, user_id: int, class_id: int) -> bool:
    return db.query(models.ClassAssistant).filter_by(class_id=class_id, user_id=user_id).first() is not None


def get_enrollment(db: Session, user_id: int, class_id: int):
    return db.query(models.Enrollment).filter_by(class_id=class_id, user_id=user_id).first()


def has_capability(db: Session, user: models.User, capability: Capability, class_id=None, owner_id=None) -> bool:
    if capability == Capability.ADMIN:
        return bool(user.is_admin)
    if capability == Capability.ASSISTANT_OF_CLASS:
        return class_id is not None and is_assistant(db, user.id, class_id)
    if capability == Capability.SELF:
        return owner_id is not None and owner_id == user.id
    return False


def authorize(db: Session, user: models.User, *capabilities: Capability,
              class_id=None, owner_id=None, message="You do not have access to this resource."):
    """Raise Forbidden unless ``user`` holds at least one of ``capabilities``."""
    for cap in capabilities:
        if has_capability(db, user, cap, class_id=class_id, owner_id=owner_id):
            return cap
    raise Forbidden(message)


def require_assistant(db: Session, user: models.User, class_id: int, allow_admin=False):
    caps = (Capability.ADMIN, Capability.ASSISTANT_OF_CLASS) if allow_admin else (Capability.ASSISTANT_OF_CLASS,)
    return authorize(db, user, *caps, class_id=class_id,
                     message="You are not assigned as an assistant for this class.")


def require_enrollment(db: Session, user_id: int, class_id: int,
                       message="You are not enrolled in this class."):
    enrollment = get_enrollment(db, user_id, class_id)
    if enrollment is None:
        raise Forbidden(message)
    return enrollment


def require_admin(current_user: models.User = Depends(get_current_user)):
    if not current_user.is_admin:
        raise Forbidden("Admin access required.")
    return current_user
