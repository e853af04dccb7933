# accounts.py
import logging

from sqlalchemy.exc import IntegrityError

import auth
import models
from audit import log_audit
from database import get_or_404, transaction
from errors import Conflict, Unauthorized, ValidationError
from serializers import user_dict

logger = logging.getLogger(__name__)


def _tokens(user):
    return {"access_token": auth.create_access_token(user),
            "refresh_token": auth.create_refresh_token(user),
            "token_type": "bearer"}


def _create(db, email, password, name, nim=None, is_admin=False):
    email = email.strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required.")
    if db.query(models.User).filter_by(email=email).first():
        raise Conflict("Email already registered.")
    user = models.User(email=email, password=auth.get_password_hash(password), name=name.strip(),
                       nim=nim, is_admin=is_admin)
    try:
        with transaction(db):
            db.add(user)
    except IntegrityError:
        raise Conflict("Email already registered.")
    db.refresh(user)
    return user


def register(db, data):
    user = _create(db, data.email, data.password, data.name, data.nim)
    logger.info("User registered: %s", user.email)
    return dict(user=user_dict(user), **_tokens(user))


def login(db, email, password):
    user = db.query(models.User).filter(models.User.email == email.strip().lower()).first()
    if not user or not auth.verify_password(password, user.password):
        raise Unauthorized("Invalid email or password.")
    return user, dict(user=user_dict(user), **_tokens(user))


def refresh(db, refresh_token):
    user = auth.user_from_token(db, refresh_token, auth.REFRESH)
    return {"access_token": auth.create_access_token(user), "token_type": "bearer"}


def profile(db, user):
    return dict(
        user_dict(user),
        enrollment_count=db.query(models.Enrollment).filter_by(user_id=user.id).count(),
        assistant_count=db.query(models.ClassAssistant).filter_by(user_id=user.id).count(),
    )


def change_password(db, user, current_password, new_password):
    if not auth.verify_password(current_password, user.password):
        raise ValidationError("Current password is incorrect.")
    with transaction(db):
        user.password = auth.get_password_hash(new_password)


# --- admin user management ---
def create_user(db, admin, data):
    user = _create(db, data.email, data.password, data.name, data.nim, data.is_admin)
    with transaction(db):
        log_audit(db, admin.id, "USER", user.id, "CREATE", user.email)
    return user_dict(user)


def list_users(db):
    return [user_dict(u) for u in db.query(models.User).order_by(models.User.id)]


def delete_user(db, admin, user_id):
    target = get_or_404(db, models.User, user_id, "User not found.")
    if target.is_admin and db.query(models.User).filter_by(is_admin=True).count() <= 1:
        raise ValidationError("The last remaining admin can not be deleted.")
    with transaction(db):
        db.delete(target)
        # a self-deletion can not reference the removed account
        log_audit(db, admin.id if admin.id != user_id else None, "USER", user_id, "DELETE")
