# create_admin.py
"""Seed the first admin account and the static reference data."""
import logging
import os

import auth
import models
from database import SessionLocal, init_db, transaction

logger = logging.getLogger(__name__)

TIME_SLOTS = [
    (1, "07:00", "08:40"),
    (2, "08:50", "10:30"),
    (3, "10:40", "12:20"),
    (4, "13:00", "14:40"),
    (5, "14:50", "16:30"),
    (6, "16:40", "18:20"),
]
ROOMS = [("LAB-A", "Laboratorium A"), ("LAB-B", "Laboratorium B"), ("LAB-C", "Laboratorium C")]


def seed_reference_data(db):
    """Insert missing time slots and rooms; returns how many rows were added."""
    added = 0
    with transaction(db):
        for number, start, end in TIME_SLOTS:
            if db.query(models.TimeSlot).filter_by(slot_number=number).first() is None:
                db.add(models.TimeSlot(slot_number=number, start_time=start, end_time=end,
                                       label=f"Sesi {number} ({start}-{end})"))
                added += 1
        for code, name in ROOMS:
            if db.query(models.Room).filter_by(code=code).first() is None:
                db.add(models.Room(code=code, name=name))
                added += 1
    return added


def init_admin(db=None, email=None, password=None):
    own_session = db is None
    db = db or SessionLocal()
    email = (email or os.getenv("ADMIN_EMAIL", "admin@praktikum.ac.id")).lower()
    password = password or os.getenv("ADMIN_PASSWORD", "admin1234")
    try:
        added = seed_reference_data(db)
        logger.info("Reference data seeded (%d new rows)", added)

        admin = db.query(models.User).filter_by(email=email).first()
        if admin is None:
            admin = models.User(email=email, password=auth.get_password_hash(password),
                                name="Administrator", is_admin=True)
            with transaction(db):
                db.add(admin)
            logger.info("Admin account created: %s", email)
        else:
            logger.info("Admin account already exists: %s", email)
        return admin
    finally:
        if own_session:
            db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    init_db()
    init_admin()
