# conftest.py
import base64
import os
from types import SimpleNamespace

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import auth
import models
import scheduling
from cache import TTLCache, get_reference_cache
from create_admin import seed_reference_data
from database import Base, get_db
from main import create_app
from schemas import ClassCreate
from storage import LocalStorage, get_storage

PNG = base64.b64encode(b"\x89PNG\r\n\x1a\n" + b"\x00" * 32).decode()
IMAGE = f"data:image/png;base64,{PNG}"
PDF = "data:application/pdf;base64," + base64.b64encode(b"%PDF-1.4 letter").decode()


@pytest.fixture
def db():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def store(tmp_path):
    return LocalStorage(str(tmp_path / "uploads"), "http://testserver")


@pytest.fixture
def cache():
    return TTLCache(60)


@pytest.fixture
def client(db, store, cache):
    app = create_app(init_on_startup=False)

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: store
    app.dependency_overrides[get_reference_cache] = lambda: cache
    return TestClient(app)


def make_user(db, email, name=None, is_admin=False, password="secret123"):
    user = models.User(email=email, password=auth.get_password_hash(password),
                       name=name or email.split("@")[0].title(), is_admin=is_admin)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def headers(user):
    return {"Authorization": f"Bearer {auth.create_access_token(user)}"}


@pytest.fixture
def world(db):
    """An active semester with one class: an admin, an assistant, two enrolled students and an outsider."""
    seed_reference_data(db)
    admin = make_user(db, "admin@test.id", "Admin", is_admin=True)
    assistant = make_user(db, "asisten@test.id", "Asisten")
    alice = make_user(db, "alice@test.id", "Alice")
    bob = make_user(db, "bob@test.id", "Bob")
    outsider = make_user(db, "carol@test.id", "Carol")

    semester = models.Semester(name="2025/2026 Ganjil", is_active=True)
    course = models.Course(code="IF101", name="Praktikum Pemrograman")
    db.add_all([semester, course])
    db.commit()

    slot = db.query(models.TimeSlot).filter_by(slot_number=1).one()
    room = db.query(models.Room).filter_by(code="LAB-A").one()
    data = scheduling.create_class(db, admin, ClassCreate(
        course_id=course.id, semester_id=semester.id, name="A", quota=3,
        day_of_week=1, time_slot_id=slot.id, room_id=room.id,
    ))
    cls = db.get(models.Class, data["id"])
    db.add(models.ClassAssistant(class_id=cls.id, user_id=assistant.id))
    db.add_all([models.Enrollment(class_id=cls.id, user_id=u.id) for u in (alice, bob)])
    db.commit()

    return SimpleNamespace(
        admin=admin, assistant=assistant, alice=alice, bob=bob, outsider=outsider,
        semester=semester, course=course, slot=slot, room=room, cls=cls,
        sessions=list(cls.sessions),
    )
