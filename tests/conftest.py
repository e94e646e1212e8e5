import os
import tempfile

os.environ.setdefault("ELIB_DB", "sqlite:///" + os.path.join(tempfile.gettempdir(), "elibrary_test.db"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.core.database import Base, make_engine, get_db
from app.main import app
from app.models import models


@pytest.fixture
def engine(tmp_path):
    # a fresh file per test so threads can share it through separate connections
    engine = make_engine(f"sqlite:///{tmp_path / 'library.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_book(db):
    def _make(total=1, available=None, title="Dune"):
        book = models.Book(title=title, author="Frank Herbert", genre="sci-fi",
                           total_copies=total,
                           available_copies=total if available is None else available)
        db.add(book)
        db.commit()
        return book.id
    return _make


@pytest.fixture
def make_student(db):
    counter = {"n": 0}

    def _make(name="Ada"):
        counter["n"] += 1
        user = models.User(name=name, email=f"student{counter['n']}@example.com",
                           role=models.Role.STUDENT, student_number=f"S{counter['n']:04d}")
        db.add(user)
        db.commit()
        return user.id
    return _make


@pytest.fixture
def fetch_book(db):
    def _fetch(book_id):
        db.expire_all()
        return db.query(models.Book).filter(models.Book.id == book_id).one()
    return _fetch
