# SPDX-License-Identifier: MIT
"""Pytest configuration and fixtures for the Lesson Library curation tests."""

import os
import pytest
from typing import Callable, Generator

# Set test environment variables before importing app.
# DATABASE_URL is forced so a developer's .env can never point tests at a real database.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("DISABLE_LOGGING", "1")
os.environ.setdefault("API_SERVICE_KEY", "test-service-key")
os.environ.setdefault("API_GATEWAY_KEY", "test-gateway-key")
os.environ.setdefault("DUPLICATES_EMBEDDING_DIMENSIONS", "4")

SERVICE_KEY = os.environ["API_SERVICE_KEY"]
GATEWAY_KEY = os.environ["API_GATEWAY_KEY"]

# Embeddings in the 4-dimensional test space
GARDEN = [1.0, 0.0, 0.0, 0.0]
GARDEN_NEAR = [0.99, 0.05, 0.0, 0.0]      # cosine ~0.9987 with GARDEN
SALSA = [0.0, 1.0, 0.0, 0.0]
SALSA_NEAR = [0.0, 0.98, 0.1, 0.0]        # cosine ~0.9948 with SALSA
WORMS = [0.0, 0.0, 1.0, 0.0]
PLACEHOLDER = [0.0, 0.0, 0.0, 1.0]


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with a fresh schema per test."""
    from curation.database import Base, engine

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture
def db_session(db_engine) -> Generator:
    """Session on the test database."""
    from curation.database import SessionLocal

    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def reviewers(db_session) -> dict:
    """User profiles covering every role the permission gate cares about."""
    from curation.database import UserProfile

    profiles = {
        "admin-user": "admin",
        "reviewer-user": "reviewer",
        "super-user": "super_admin",
        "teacher-user": "teacher",
    }
    for user_id, role in profiles.items():
        db_session.add(UserProfile(user_id=user_id, email=f"{user_id}@example.org", role=role))
    db_session.commit()
    return profiles


@pytest.fixture
def make_lesson(db_session) -> Callable:
    """Factory adding a committed lesson."""
    from curation.database import Lesson

    def _make(lesson_id: str, title: str, **fields):
        lesson = Lesson(lesson_id=lesson_id, title=title, **fields)
        db_session.add(lesson)
        db_session.commit()
        return lesson

    return _make


@pytest.fixture
def lessons(make_lesson, reviewers) -> list[str]:
    """
    A small library:

    - garden-a / garden-b: same normalized title and near-identical content
    - soup-a / soup-b: same normalized title, no embeddings
    - salsa-a / salsa-b: different titles, near-identical content
    - unknown-1 / unknown-2: placeholder titles, identical content
    - worms: unique
    """
    make_lesson(
        "garden-a", "Garden Basics 101",
        summary="Plant a three-bed school garden.",
        content_text="Students plan raised beds. [Table] Bed | Crop",
        content_embedding=GARDEN,
        grade_levels=["3", "4"],
        tags=["soil"],
        thematic_categories=["Garden Basics"],
    )
    make_lesson(
        "garden-b", "garden basics 101 ",
        content_text="Students plan raised beds and compost.",
        content_embedding=GARDEN_NEAR,
        file_link="https://docs.example.org/garden-b",
        grade_levels=["4", "5"],
        tags=["compost"],
        lesson_format="single_period",
    )
    make_lesson("soup-a", "Three Sisters Soup", grade_levels=["2"])
    make_lesson("soup-b", "three sisters soup", cooking_methods=["stovetop"])
    make_lesson("salsa-a", "Salsa Fresca", content_embedding=SALSA, main_ingredients=["tomato"])
    make_lesson("salsa-b", "Fresh Salsa Lesson", content_embedding=SALSA_NEAR, main_ingredients=["onion"])
    make_lesson("unknown-1", "Unknown", content_embedding=PLACEHOLDER)
    make_lesson("unknown-2", "Unknown", content_embedding=PLACEHOLDER)
    make_lesson("worms", "Composting Worms", content_embedding=WORMS)
    return [
        "garden-a", "garden-b", "soup-a", "soup-b", "salsa-a", "salsa-b",
        "unknown-1", "unknown-2", "worms",
    ]


@pytest.fixture
def reviewer():
    """Caller with the reviewer role."""
    from curation.duplicates import Caller
    return Caller.user("reviewer-user")


@pytest.fixture
def teacher():
    """Caller without a reviewer role."""
    from curation.duplicates import Caller
    return Caller.user("teacher-user")


@pytest.fixture
def service():
    """Trusted service identity."""
    from curation.duplicates import Caller
    return Caller.service("tests")


@pytest.fixture
def test_client(db_engine) -> Generator:
    """Create a test client for the FastAPI application."""
    from fastapi.testclient import TestClient
    from sqlalchemy.orm import sessionmaker

    from api.main import app
    from curation.database import get_db

    TestingSessionLocal = sessionmaker(autoflush=False, bind=db_engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def user_headers() -> Callable:
    """Headers the auth gateway sends for a signed-in user."""
    def _headers(user_id: str) -> dict:
        return {"X-User-Id": user_id, "X-Gateway-Key": GATEWAY_KEY}
    return _headers


@pytest.fixture
def reviewer_headers(user_headers) -> dict:
    return user_headers("reviewer-user")


@pytest.fixture
def service_headers() -> dict:
    return {"Authorization": f"Bearer {SERVICE_KEY}"}
