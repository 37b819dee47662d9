"""
Shared Test Fixtures for the Blog API

Every test runs against a fresh in-memory MongoDB (mongomock). Fixtures
provide accounts, posts, an image store and a TestClient wired to that
database.
"""

import itertools
import os
import sys
from datetime import datetime, timedelta, timezone

import mongomock
import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Keep tests off any real database and make bcrypt cheap.
os.environ["DATABASE_URL"] = ""
os.environ["DATABASE_NAME"] = ""
os.environ["BCRYPT_ROUNDS"] = "4"

import security  # noqa: E402
from database import create_document, ensure_indexes  # noqa: E402
from images import ImageStore  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
PASSWORD = "secret-pass"

_counter = itertools.count(1)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def mongo_db():
    """A fresh in-memory database per test, indexed like production."""
    database = mongomock.MongoClient().blog_test
    ensure_indexes(database)
    return database


@pytest.fixture
def image_store(mongo_db):
    return ImageStore(mongo_db)


# =============================================================================
# Account Fixtures
# =============================================================================

@pytest.fixture
def make_account(mongo_db):
    """
    Factory for registered accounts.

    Usage:
        def test_something(make_account):
            admin = make_account("admin", name="Ada")
    """
    def _make(role="reader", name=None, email=None, password=PASSWORD):
        n = next(_counter)
        return security.create_account(
            mongo_db,
            name or f"User {n}",
            email or f"user{n}@example.com",
            password,
            role=role,
        )
    return _make


@pytest.fixture
def reader(make_account):
    return make_account("reader", name="Reader")


@pytest.fixture
def other_reader(make_account):
    return make_account("reader", name="Other Reader")


@pytest.fixture
def admin(make_account):
    return make_account("admin", name="Admin")


# =============================================================================
# Post Fixtures
# =============================================================================

@pytest.fixture
def make_post(mongo_db, image_store):
    """
    Factory inserting posts directly, bypassing the workflow.

    ``age`` pushes created_at into the past so ordering is explicit.
    """
    def _make(author, status="published", title=None, views=0, age=timedelta(0), category="Technology"):
        n = next(_counter)
        image_url, image_id = image_store.store(PNG_BYTES, "image/png")
        created = datetime.now(timezone.utc) - age
        return create_document(mongo_db, "post", {
            "title": title or f"Post {n}",
            "subtitle": "",
            "content": f"<p>Body {n}</p>",
            "category": category,
            "image_url": image_url,
            "image_id": image_id,
            "author": author["_id"],
            "status": status,
            "views": views,
            "created_at": created,
            "updated_at": created,
        })
    return _make


# =============================================================================
# HTTP Fixtures
# =============================================================================

@pytest.fixture
def client(mongo_db):
    from fastapi.testclient import TestClient

    from database import get_db
    from main import app

    app.dependency_overrides[get_db] = lambda: mongo_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(mongo_db):
    """Bearer headers for an account."""
    def _headers(account):
        return {"Authorization": f"Bearer {security.issue_token(mongo_db, account['_id'])}"}
    return _headers
