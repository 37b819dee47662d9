"""
Identity store, password hashing and bearer sessions.

Tokens are opaque uuid4 strings stored in the ``session`` collection with an
expiry; verifying a token resolves it to the owning account.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Optional
from uuid import uuid4

import pydantic
from passlib.context import CryptContext
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import settings
from database import as_utc, create_document, parse_object_id, utcnow
from errors import AuthenticationError, DuplicateEmailError, NotFoundError, ValidationError
from schemas import Account, UserPublic

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def to_public_user(doc: dict) -> UserPublic:
    return UserPublic(
        id=str(doc.get("_id")),
        name=doc.get("name"),
        email=doc.get("email"),
        role=doc.get("role", "reader"),
    )


# -----------------
# Identity store
# -----------------
def create_account(db: Database, name: str, email: str, password: str, role: str = "reader") -> Dict[str, Any]:
    """Register an account. Emails are unique regardless of role."""
    email = email.strip().lower()
    if db["account"].find_one({"email": email}):
        raise DuplicateEmailError("Email already in use")

    try:
        account = Account(name=name.strip(), email=email, password_hash=hash_password(password), role=role)
    except pydantic.ValidationError as e:
        raise ValidationError(str(e))
    try:
        doc = create_document(db, "account", account.model_dump())
    except DuplicateKeyError:
        # Lost a race with a concurrent registration of the same email.
        raise DuplicateEmailError("Email already in use")
    logger.info(f"Registered {role} account {doc['_id']}")
    return doc


def find_account_by_email_and_role(db: Database, email: str, role: str) -> Optional[Dict[str, Any]]:
    return db["account"].find_one({"email": email.strip().lower(), "role": role})


def find_account_by_id(db: Database, account_id: Any) -> Dict[str, Any]:
    account = db["account"].find_one({"_id": parse_object_id(account_id, "User")})
    if not account:
        raise NotFoundError("User not found")
    return account


def authenticate(db: Database, email: str, password: str, role: str) -> Dict[str, Any]:
    """Resolve email + password for the given role, or fail with one generic message."""
    account = find_account_by_email_and_role(db, email, role)
    if not account or not verify_password(password, account.get("password_hash", "")):
        logger.info(f"Failed {role} login attempt")
        raise AuthenticationError("Invalid credentials")
    return account


# -----------------
# Sessions
# -----------------
def issue_token(db: Database, account_id) -> str:
    token = str(uuid4())
    now = utcnow()
    db["session"].insert_one({
        "token": token,
        "account_id": account_id,
        "created_at": now,
        "expires_at": now + timedelta(hours=settings.TOKEN_TTL_HOURS),
    })
    return token


def verify_token(db: Database, token: str):
    """Return the account id the token belongs to."""
    session = db["session"].find_one({"token": token}) if token else None
    if not session:
        raise AuthenticationError("Invalid or expired token")

    exp = as_utc(session.get("expires_at"))
    if exp and utcnow() > exp:
        db["session"].delete_one({"_id": session["_id"]})
        raise AuthenticationError("Session expired")

    return session["account_id"]


def revoke_token(db: Database, token: str) -> None:
    db["session"].delete_many({"token": token})


def parse_bearer(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Missing Authorization header")
    if not authorization.lower().startswith("bearer "):
        raise AuthenticationError("Invalid auth scheme")
    return authorization.split(" ", 1)[1].strip()


def resolve_account(db: Database, authorization: Optional[str]) -> Dict[str, Any]:
    """Turn an Authorization header into the acting account."""
    account_id = verify_token(db, parse_bearer(authorization))
    account = db["account"].find_one({"_id": account_id})
    if not account:
        raise AuthenticationError("User not found")
    return account
