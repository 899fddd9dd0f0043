"""
User registration, login and the password-reset flow.
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from database import create_document, utcnow
from errors import DuplicateError, NotFoundError, ValidationError
from mailer import Mailer
from schemas import User
from security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If the email exists, password recovery instructions will be sent."


def public_user(user: dict) -> dict:
    hidden = {"password", "reset_password_token", "reset_password_expires"}
    return {k: v for k, v in user.items() if k not in hidden}


def create_user(db: Database, name: str, email: str, password: str, role: str = "client") -> dict:
    email = email.strip().lower()
    if db["user"].find_one({"email": email}):
        raise DuplicateError("User already exists")
    user = User(name=name, email=email, password=hash_password(password), role=role)
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        # lost a race with a concurrent registration
        raise DuplicateError("User already exists")
    logger.info("registered user %s (%s)", email, role)
    return db["user"].find_one({"_id": ObjectId(user_id)})


def register(db: Database, name: str, email: str, password: str) -> dict:
    user = create_user(db, name, email, password)
    return {"result": public_user(user), "token": create_access_token(user)}


def login(db: Database, email: str, password: str) -> dict:
    user = db["user"].find_one({"email": email.strip().lower()})
    if not user:
        raise NotFoundError("User not found")
    if not verify_password(password, user["password"]):
        raise ValidationError("Invalid credentials")
    return {"result": public_user(user), "token": create_access_token(user)}


def forgot_password(db: Database, mailer: Mailer, email: str) -> Optional[str]:
    """Issue a reset token for a known email and mail the link. Returns the token, or None."""
    user = db["user"].find_one({"email": email.strip().lower()})
    if not user:
        return None

    token = secrets.token_hex(20)
    expires = utcnow() + timedelta(seconds=config.RESET_TOKEN_TTL_SECONDS)
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"reset_password_token": token, "reset_password_expires": expires, "updated_at": utcnow()}},
    )

    link = f"{config.FRONTEND_URL}/reset-password?token={token}"
    mailer.send(
        to=user["email"],
        subject="Reset your password",
        body=(
            "You asked to reset your password.\n"
            "Open the following link (or paste it into your browser) to choose a new one:\n"
            f"{link}\n\n"
            "If you did not request this, ignore this email."
        ),
    )
    logger.info("password reset requested for %s", user["email"])
    return token


def reset_password(db: Database, token: str, password: str) -> None:
    user = db["user"].find_one({
        "reset_password_token": token,
        "reset_password_expires": {"$gt": utcnow()},
    })
    if not user:
        raise ValidationError("Token is invalid or has expired")
    db["user"].update_one(
        {"_id": user["_id"]},
        {
            "$set": {"password": hash_password(password), "updated_at": utcnow()},
            "$unset": {"reset_password_token": "", "reset_password_expires": ""},
        },
    )
    logger.info("password reset completed for %s", user["email"])
