import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
import pymongo.errors

import config
from errors import AuthError, ConflictError, NotFoundError, ValidationError
from queries import user_stats
from security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Emails are matched case-insensitively, ignoring surrounding spaces"""
    return email.strip().lower() if email else email


##########
# Signup / Login
##########
async def signup(
    db: AsyncIOMotorDatabase,
    name: Optional[str],
    email: Optional[str],
    password: Optional[str],
) -> ObjectId:
    """Create a user account, returning its id"""
    email = normalize_email(email)
    if not name or not email or not password:
        raise ValidationError("All fields are required")

    if await db[config.USERS].find_one({"email": email}, {"_id": 1}):
        raise ConflictError("Email already in use")

    user_doc = {
        "name": name,
        "email": email,
        "password": hash_password(password),
        "createdAt": datetime.now(timezone.utc),
    }
    try:
        result = await db[config.USERS].insert_one(user_doc)
    except pymongo.errors.DuplicateKeyError:
        # Lost a race with a concurrent signup for the same email
        raise ConflictError("Email already in use")

    logger.info(f"New user signed up: {result.inserted_id}")
    return result.inserted_id


async def login(
    db: AsyncIOMotorDatabase,
    email: Optional[str],
    password: Optional[str],
) -> Tuple[str, dict]:
    """Check credentials and issue a token.

    Unknown emails and wrong passwords fail the same way.
    """
    email = normalize_email(email)
    if not email or not password:
        raise ValidationError("Email and password required")

    user = await db[config.USERS].find_one({"email": email})
    if not user or not verify_password(password, user.get("password", "")):
        raise AuthError("Invalid credentials")

    token = create_access_token(user["_id"])
    return token, user


##########
# Profile
##########
def format_joined_date(created_at) -> str:
    if not isinstance(created_at, datetime):
        return "Recently"
    return f"{created_at.month}/{created_at.day}/{created_at.year}"


async def get_profile(db: AsyncIOMotorDatabase, user_id: ObjectId) -> dict:
    user = await db[config.USERS].find_one({"_id": user_id})
    if not user:
        raise NotFoundError("User")

    return {
        "name": user.get("name"),
        "email": user.get("email"),
        "location": user.get("location") or "Not provided",
        "joinedDate": format_joined_date(user.get("createdAt")),
        "stats": await user_stats(db, user_id),
    }


async def update_profile(
    db: AsyncIOMotorDatabase,
    user_id: ObjectId,
    name: Optional[str] = None,
    location: Optional[str] = None,
) -> dict:
    """Set the given profile fields, returning what was changed"""
    update_data = {}
    if name:
        update_data["name"] = name
    if location:
        update_data["location"] = location

    if not update_data:
        raise ValidationError("Provide at least name or location to update")

    result = await db[config.USERS].update_one({"_id": user_id}, {"$set": update_data})
    if result.matched_count == 0:
        raise NotFoundError("User")
    return update_data
