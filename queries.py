"""Search, filtering, sorting and per-user statistics over the content store."""

import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

import config
from errors import ValidationError

TEXT_FIELDS = ("title", "location", "description")

SORT_POLICIES = ("trending", "upvotes", "recent", "answers")

_EPOCH = datetime(1970, 1, 1)


def _contains(pattern: str) -> dict:
    """Case-insensitive substring match on a user-supplied string"""
    return {"$regex": re.escape(pattern), "$options": "i"}


def split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


##########
# Questions
##########
async def search_questions(db: AsyncIOMotorDatabase, q: Optional[str]) -> List[dict]:
    """Questions whose title, location or description contains ``q``"""
    if not q or not q.strip():
        raise ValidationError("Search query required")

    query = {"$or": [{field: _contains(q)} for field in TEXT_FIELDS]}
    return await db[config.QUESTIONS].find(query).to_list(None)


def filter_questions(
    questions: Iterable[dict],
    q: Optional[str] = None,
    categories: Optional[Iterable[str]] = None,
) -> List[dict]:
    """Filter fetched questions by text and by any of the given categories"""
    results = list(questions)

    if q and q.strip():
        needle = q.strip().lower()
        results = [
            question for question in results
            if any(needle in str(question.get(field) or "").lower() for field in TEXT_FIELDS)
        ]

    wanted = {c.lower() for c in categories or [] if c and c.lower() != "all"}
    if wanted:
        results = [
            question for question in results
            if str(question.get("category") or "").lower() in wanted
        ]

    return results


def _created_key(question: dict) -> datetime:
    created = question.get("createdAt")
    if not isinstance(created, datetime):
        return _EPOCH
    if created.tzinfo is not None:
        # Compare everything as naive UTC
        created = created.astimezone(timezone.utc).replace(tzinfo=None)
    return created


SORT_KEYS = {
    "trending": lambda question: question.get("upvotes") or 0,
    "upvotes": lambda question: question.get("upvotes") or 0,
    "recent": _created_key,
    "answers": lambda question: question.get("answers") or 0,
}


def sort_questions(questions: Iterable[dict], policy: Optional[str]) -> List[dict]:
    """Order questions by a sort policy, descending; ties keep their input order"""
    if not policy:
        return list(questions)
    key = SORT_KEYS.get(policy)
    if key is None:
        raise ValidationError(f"Unknown sort: {policy}. Use one of: {', '.join(SORT_POLICIES)}")
    return sorted(questions, key=key, reverse=True)


##########
# Stalls
##########
async def find_stalls(
    db: AsyncIOMotorDatabase,
    food: Optional[str] = None,
    location: Optional[str] = None,
) -> List[dict]:
    """Stalls serving any of the comma-separated food types, near a city or area"""
    query = {}

    food_types = split_csv(food)
    if food_types:
        query["food_type"] = {"$in": food_types}

    if location and location.strip():
        query["$or"] = [
            {"location.city": _contains(location.strip())},
            {"location.area": _contains(location.strip())},
        ]

    return await db[config.STALLS].find(query).to_list(None)


##########
# User Stats
##########
async def user_stats(db: AsyncIOMotorDatabase, user_id: ObjectId) -> dict:
    """Question count, answer count and upvotes received, aggregated on demand"""
    questions_count = await db[config.QUESTIONS].count_documents({"userId": user_id})
    answers_count = await db[config.ANSWERS].count_documents({"userId": user_id})
    upvotes = await db[config.ANSWERS].aggregate([
        {"$match": {"userId": user_id}},
        {"$group": {"_id": None, "total": {"$sum": "$upvotes"}}},
    ]).to_list(None)

    return {
        "questions": questions_count,
        "answers": answers_count,
        "upvotes": upvotes[0]["total"] if upvotes else 0,
    }
