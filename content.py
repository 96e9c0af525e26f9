import logging
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
import pymongo.errors

import config
from errors import NotFoundError, ValidationError
from schemas import QuestionCreate
from security import Identity
from utils.serialization import parse_object_id

logger = logging.getLogger(__name__)

ANONYMOUS_AUTHOR = "Anonymous"


##########
# Questions
##########
async def list_questions(db: AsyncIOMotorDatabase) -> List[dict]:
    return await db[config.QUESTIONS].find().to_list(None)


async def get_question(db: AsyncIOMotorDatabase, question_id: str) -> dict:
    question = await db[config.QUESTIONS].find_one({"_id": parse_object_id(question_id, "question")})
    if not question:
        raise NotFoundError("Question")
    return question


async def create_question(db: AsyncIOMotorDatabase, data: QuestionCreate, identity: Identity) -> ObjectId:
    """Insert a new question, owned by the caller when authenticated"""
    if not (data.title and data.location and data.category and data.description):
        raise ValidationError("All fields are required")

    question_doc = {
        "title": data.title,
        "location": data.location,
        "category": data.category,
        "description": data.description,
        "upvotes": 0,
        "answers": 0,
        "verified": False,
        "userId": identity.user_id,
        "createdAt": datetime.now(timezone.utc),
    }
    result = await db[config.QUESTIONS].insert_one(question_doc)
    return result.inserted_id


async def list_user_questions(db: AsyncIOMotorDatabase, user_id: ObjectId) -> List[dict]:
    cursor = db[config.QUESTIONS].find({"userId": user_id}).sort("createdAt", -1)
    return await cursor.to_list(None)


##########
# Answers
##########
async def list_answers(db: AsyncIOMotorDatabase, question_id: str) -> List[dict]:
    qid = parse_object_id(question_id, "question")
    return await db[config.ANSWERS].find({"question_id": qid}).to_list(None)


async def _author_name(db: AsyncIOMotorDatabase, identity: Identity) -> str:
    if not identity.is_authenticated:
        return ANONYMOUS_AUTHOR
    user = await db[config.USERS].find_one({"_id": identity.user_id}, {"name": 1})
    return (user or {}).get("name") or ANONYMOUS_AUTHOR


async def create_answer(
    db: AsyncIOMotorDatabase,
    question_id: Optional[str],
    content: Optional[str],
    identity: Identity,
) -> ObjectId:
    """Insert an answer and bump the parent question's answer count.

    The question must exist. The two writes hit different documents; if the
    counter update fails the answer is removed again so the count never
    stays out of step with the answers stored.
    """
    if not question_id or not content:
        raise ValidationError("Question ID and answer content are required")

    qid = parse_object_id(question_id, "question")
    if not await db[config.QUESTIONS].find_one({"_id": qid}, {"_id": 1}):
        raise NotFoundError("Question")

    answer_doc = {
        "question_id": qid,
        "author": await _author_name(db, identity),
        "userId": identity.user_id,
        "content": content,
        "upvotes": 0,
        "downvotes": 0,
        "userVotes": [],
        "verified": False,
        "createdAt": datetime.now(timezone.utc),
    }
    result = await db[config.ANSWERS].insert_one(answer_doc)

    try:
        await db[config.QUESTIONS].update_one({"_id": qid}, {"$inc": {"answers": 1}})
    except pymongo.errors.PyMongoError:
        logger.exception(f"Answer count update failed for question {qid}, removing answer {result.inserted_id}")
        await db[config.ANSWERS].delete_one({"_id": result.inserted_id})
        raise

    return result.inserted_id


async def list_user_answers(db: AsyncIOMotorDatabase, user_id: ObjectId) -> List[dict]:
    cursor = db[config.ANSWERS].find({"userId": user_id}).sort("createdAt", -1)
    return await cursor.to_list(None)


async def recount_question_answers(db: AsyncIOMotorDatabase, dry_run: bool = False) -> int:
    """Reset every question's ``answers`` counter to the number of stored answers.

    Returns the number of questions whose counter was wrong.
    """
    counts = await db[config.ANSWERS].aggregate([
        {"$group": {"_id": "$question_id", "count": {"$sum": 1}}}
    ]).to_list(None)
    actual = {row["_id"]: row["count"] for row in counts}

    repaired = 0
    async for question in db[config.QUESTIONS].find({}, {"answers": 1}):
        expected = actual.get(question["_id"], 0)
        if question.get("answers") == expected:
            continue

        repaired += 1
        logger.warning(
            f"Question {question['_id']} answer count drift: "
            f"stored {question.get('answers')}, actual {expected}"
        )
        if not dry_run:
            await db[config.QUESTIONS].update_one(
                {"_id": question["_id"]}, {"$set": {"answers": expected}}
            )
    return repaired
