"""Voting engine: one active vote per user per answer.

Each answer embeds its ledger (``userVotes``) next to the denormalized
``upvotes``/``downvotes`` tallies. Every vote is applied as a single
conditional update on the answer document, so the ledger and the tallies
change together and two concurrent votes from the same user cannot both
append an entry.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

import config
from errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

UPVOTE = "upvote"
DOWNVOTE = "downvote"
VOTE_TYPES = (UPVOTE, DOWNVOTE)

# Ledger type -> tally field
TALLY_FIELDS = {UPVOTE: "upvotes", DOWNVOTE: "downvotes"}

VOTE_MAX_ATTEMPTS = 3

RECORDED = "recorded"
CHANGED = "changed"


@dataclass
class VoteResult:
    status: str
    upvotes: int
    downvotes: int
    user_vote: str


def _opposite(vote_type: str) -> str:
    return DOWNVOTE if vote_type == UPVOTE else UPVOTE


def _find_entry(answer: dict, user_id: ObjectId) -> Optional[dict]:
    for entry in answer.get("userVotes") or []:
        if entry.get("userId") == user_id:
            return entry
    return None


class VoteService:
    """Casts votes on answers and keeps the tallies in step with the ledger."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.answers = db[config.ANSWERS]

    async def cast_vote(
        self,
        answer_id: ObjectId,
        user_id: ObjectId,
        vote_type: str,
    ) -> VoteResult:
        """Record or flip ``user_id``'s vote on an answer.

        A first vote appends a ledger entry and increments its tally. A vote
        of the other type flips the entry in place and moves one count
        between the tallies. Repeating the current vote raises
        ``ConflictError`` without touching the document.
        """
        if vote_type not in VOTE_TYPES:
            raise ValidationError(f"Unknown vote type: {vote_type}")

        tally = TALLY_FIELDS[vote_type]
        other = _opposite(vote_type)

        for _ in range(VOTE_MAX_ATTEMPTS):
            # First vote from this user
            answer = await self.answers.find_one_and_update(
                {"_id": answer_id, "userVotes.userId": {"$ne": user_id}},
                {
                    "$push": {"userVotes": {"userId": user_id, "type": vote_type}},
                    "$inc": {tally: 1},
                },
                return_document=ReturnDocument.AFTER,
            )
            if answer is not None:
                logger.debug(f"Vote recorded: {vote_type} on {answer_id} by {user_id}")
                return self._result(RECORDED, answer, vote_type)

            # Flip an existing vote of the other type
            answer = await self.answers.find_one_and_update(
                {
                    "_id": answer_id,
                    "userVotes": {"$elemMatch": {"userId": user_id, "type": other}},
                },
                {
                    "$set": {"userVotes.$.type": vote_type},
                    "$inc": {TALLY_FIELDS[other]: -1, tally: 1},
                },
                return_document=ReturnDocument.AFTER,
            )
            if answer is not None:
                logger.debug(f"Vote changed: {other} -> {vote_type} on {answer_id} by {user_id}")
                return self._result(CHANGED, answer, vote_type)

            # Neither update applied: the answer is gone, or the vote already stands
            current = await self.answers.find_one({"_id": answer_id}, {"userVotes": 1})
            if current is None:
                raise NotFoundError("Answer")

            entry = _find_entry(current, user_id)
            if entry is not None and entry.get("type") == vote_type:
                raise ConflictError(f"Already {vote_type}d", status_code=400)

            # The ledger moved between the updates and the read; try again
            logger.info(f"Vote on {answer_id} by {user_id} raced a concurrent change, retrying")

        raise ConflictError("Vote could not be applied, please retry")

    async def get_user_vote(self, answer_id: ObjectId, user_id: ObjectId) -> Optional[str]:
        """Get the user's current vote type on an answer, or None."""
        answer = await self.answers.find_one({"_id": answer_id}, {"userVotes": 1})
        if answer is None:
            raise NotFoundError("Answer")
        entry = _find_entry(answer, user_id)
        return entry.get("type") if entry else None

    @staticmethod
    def _result(status: str, answer: dict, vote_type: str) -> VoteResult:
        return VoteResult(
            status=status,
            upvotes=answer.get("upvotes", 0),
            downvotes=answer.get("downvotes", 0),
            user_vote=vote_type,
        )


def count_ledger(user_votes: list) -> dict:
    """Tally a ledger into ``{"upvotes": n, "downvotes": m}``."""
    counts = {field: 0 for field in TALLY_FIELDS.values()}
    for entry in user_votes or []:
        field = TALLY_FIELDS.get(entry.get("type"))
        if field:
            counts[field] += 1
    return counts


async def recount_answer_tallies(
    db: AsyncIOMotorDatabase,
    answer_id: Optional[ObjectId] = None,
    dry_run: bool = False,
) -> int:
    """Recompute tallies from each ledger and rewrite the answers that drifted.

    Returns the number of answers whose tallies disagreed with their ledger.
    """
    query = {"_id": answer_id} if answer_id is not None else {}
    cursor = db[config.ANSWERS].find(query, {"userVotes": 1, "upvotes": 1, "downvotes": 1})

    repaired = 0
    async for answer in cursor:
        counts = count_ledger(answer.get("userVotes"))
        if all(answer.get(field) == value for field, value in counts.items()):
            continue

        repaired += 1
        logger.warning(
            f"Answer {answer['_id']} tally drift: "
            f"stored {answer.get('upvotes')}/{answer.get('downvotes')}, "
            f"ledger {counts['upvotes']}/{counts['downvotes']}"
        )
        if not dry_run:
            # Only rewrite if the ledger is unchanged since it was read
            if "userVotes" in answer:
                ledger_filter = answer["userVotes"]
            else:
                ledger_filter = {"$exists": False}
            await db[config.ANSWERS].update_one(
                {"_id": answer["_id"], "userVotes": ledger_filter},
                {"$set": counts},
            )
    return repaired
