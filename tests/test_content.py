"""Tests for answer creation consistency and the counter repair paths."""

import pymongo.errors
import pytest

import config
import reconcile
from conftest import new_id
from content import create_answer, recount_question_answers
from security import ANONYMOUS
from voting import UPVOTE, VoteService


class _CounterOutageCollection:
    """Wraps a collection so that ``update_one`` fails like a dropped connection."""

    def __init__(self, collection):
        self.collection = collection

    def __getattr__(self, name):
        return getattr(self.collection, name)

    async def update_one(self, *args, **kwargs):
        raise pymongo.errors.AutoReconnect("connection reset")


class _CounterOutageDb:
    def __init__(self, db):
        self.db = db

    def __getitem__(self, name):
        collection = self.db[name]
        if name == config.QUESTIONS:
            return _CounterOutageCollection(collection)
        return collection


class _MockManager:
    """Stands in for MongoManager, handing out the in-memory database."""

    def __init__(self, db):
        self.db = db
        self.closed = False

    async def connect(self):
        return self.db

    async def close(self):
        self.closed = True


@pytest.fixture
def mock_manager(monkeypatch, db):
    managers = []

    def factory(*args, **kwargs):
        manager = _MockManager(db)
        managers.append(manager)
        return manager

    monkeypatch.setattr(reconcile, "MongoManager", factory)
    return managers


# ============================================================================
# TESTS: ANSWER CREATION
# ============================================================================

class TestCreateAnswer:

    async def test_each_answer_increments_counter(self, db, sample_question):
        await create_answer(db, str(sample_question["_id"]), "Try the corner stall", ANONYMOUS)
        await create_answer(db, str(sample_question["_id"]), "Or the one by the temple", ANONYMOUS)

        question = await db[config.QUESTIONS].find_one({"_id": sample_question["_id"]})
        assert question["answers"] == 2
        assert await db[config.ANSWERS].count_documents({"question_id": sample_question["_id"]}) == 2

    async def test_failed_counter_update_removes_answer(self, db, sample_question):
        """If the counter can't be bumped, the new answer is rolled back."""
        with pytest.raises(pymongo.errors.AutoReconnect):
            await create_answer(
                _CounterOutageDb(db), str(sample_question["_id"]), "Lost answer", ANONYMOUS
            )

        assert await db[config.ANSWERS].count_documents({}) == 0
        question = await db[config.QUESTIONS].find_one({"_id": sample_question["_id"]})
        assert question["answers"] == 0


# ============================================================================
# TESTS: COUNTER REPAIR
# ============================================================================

class TestRecountQuestionAnswers:

    async def test_repairs_drifted_counter(self, db, sample_answer):
        question_id = sample_answer["question_id"]
        await db[config.QUESTIONS].update_one({"_id": question_id}, {"$set": {"answers": 6}})

        repaired = await recount_question_answers(db)

        assert repaired == 1
        question = await db[config.QUESTIONS].find_one({"_id": question_id})
        assert question["answers"] == 1

    async def test_dry_run_reports_without_writing(self, db, sample_answer):
        question_id = sample_answer["question_id"]
        await db[config.QUESTIONS].update_one({"_id": question_id}, {"$set": {"answers": 6}})

        assert await recount_question_answers(db, dry_run=True) == 1
        assert (await db[config.QUESTIONS].find_one({"_id": question_id}))["answers"] == 6

    async def test_question_without_answers_resets_to_zero(self, db, sample_question):
        await db[config.QUESTIONS].update_one({"_id": sample_question["_id"]}, {"$set": {"answers": 2}})

        assert await recount_question_answers(db) == 1
        assert (await db[config.QUESTIONS].find_one({"_id": sample_question["_id"]}))["answers"] == 0

    async def test_consistent_counters_untouched(self, db, sample_answer):
        assert await recount_question_answers(db) == 0


class TestReconcileScript:

    async def test_repairs_tallies_and_counters(self, db, sample_answer, mock_manager):
        await VoteService(db).cast_vote(sample_answer["_id"], new_id(), UPVOTE)
        await db[config.ANSWERS].update_one({"_id": sample_answer["_id"]}, {"$set": {"upvotes": 9}})
        await db[config.QUESTIONS].update_one({"_id": sample_answer["question_id"]}, {"$set": {"answers": 0}})

        drifted = await reconcile.reconcile()

        assert drifted == 2
        answer = await db[config.ANSWERS].find_one({"_id": sample_answer["_id"]})
        question = await db[config.QUESTIONS].find_one({"_id": sample_answer["question_id"]})
        assert answer["upvotes"] == 1
        assert question["answers"] == 1
        assert mock_manager[0].closed

    async def test_dry_run_changes_nothing(self, db, sample_answer, mock_manager):
        await db[config.ANSWERS].update_one({"_id": sample_answer["_id"]}, {"$set": {"downvotes": 4}})

        assert await reconcile.reconcile(dry_run=True) == 1
        answer = await db[config.ANSWERS].find_one({"_id": sample_answer["_id"]})
        assert answer["downvotes"] == 4

    async def test_single_answer_skips_question_counters(self, db, sample_answer, mock_manager):
        await db[config.ANSWERS].update_one({"_id": sample_answer["_id"]}, {"$set": {"upvotes": 3}})
        await db[config.QUESTIONS].update_one({"_id": sample_answer["question_id"]}, {"$set": {"answers": 5}})

        assert await reconcile.reconcile(answer_id=sample_answer["_id"]) == 1
        question = await db[config.QUESTIONS].find_one({"_id": sample_answer["question_id"]})
        assert question["answers"] == 5
