"""Pytest configuration and shared fixtures."""

from datetime import datetime

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

import config
from database import get_db
from main import app


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    """Sign tokens with a fixed test secret."""
    monkeypatch.setattr(config, "JWT_SECRET", "test-secret")


@pytest.fixture
def db():
    """A fresh in-memory MongoDB database per test."""
    return AsyncMongoMockClient()["foodstalls_test"]


@pytest_asyncio.fixture
async def client(db):
    """HTTP client bound to the app, with the store swapped for the mock."""
    app.dependency_overrides[get_db] = lambda: db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def sample_question(db) -> dict:
    question = {
        "title": "Best momos near the station?",
        "location": "Koramangala, Bangalore",
        "category": "Street Food",
        "description": "Looking for steamed momos with spicy chutney.",
        "upvotes": 0,
        "answers": 0,
        "verified": False,
        "userId": None,
        "createdAt": datetime(2024, 5, 1, 12, 0),
    }
    result = await db[config.QUESTIONS].insert_one(question)
    question["_id"] = result.inserted_id
    return question


@pytest_asyncio.fixture
async def sample_answer(db, sample_question) -> dict:
    answer = {
        "question_id": sample_question["_id"],
        "author": "Anonymous",
        "userId": None,
        "content": "Try the stall behind the bus depot.",
        "upvotes": 0,
        "downvotes": 0,
        "userVotes": [],
        "verified": False,
        "createdAt": datetime(2024, 5, 2, 9, 30),
    }
    result = await db[config.ANSWERS].insert_one(answer)
    await db[config.QUESTIONS].update_one({"_id": sample_question["_id"]}, {"$inc": {"answers": 1}})
    answer["_id"] = result.inserted_id
    return answer


async def signup_and_login(client, name="Asha", email="asha@streetup.in", password="pw") -> str:
    """Create an account over HTTP and return its bearer token."""
    response = await client.post("/signup", json={"name": name, "email": email, "password": password})
    assert response.status_code == 201
    response = await client.post("/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return response.json()["token"]


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def new_id() -> ObjectId:
    return ObjectId()
