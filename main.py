##########
# Imports
##########
from fastapi import FastAPI, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import logging
# MongoDB
from motor.motor_asyncio import AsyncIOMotorDatabase
import pymongo.errors

import config
import accounts
import content
import queries
from database import MongoManager, ensure_indexes, get_db
from errors import AppError
from schemas import UserCreate, UserLogin, ProfileUpdate, QuestionCreate, AnswerCreate
from security import Identity, resolve_identity, require_identity
from utils.serialization import parse_object_id, serialize, serialize_many
from voting import VoteService, UPVOTE, DOWNVOTE


#########
# Logging
#########
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


##############
# Startup Hook
##############
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store connection on startup, close it on shutdown"""
    logger.info("Starting StreetUp API server...")
    manager = MongoManager()
    db = await manager.connect()
    await ensure_indexes(db)
    app.state.mongo = manager

    yield

    await manager.close()


#####################
# FastAPI App Setup
#####################
app = FastAPI(
    title="StreetUp",
    description="Community Q&A for local food recommendations",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


#################
# Error Handlers
#################
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())[1:])
        messages.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
    return JSONResponse(status_code=400, content={"error": "; ".join(messages) or "Invalid request"})


@app.exception_handler(pymongo.errors.PyMongoError)
async def store_error_handler(request: Request, exc: pymongo.errors.PyMongoError):
    logger.error(f"Store error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


##########
# Routes
##########
@app.get("/")
async def root():
    return {"message": "Foodstalls backend API running"}


##########
# Authentication
##########
@app.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(body: UserCreate, db: AsyncIOMotorDatabase = Depends(get_db)):
    """Create an account"""
    user_id = await accounts.signup(db, body.name, body.email, body.password)
    return {"message": "User created successfully", "userId": str(user_id)}


@app.post("/login")
async def login(body: UserLogin, db: AsyncIOMotorDatabase = Depends(get_db)):
    """Exchange email and password for a bearer token"""
    token, user = await accounts.login(db, body.email, body.password)
    return {
        "token": token,
        "user": {"name": user.get("name"), "email": user.get("email"), "id": str(user["_id"])},
    }


##################
# Questions
##################
@app.get("/questions")
async def list_questions(
    q: Optional[str] = None,
    category: Optional[str] = None,
    sort: Optional[str] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """All questions, optionally filtered by text and categories and sorted"""
    questions = await content.list_questions(db)
    questions = queries.filter_questions(questions, q=q, categories=queries.split_csv(category))
    questions = queries.sort_questions(questions, sort)
    return serialize_many(questions)


@app.get("/questions/{question_id}")
async def get_question(question_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return serialize(await content.get_question(db, question_id))


@app.post("/questions", status_code=status.HTTP_201_CREATED)
async def create_question(
    body: QuestionCreate,
    identity: Identity = Depends(resolve_identity),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Post a question; anonymous when no valid token is sent"""
    question_id = await content.create_question(db, body, identity)
    return {"message": "Question posted successfully", "questionId": str(question_id)}


##################
# Answers
##################
@app.get("/answers/{question_id}")
async def list_answers(question_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return serialize_many(await content.list_answers(db, question_id))


@app.post("/answers", status_code=status.HTTP_201_CREATED)
async def create_answer(
    body: AnswerCreate,
    identity: Identity = Depends(resolve_identity),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Answer a question; anonymous when no valid token is sent"""
    answer_id = await content.create_answer(db, body.question_id, body.content, identity)
    return {"message": "Answer posted successfully", "answerId": str(answer_id)}


#####################
# Voting
#####################
async def _vote(db: AsyncIOMotorDatabase, answer_id: str, identity: Identity, vote_type: str) -> dict:
    aid = parse_object_id(answer_id, "answer")
    result = await VoteService(db).cast_vote(aid, identity.user_id, vote_type)
    return {
        "message": f"{vote_type.capitalize()}d successfully",
        "status": result.status,
        "upvotes": result.upvotes,
        "downvotes": result.downvotes,
    }


@app.post("/answers/{answer_id}/upvote")
async def upvote_answer(
    answer_id: str,
    identity: Identity = Depends(require_identity),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await _vote(db, answer_id, identity, UPVOTE)


@app.post("/answers/{answer_id}/downvote")
async def downvote_answer(
    answer_id: str,
    identity: Identity = Depends(require_identity),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await _vote(db, answer_id, identity, DOWNVOTE)


@app.get("/answers/{answer_id}/vote")
async def my_vote(
    answer_id: str,
    identity: Identity = Depends(require_identity),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """The caller's current vote on an answer, or null"""
    aid = parse_object_id(answer_id, "answer")
    return {"vote": await VoteService(db).get_user_vote(aid, identity.user_id)}


##################
# Stalls
##################
@app.get("/stalls")
async def list_stalls(
    food: Optional[str] = None,
    location: Optional[str] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Stalls filtered by food types (comma separated) and/or city or area"""
    return serialize_many(await queries.find_stalls(db, food=food, location=location))


#############
# Profile
#############
@app.get("/profile")
async def get_profile(
    identity: Identity = Depends(require_identity),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await accounts.get_profile(db, identity.user_id)


@app.put("/profile")
async def update_profile(
    body: ProfileUpdate,
    identity: Identity = Depends(require_identity),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    updated = await accounts.update_profile(db, identity.user_id, name=body.name, location=body.location)
    return {"message": "Profile updated successfully", "updated": updated}


@app.get("/user/questions")
async def user_questions(
    identity: Identity = Depends(require_identity),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return serialize_many(await content.list_user_questions(db, identity.user_id))


@app.get("/user/answers")
async def user_answers(
    identity: Identity = Depends(require_identity),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return serialize_many(await content.list_user_answers(db, identity.user_id))


##########
# Search
##########
@app.get("/search")
async def search(q: Optional[str] = None, db: AsyncIOMotorDatabase = Depends(get_db)):
    """Questions whose title, location or description contains the query"""
    return serialize_many(await queries.search_questions(db, q))


###############
# Entry Point
###############
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
