"""Request bodies.

Fields are optional at the model level so that missing values are reported
with the API's own messages instead of the framework's validation output.
"""

from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator


class UserCreate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_missing(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class UserLogin(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    location: Optional[str] = None


class QuestionCreate(BaseModel):
    title: Optional[str] = None
    location: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None


class AnswerCreate(BaseModel):
    question_id: Optional[str] = None
    content: Optional[str] = None
