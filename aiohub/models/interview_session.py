"""Pydantic models for interview session payloads.

Declares request and response shapes for the session routes so route
modules stay free of schema definitions. Answers are arbitrary JSON at the
boundary and are stored as one serialized object.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator

from aiohub.logic.concurrency_token import normalize_token


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SaveAnswerDiffRequest(_CamelModel):
    question_id: str = Field(alias="questionId", min_length=1)
    # null or "" removes the answer
    new_answer: JsonValue = Field(default=None, alias="newAnswer")
    previous_updated_at: str = Field(alias="previousUpdatedAt")

    @field_validator("question_id")
    @classmethod
    def question_id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("questionId must be a non-empty string")
        return v

    @field_validator("previous_updated_at")
    @classmethod
    def previous_updated_at_is_iso(cls, v: str) -> str:
        try:
            normalize_token(v)
        except ValueError as exc:
            raise ValueError("previousUpdatedAt must be an ISO-8601 timestamp") from exc
        return v


class SaveAnswerDiffResponse(_CamelModel):
    ok: Literal[True] = True
    updated_at: str = Field(alias="updatedAt")
    version: int
    answers: Dict[str, Any]


class ConflictLatest(_CamelModel):
    id: str
    version: int
    updated_at: str = Field(alias="updatedAt")
    answers: Dict[str, Any]


class ConflictResponse(_CamelModel):
    success: Literal[False] = False
    code: Literal["conflict"] = "conflict"
    message: str
    latest: ConflictLatest


class SaveAnswersRequest(_CamelModel):
    answers: Dict[str, JsonValue]
    client_version: int = Field(alias="clientVersion", ge=0)


class SaveAnswersResponse(_CamelModel):
    ok: Literal[True] = True
    new_version: int = Field(alias="newVersion")
    updated_at: str = Field(alias="updatedAt")


class SessionCreateRequest(BaseModel):
    content_type: Literal["service", "product", "faq", "case_study"]
    organization_id: Optional[str] = None


class CompleteSessionRequest(_CamelModel):
    previous_updated_at: Optional[str] = Field(default=None, alias="previousUpdatedAt")


class InterviewSessionOut(BaseModel):
    id: str
    organization_id: Optional[str] = None
    user_id: str
    content_type: str
    status: str
    answers: Dict[str, Any]
    version: int
    created_at: str
    updated_at: str


class SessionDetailResponse(_CamelModel):
    data: InterviewSessionOut
    read_only: bool = Field(alias="readOnly")


class SessionListResponse(BaseModel):
    data: List[InterviewSessionOut]


class SessionDeletedResponse(BaseModel):
    success: bool = True
    id: str


__all__ = [
    "SaveAnswerDiffRequest",
    "SaveAnswerDiffResponse",
    "ConflictLatest",
    "ConflictResponse",
    "SaveAnswersRequest",
    "SaveAnswersResponse",
    "SessionCreateRequest",
    "CompleteSessionRequest",
    "InterviewSessionOut",
    "SessionDetailResponse",
    "SessionListResponse",
    "SessionDeletedResponse",
]
