"""
StackIt Backend — Question Schemas
====================================

What:  Request/response models for /api/questions and everything under it.
How:   Service-layer dataclasses (QuestionSummary, QuestionThread views,
       QuestionPreview) are converted with `model_validate(...,
       from_attributes=True)`.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Requests
# ══════════════════════════════════════════════════════════════════════════


class VoteRequest(BaseModel):
    direction: Literal["up", "down"]


class AnswerRequest(BaseModel):
    content: str = Field(default="", description="Answer body (HTML)")


class CommentRequest(BaseModel):
    content: str = Field(default="")


class PreviewRequest(BaseModel):
    """
    Either `description` (HTML) or `commands` (editor commands such as
    {"type": "toggle_mark", "mark": "bold"}) describes the body.
    """
    title: str = ""
    description: Optional[str] = None
    commands: Optional[List[Dict[str, Any]]] = None
    tags: List[str] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════
# Responses
# ══════════════════════════════════════════════════════════════════════════


class QuestionSummaryResponse(BaseModel):
    id: str
    title: str
    description_html: str
    tags: List[str]
    files: List[str]
    username: str
    created_at: Optional[datetime] = None
    time_ago: str
    votes: int
    views: int
    answers: int

    model_config = {"from_attributes": True}


class FeedResponse(BaseModel):
    items: List[QuestionSummaryResponse]
    page: int
    total_pages: int
    total_count: int
    page_size: int
    tags: List[str] = Field(default_factory=list, description="All known tag names")

    model_config = {"from_attributes": True}


class CreateQuestionResponse(BaseModel):
    message: str = "Question submitted successfully!"
    question_id: str


class PreviewResponse(BaseModel):
    title: str
    description_html: str
    description_text: str
    tags: List[str]
    errors: Dict[str, str] = Field(default_factory=dict)

    model_config = {"from_attributes": True}


class CommentResponse(BaseModel):
    id: str
    content: str
    username: str
    created_at: Optional[datetime] = None
    time_ago: str

    model_config = {"from_attributes": True}


class AnswerResponse(BaseModel):
    id: str
    content: str
    username: str
    created_at: Optional[datetime] = None
    time_ago: str
    votes: int
    is_accepted: bool
    user_vote: Optional[str] = None
    comments: List[CommentResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class QuestionDetailResponse(BaseModel):
    id: str
    title: str
    description_html: str
    tags: List[str]
    files: List[str]
    username: str
    created_at: Optional[datetime] = None
    time_ago: str
    votes: int
    views: int
    user_vote: Optional[str] = None

    model_config = {"from_attributes": True}


class ThreadResponse(BaseModel):
    """A loaded question page: the question, its answers and their comments."""
    state: str
    question: QuestionDetailResponse
    answers: List[AnswerResponse]
    answer_count: int
    accepted_answer_id: Optional[str] = None

    model_config = {"from_attributes": True}
