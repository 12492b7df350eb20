"""
StackIt Backend — Question Route Handlers
===========================================

What:  The feed, the composer (submit + preview) and the question page with
       its votes, answers, accepted answer and comments.
How:   Handlers translate HTTP input into service calls and service results
       into response models; no business rules live here.

Endpoints:
    GET  /api/questions                                   feed page
    POST /api/questions                                   submit (multipart, auth)
    POST /api/questions/preview                           render without writing
    GET  /api/questions/{id}                              thread (+1 view)
    POST /api/questions/{id}/votes                        vote on the question
    POST /api/questions/{id}/answers                      add answer (auth)
    POST /api/questions/{id}/answers/{aid}/votes          vote on an answer
    POST /api/questions/{id}/answers/{aid}/accept         accept (auth, question author)
    POST /api/questions/{id}/answers/{aid}/comments       add comment (auth)
"""

import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from stackit.dependencies import (
    get_current_session,
    get_question_composer,
    get_question_detail_service,
    get_question_feed,
)
from stackit.editor import build_document
from stackit.exceptions import ValidationError
from stackit.schemas.common import ErrorResponse
from stackit.schemas.question import (
    AnswerRequest,
    CommentRequest,
    CreateQuestionResponse,
    FeedResponse,
    PreviewRequest,
    PreviewResponse,
    ThreadResponse,
    VoteRequest,
)
from stackit.services.question_composer import Attachment, QuestionComposer
from stackit.services.question_detail import QuestionDetailService, QuestionThread
from stackit.services.question_feed import SORT_KEYS, QuestionFeed
from stackit.services.session_cache import Session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Questions"])


def _thread_response(thread: QuestionThread) -> ThreadResponse:
    return ThreadResponse.model_validate(thread, from_attributes=True)


# ══════════════════════════════════════════════════════════════════════════
# Feed
# ══════════════════════════════════════════════════════════════════════════


@router.get(
    "/questions",
    response_model=FeedResponse,
    responses={
        400: {"description": "Unknown sort key or bad page", "model": ErrorResponse},
        502: {"description": "Document store failure", "model": ErrorResponse},
    },
    summary="List questions",
    description=(
        "Search (title and description text), filter by tag, sort by "
        f"{', '.join(SORT_KEYS)} and page through all questions."
    ),
)
async def list_questions(
    sort: str = Query(default="newest"),
    search: Optional[str] = Query(default=None),
    tag: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    feed: QuestionFeed = Depends(get_question_feed),
) -> FeedResponse:
    result = await feed.load(sort_key=sort, search_text=search, tag_filter=tag, page=page)
    return FeedResponse.model_validate(result, from_attributes=True)


# ══════════════════════════════════════════════════════════════════════════
# Composer
# ══════════════════════════════════════════════════════════════════════════


@router.post(
    "/questions",
    status_code=201,
    response_model=CreateQuestionResponse,
    responses={
        400: {"description": "A field rule failed", "model": ErrorResponse},
        401: {"description": "Not signed in", "model": ErrorResponse},
        502: {"description": "Upload or document write failed", "model": ErrorResponse},
    },
    summary="Ask a question",
)
async def create_question(
    title: str = Form(default=""),
    description: str = Form(default="", description="Description HTML"),
    description_commands: Optional[str] = Form(
        default=None,
        description="JSON list of editor commands; used instead of `description` when present",
    ),
    tags: List[str] = Form(default=[]),
    files: List[UploadFile] = File(default=[]),
    session: Session = Depends(get_current_session),
    composer: QuestionComposer = Depends(get_question_composer),
) -> CreateQuestionResponse:
    if description_commands:
        try:
            commands = json.loads(description_commands)
        except json.JSONDecodeError:
            raise ValidationError(message="Editor commands are not valid JSON", field="description")
        if not isinstance(commands, list):
            raise ValidationError(message="Editor commands must be a list", field="description")
        description = build_document(commands).render_html()

    attachments = [
        Attachment(
            filename=upload.filename or "attachment",
            content=await upload.read(),
            content_type=upload.content_type or "",
        )
        for upload in files
    ]

    question_id = await composer.submit(
        session=session,
        title=title,
        description_html=description,
        tag_names=tags,
        files=attachments,
    )
    return CreateQuestionResponse(question_id=question_id)


@router.post(
    "/questions/preview",
    response_model=PreviewResponse,
    summary="Preview a question without saving it",
)
async def preview_question(
    body: PreviewRequest,
    composer: QuestionComposer = Depends(get_question_composer),
) -> PreviewResponse:
    preview = composer.preview(
        title=body.title,
        tag_names=body.tags,
        description_html=body.description,
        commands=body.commands,
    )
    return PreviewResponse.model_validate(preview, from_attributes=True)


# ══════════════════════════════════════════════════════════════════════════
# Question thread
# ══════════════════════════════════════════════════════════════════════════


@router.get(
    "/questions/{question_id}",
    response_model=ThreadResponse,
    responses={
        404: {"description": "Question not found", "model": ErrorResponse},
        502: {"description": "Document store failure", "model": ErrorResponse},
    },
    summary="Load a question with its answers and comments",
)
async def get_question(
    question_id: str,
    detail: QuestionDetailService = Depends(get_question_detail_service),
) -> ThreadResponse:
    return _thread_response(await detail.load(question_id))


@router.post("/questions/{question_id}/votes", response_model=ThreadResponse, summary="Vote on a question")
async def vote_question(
    question_id: str,
    body: VoteRequest,
    detail: QuestionDetailService = Depends(get_question_detail_service),
) -> ThreadResponse:
    return _thread_response(await detail.vote(question_id, "question", body.direction))


@router.post(
    "/questions/{question_id}/answers",
    status_code=201,
    response_model=ThreadResponse,
    summary="Post an answer",
)
async def add_answer(
    question_id: str,
    body: AnswerRequest,
    session: Session = Depends(get_current_session),
    detail: QuestionDetailService = Depends(get_question_detail_service),
) -> ThreadResponse:
    return _thread_response(await detail.add_answer(session, question_id, body.content))


@router.post(
    "/questions/{question_id}/answers/{answer_id}/votes",
    response_model=ThreadResponse,
    summary="Vote on an answer",
)
async def vote_answer(
    question_id: str,
    answer_id: str,
    body: VoteRequest,
    detail: QuestionDetailService = Depends(get_question_detail_service),
) -> ThreadResponse:
    return _thread_response(await detail.vote(question_id, "answer", body.direction, answer_id))


@router.post(
    "/questions/{question_id}/answers/{answer_id}/accept",
    response_model=ThreadResponse,
    responses={403: {"description": "Not the question's author", "model": ErrorResponse}},
    summary="Accept an answer",
)
async def accept_answer(
    question_id: str,
    answer_id: str,
    session: Session = Depends(get_current_session),
    detail: QuestionDetailService = Depends(get_question_detail_service),
) -> ThreadResponse:
    return _thread_response(await detail.accept_answer(session, question_id, answer_id))


@router.post(
    "/questions/{question_id}/answers/{answer_id}/comments",
    response_model=ThreadResponse,
    summary="Comment on an answer",
)
async def add_comment(
    question_id: str,
    answer_id: str,
    body: CommentRequest,
    session: Session = Depends(get_current_session),
    detail: QuestionDetailService = Depends(get_question_detail_service),
) -> ThreadResponse:
    return _thread_response(await detail.add_comment(session, question_id, answer_id, body.content))
