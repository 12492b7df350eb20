"""
StackIt Backend — Question Detail / Answer Flow
=================================================

What:  Loads one question with everything under it and applies the four
       thread mutations: vote, accept answer, add comment, add answer.
How:   `QuestionThread` is the in-memory state object (Loading → Ready, or
       Error). `QuestionDetailService` builds a thread from the Document
       Store, applies a mutation to it, and writes the same change back.

Persistence of mutations:
    vote           atomic increment of `votes` on the question or answer
    accept_answer  one batch_update setting isAccepted on every answer of
                   the question (true for the chosen one only), so at most
                   one answer is ever accepted in storage
    add_comment    add_document under .../answers/{aid}/comments
    add_answer     add_document under questions/{qid}/answers, then
                   increment the question's `answer_count`
    load           increments `views`

Votes are not idempotent and not tied to a user: two up-votes add two.
Displayed answer/comment counts are the lengths of the fetched lists.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional

from stackit.editor import html_to_text, sanitize_html
from stackit.exceptions import BackendCallError, NotFoundError, PermissionDeniedError, ValidationError
from stackit.gateways.document_store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    generate_document_id,
    subcollection,
)
from stackit.services.question_composer import QUESTIONS_COLLECTION, TAGS_COLLECTION
from stackit.services.question_feed import parse_timestamp, time_ago
from stackit.services.session_cache import Session

logger = logging.getLogger(__name__)

LOADING = "loading"
READY = "ready"
ERROR = "error"

VOTE_TARGETS = ("question", "answer")
VOTE_DIRECTIONS = {"up": 1, "down": -1}


# ── Thread State ───────────────────────────────────────────────────────────


@dataclass
class CommentView:
    id: str
    content: str
    username: str
    created_at: Optional[datetime]
    time_ago: str


@dataclass
class AnswerView:
    id: str
    content: str
    username: str
    created_at: Optional[datetime]
    time_ago: str
    votes: int = 0
    is_accepted: bool = False
    user_vote: Optional[str] = None
    comments: List[CommentView] = field(default_factory=list)


@dataclass
class QuestionView:
    id: str
    title: str
    description_html: str
    tags: List[str]
    files: List[str]
    username: str
    created_at: Optional[datetime]
    time_ago: str
    votes: int = 0
    views: int = 0
    user_vote: Optional[str] = None
    author_id: Optional[str] = None


class QuestionThread:
    """
    One question page's state.

    Mutations require the Ready state and change only this object; the
    service is responsible for writing them back.
    """

    def __init__(self, question_id: str):
        self.question_id = question_id
        self.state = LOADING
        self.question: Optional[QuestionView] = None
        self.answers: List[AnswerView] = []
        self.error: Optional[str] = None

    @property
    def answer_count(self) -> int:
        return len(self.answers)

    @property
    def accepted_answer_id(self) -> Optional[str]:
        for answer in self.answers:
            if answer.is_accepted:
                return answer.id
        return None

    def ready(self, question: QuestionView, answers: List[AnswerView]) -> "QuestionThread":
        self.question = question
        self.answers = answers
        self.state = READY
        self.error = None
        return self

    def fail(self, message: str) -> "QuestionThread":
        self.state = ERROR
        self.error = message
        return self

    def _require_ready(self) -> QuestionView:
        if self.state != READY or self.question is None:
            raise RuntimeError(f"Question thread {self.question_id} is {self.state}, not ready")
        return self.question

    def find_answer(self, answer_id: str) -> AnswerView:
        self._require_ready()
        for answer in self.answers:
            if answer.id == answer_id:
                return answer
        raise NotFoundError(resource="answer", resource_id=answer_id)

    def vote(self, target: str, direction: str, answer_id: Optional[str] = None) -> int:
        """Apply ±1 and remember the direction; returns the new count."""
        question = self._require_ready()
        if target not in VOTE_TARGETS:
            raise ValidationError(message=f"Cannot vote on '{target}'", field="target")
        if direction not in VOTE_DIRECTIONS:
            raise ValidationError(message="Vote direction must be 'up' or 'down'", field="direction")

        delta = VOTE_DIRECTIONS[direction]
        if target == "question":
            question.votes += delta
            question.user_vote = direction
            return question.votes

        if not answer_id:
            raise ValidationError(message="answer_id is required for answer votes", field="answer_id")
        answer = self.find_answer(answer_id)
        answer.votes += delta
        answer.user_vote = direction
        return answer.votes

    def accept_answer(self, answer_id: str) -> None:
        self.find_answer(answer_id)
        for answer in self.answers:
            answer.is_accepted = answer.id == answer_id

    def add_comment(
        self,
        answer_id: str,
        text: str,
        username: str,
        comment_id: Optional[str] = None,
    ) -> Optional[CommentView]:
        """Append a comment; blank text is ignored and returns None."""
        answer = self.find_answer(answer_id)
        if not text.strip():
            return None
        comment = CommentView(
            id=comment_id or generate_document_id(),
            content=text,
            username=username,
            created_at=datetime.now(timezone.utc),
            time_ago="just now",
        )
        answer.comments.append(comment)
        return comment

    def add_answer(self, content: str, username: str, answer_id: Optional[str] = None) -> AnswerView:
        self._require_ready()
        if not content.strip():
            raise ValidationError(message="Answer cannot be empty", field="content")
        answer = AnswerView(
            id=answer_id or generate_document_id(),
            content=content,
            username=username,
            created_at=datetime.now(timezone.utc),
            time_ago="just now",
        )
        self.answers.append(answer)
        return answer


# ── Service ────────────────────────────────────────────────────────────────


def answers_collection(question_id: str) -> str:
    return subcollection(QUESTIONS_COLLECTION, question_id, "answers")


def comments_collection(question_id: str, answer_id: str) -> str:
    return subcollection(QUESTIONS_COLLECTION, question_id, "answers", answer_id, "comments")


def _comment_view(snapshot: DocumentSnapshot, now: datetime) -> CommentView:
    data = snapshot.data
    return CommentView(
        id=snapshot.id,
        content=data.get("content", ""),
        username=data.get("username") or "Anonymous",
        created_at=parse_timestamp(data.get("created_at")),
        time_ago=time_ago(data.get("created_at"), now),
    )


def _answer_view(snapshot: DocumentSnapshot, comments: List[CommentView], now: datetime) -> AnswerView:
    data = snapshot.data
    return AnswerView(
        id=snapshot.id,
        content=data.get("content", ""),
        username=data.get("username") or "Anonymous",
        created_at=parse_timestamp(data.get("created_at")),
        time_ago=time_ago(data.get("created_at"), now),
        votes=int(data.get("votes") or 0),
        is_accepted=bool(data.get("isAccepted", False)),
        comments=comments,
    )


class QuestionDetailService:
    def __init__(self, document_store: DocumentStore):
        self._store = document_store

    @asynccontextmanager
    async def _backend_call(self, failure_message: str, question_id: str) -> AsyncIterator[None]:
        try:
            yield
        except BackendCallError as e:
            logger.error("Question %s: %s (%s)", question_id, failure_message, e.service)
            raise BackendCallError(message=failure_message, service=e.service)

    async def _tag_name(self, tag_id: str) -> str:
        data = await self._store.get_document(TAGS_COLLECTION, tag_id)
        if data and data.get("tag_name"):
            return data["tag_name"]
        return tag_id

    async def _answer_with_comments(self, question_id: str, snapshot: DocumentSnapshot, now: datetime) -> AnswerView:
        comment_snapshots = await self._store.list_documents(
            comments_collection(question_id, snapshot.id), order_by="created_at"
        )
        return _answer_view(snapshot, [_comment_view(c, now) for c in comment_snapshots], now)

    async def load(self, question_id: str, count_view: bool = True) -> QuestionThread:
        """
        Fetch the question, its tag names, answers and every answer's comments.

        Raises:
            NotFoundError: no such question.
            BackendCallError: any store call failed.
        """
        thread = QuestionThread(question_id)
        now = datetime.now(timezone.utc)

        async with self._backend_call("Failed to load question details", question_id):
            data = await self._store.get_document(QUESTIONS_COLLECTION, question_id)
            if data is None:
                thread.fail("Question not found")
                raise NotFoundError(resource="question", resource_id=question_id)

            tag_names = await asyncio.gather(
                *(self._tag_name(tag_id) for tag_id in data.get("question_tags") or [])
            )
            answer_snapshots = await self._store.list_documents(
                answers_collection(question_id), order_by="created_at"
            )
            answers = await asyncio.gather(
                *(self._answer_with_comments(question_id, s, now) for s in answer_snapshots)
            )
            views = int(data.get("views") or 0)
            if count_view:
                views = await self._store.increment(QUESTIONS_COLLECTION, question_id, "views", 1)

        question = QuestionView(
            id=question_id,
            title=data.get("question_title", ""),
            description_html=data.get("question_description", ""),
            tags=list(tag_names),
            files=list(data.get("question_file") or []),
            username=data.get("username") or "Anonymous",
            created_at=parse_timestamp(data.get("created_at")),
            time_ago=time_ago(data.get("created_at"), now),
            votes=int(data.get("votes") or 0),
            views=views,
            author_id=data.get("user_id"),
        )
        return thread.ready(question, list(answers))

    async def vote(
        self,
        question_id: str,
        target: str,
        direction: str,
        answer_id: Optional[str] = None,
    ) -> QuestionThread:
        thread = await self.load(question_id, count_view=False)
        thread.vote(target, direction, answer_id)
        delta = VOTE_DIRECTIONS[direction]

        async with self._backend_call("Failed to record your vote. Please try again.", question_id):
            if target == "question":
                thread.question.votes = await self._store.increment(
                    QUESTIONS_COLLECTION, question_id, "votes", delta
                )
            else:
                answer = thread.find_answer(answer_id)
                answer.votes = await self._store.increment(
                    answers_collection(question_id), answer_id, "votes", delta
                )
        return thread

    async def accept_answer(self, session: Session, question_id: str, answer_id: str) -> QuestionThread:
        thread = await self.load(question_id, count_view=False)
        # Questions stored without an author id can only be settled by an admin
        author_id = thread.question.author_id
        if (author_id is None or author_id != session.user_id) and not session.is_admin:
            raise PermissionDeniedError(message="Only the author of the question can accept an answer")
        thread.accept_answer(answer_id)

        collection = answers_collection(question_id)
        async with self._backend_call("Failed to accept the answer. Please try again.", question_id):
            await self._store.batch_update(
                [(collection, a.id, {"isAccepted": a.is_accepted}) for a in thread.answers]
            )
        logger.info("Answer %s accepted on question %s", answer_id, question_id)
        return thread

    async def add_comment(
        self,
        session: Session,
        question_id: str,
        answer_id: str,
        text: str,
    ) -> QuestionThread:
        thread = await self.load(question_id, count_view=False)
        thread.find_answer(answer_id)
        if not text.strip():
            return thread

        async with self._backend_call("Failed to post your comment. Please try again.", question_id):
            comment_id = await self._store.add_document(
                comments_collection(question_id, answer_id),
                {"content": text, "username": session.username, "created_at": SERVER_TIMESTAMP},
            )
        thread.add_comment(answer_id, text, session.username, comment_id=comment_id)
        return thread

    async def add_answer(self, session: Session, question_id: str, content: str) -> QuestionThread:
        thread = await self.load(question_id, count_view=False)
        content = sanitize_html(content)
        if not html_to_text(content).strip():
            raise ValidationError(message="Answer cannot be empty", field="content")

        async with self._backend_call("Failed to post your answer. Please try again.", question_id):
            answer_id = await self._store.add_document(
                answers_collection(question_id),
                {
                    "content": content,
                    "username": session.username,
                    "created_at": SERVER_TIMESTAMP,
                    "votes": 0,
                    "isAccepted": False,
                },
            )
            await self._store.increment(QUESTIONS_COLLECTION, question_id, "answer_count", 1)
        thread.add_answer(content, session.username, answer_id=answer_id)
        logger.info("Answer %s posted on question %s by %s", answer_id, question_id, session.username)
        return thread
