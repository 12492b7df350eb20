"""
StackIt Backend — Question Feed
=================================

What:  The home page list: every question with resolved tag names and an
       age label, searched, filtered, sorted and cut into pages.
How:   Each load fetches the whole `tags` and `questions` collections and
       does the rest in memory. Fine at community-site scale; there is no
       server-side cursor.

Pipeline:
    tags ──▶ {tag id: name}
    questions ──▶ summaries (tag ids mapped, unknown ids passed through,
                  time_ago label)
              ──▶ search (title + description text, case-insensitive)
              ──▶ tag filter (exact name)
              ──▶ sort (newest | popular | trending | unanswered)
              ──▶ page (page_size items)

Popular score = views + answers * 10 + votes * 5.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from stackit.editor import html_to_text
from stackit.exceptions import BackendCallError, ValidationError
from stackit.gateways.document_store import DocumentSnapshot, DocumentStore
from stackit.services.question_composer import QUESTIONS_COLLECTION, TAGS_COLLECTION

logger = logging.getLogger(__name__)

SORT_KEYS = ("newest", "popular", "trending", "unanswered")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accepts datetimes and ISO-8601 strings; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def time_ago(created_at: Any, now: Optional[datetime] = None) -> str:
    """
    Relative age label.

        < 1 hour   → "just now"
        < 24 hours → "N hour(s) ago"
        otherwise  → "N day(s) ago"

    Missing or unreadable timestamps (e.g. a write still in flight) read
    as "just now".
    """
    created = parse_timestamp(created_at)
    if created is None:
        return "just now"
    now = now or datetime.now(timezone.utc)
    hours = int((now - created).total_seconds() // 3600)
    if hours < 1:
        return "just now"
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    days = hours // 24
    return f"{days} day{'s' if days != 1 else ''} ago"


def popularity(summary: "QuestionSummary") -> int:
    return summary.views + summary.answers * 10 + summary.votes * 5


@dataclass(frozen=True)
class QuestionSummary:
    id: str
    title: str
    description_html: str
    description_text: str
    tags: List[str]
    files: List[str]
    username: str
    created_at: Optional[datetime]
    time_ago: str
    votes: int
    views: int
    answers: int


@dataclass(frozen=True)
class FeedPage:
    items: List[QuestionSummary]
    page: int
    total_pages: int
    total_count: int
    page_size: int = 10
    tags: List[str] = field(default_factory=list)


def build_tag_lookup(snapshots: List[DocumentSnapshot]) -> Dict[str, str]:
    lookup: Dict[str, str] = {}
    for snapshot in snapshots:
        name = snapshot.data.get("tag_name")
        if not name:
            continue
        lookup[snapshot.id] = name
        if snapshot.data.get("tag_id"):
            lookup[snapshot.data["tag_id"]] = name
    return lookup


def summarize(snapshot: DocumentSnapshot, tag_lookup: Dict[str, str], now: datetime) -> QuestionSummary:
    data = snapshot.data
    description = data.get("question_description") or ""
    return QuestionSummary(
        id=data.get("question_id") or snapshot.id,
        title=data.get("question_title", ""),
        description_html=description,
        description_text=html_to_text(description),
        tags=[tag_lookup.get(tag_id, tag_id) for tag_id in data.get("question_tags") or []],
        files=list(data.get("question_file") or []),
        username=data.get("username") or "Anonymous",
        created_at=parse_timestamp(data.get("created_at")),
        time_ago=time_ago(data.get("created_at"), now),
        votes=int(data.get("votes") or 0),
        views=int(data.get("views") or 0),
        answers=int(data.get("answer_count") or 0),
    )


def sort_summaries(summaries: List[QuestionSummary], sort_key: str) -> List[QuestionSummary]:
    if sort_key == "newest":
        return sorted(summaries, key=lambda s: s.created_at or _EPOCH, reverse=True)
    if sort_key == "popular":
        return sorted(summaries, key=popularity, reverse=True)
    if sort_key == "trending":
        return sorted(summaries, key=lambda s: s.views, reverse=True)
    if sort_key == "unanswered":
        return sorted(summaries, key=lambda s: s.answers)
    raise ValidationError(message=f"Unknown sort '{sort_key}'", field="sort")


class QuestionFeed:
    def __init__(self, document_store: DocumentStore, page_size: int = 10):
        self._store = document_store
        self.page_size = page_size

    async def load(
        self,
        sort_key: str = "newest",
        search_text: Optional[str] = None,
        tag_filter: Optional[str] = None,
        page: int = 1,
        now: Optional[datetime] = None,
    ) -> FeedPage:
        if sort_key not in SORT_KEYS:
            raise ValidationError(message=f"Unknown sort '{sort_key}'", field="sort")
        if page < 1:
            raise ValidationError(message="Page must be 1 or greater", field="page")

        try:
            tag_snapshots = await self._store.list_documents(TAGS_COLLECTION)
            question_snapshots = await self._store.list_documents(QUESTIONS_COLLECTION)
        except BackendCallError as e:
            logger.error("Feed load failed at %s: %s", e.service, e.message)
            raise BackendCallError(message="Failed to load questions. Please try again.", service=e.service)

        now = now or datetime.now(timezone.utc)
        tag_lookup = build_tag_lookup(tag_snapshots)
        summaries = [summarize(s, tag_lookup, now) for s in question_snapshots]

        if search_text and search_text.strip():
            needle = search_text.strip().lower()
            summaries = [
                s for s in summaries
                if needle in s.title.lower() or needle in s.description_text.lower()
            ]

        if tag_filter and tag_filter.strip():
            wanted = tag_filter.strip().lower()
            summaries = [s for s in summaries if wanted in s.tags]

        summaries = sort_summaries(summaries, sort_key)

        total_count = len(summaries)
        total_pages = max(1, math.ceil(total_count / self.page_size))
        page = min(page, total_pages)
        start = (page - 1) * self.page_size

        logger.debug(
            "Feed sort=%s search=%r tag=%r → %d questions",
            sort_key,
            search_text,
            tag_filter,
            total_count,
        )
        return FeedPage(
            items=summaries[start:start + self.page_size],
            page=page,
            total_pages=total_pages,
            total_count=total_count,
            page_size=self.page_size,
            tags=sorted(set(tag_lookup.values())),
        )
