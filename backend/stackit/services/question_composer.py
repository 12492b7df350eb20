"""
StackIt Backend — Question Composer
=====================================

What:  Builds and writes a new question from title, rich-text description,
       tags and attachments.
Who:   Called by POST /api/questions (submit) and POST /api/questions/preview.

Submission Flow:
    ┌────────────┐    ┌──────────────┐    ┌────────────────┐    ┌─────────────┐
    │  Validate  │───▶│   Uploads    │───▶│ Tag resolution │───▶│ Question    │
    │  (local)   │    │ (concurrent) │    │  (concurrent)  │    │ write + id  │
    └────────────┘    └──────────────┘    └────────────────┘    └─────────────┘

    Description HTML is passed through sanitize_html() before validation.
    Validation failure → ValidationError, no network call.
    Upload failure     → nothing written; finished uploads are orphaned (logged).
    Later failure      → new tags may remain; no rollback.
    Every backend failure surfaces as
    BackendCallError("Failed to submit question. Please try again.")

Tag resolution:
    Names are trimmed, lower-cased, blanks dropped and duplicates collapsed
    before any lookup, so one submission never creates the same tag twice.
    Each name is resolved under its own asyncio.Lock, which serialises
    create-if-absent for that name inside this process. Separate processes
    can still race and create duplicates.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from stackit.editor import build_document, html_to_text, sanitize_html
from stackit.exceptions import BackendCallError, raise_for_field_errors
from stackit.gateways.document_store import SERVER_TIMESTAMP, DocumentStore
from stackit.gateways.object_store import ObjectStore, classify_mime_type
from stackit.services.session_cache import Session

logger = logging.getLogger(__name__)

QUESTIONS_COLLECTION = "questions"
TAGS_COLLECTION = "tags"

SUBMIT_FAILED_MESSAGE = "Failed to submit question. Please try again."


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class QuestionPreview:
    title: str
    description_html: str
    description_text: str
    tags: List[str]
    errors: Dict[str, str] = field(default_factory=dict)


def normalise_tags(tag_names: Sequence[str]) -> List[str]:
    """Trim, lower-case, drop blanks and collapse duplicates (first order kept)."""
    seen: Dict[str, None] = {}
    for name in tag_names:
        cleaned = name.strip().lower()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


class QuestionComposer:
    def __init__(
        self,
        document_store: DocumentStore,
        object_store: ObjectStore,
        max_file_size: int = 10_485_760,
        title_min_length: int = 10,
        description_min_length: int = 20,
        max_tags: int = 5,
        tag_locks: Optional[Dict[str, asyncio.Lock]] = None,
    ):
        self._store = document_store
        self._objects = object_store
        self.max_file_size = max_file_size
        self.title_min_length = title_min_length
        self.description_min_length = description_min_length
        self.max_tags = max_tags
        # Pass a shared mapping when composers are built per request
        self._tag_locks: Dict[str, asyncio.Lock] = (
            tag_locks if tag_locks is not None else defaultdict(asyncio.Lock)
        )

    # ── Validation ─────────────────────────────────────────────────────────

    def collect_errors(
        self,
        title: str,
        description_html: str,
        tag_names: Sequence[str],
        files: Sequence[Attachment] = (),
    ) -> Tuple[Dict[str, str], List[str], List[str]]:
        """Returns (field errors, normalised tags, upload kind per file)."""
        errors: Dict[str, str] = {}

        if not title.strip():
            errors["title"] = "Title is required"
        elif len(title) < self.title_min_length:
            errors["title"] = f"Title must be at least {self.title_min_length} characters"

        text = html_to_text(description_html)
        if not text.strip():
            errors["description"] = "Description is required"
        elif len(text) < self.description_min_length:
            errors["description"] = (
                f"Description must be at least {self.description_min_length} characters"
            )

        tags = normalise_tags(tag_names)
        if not tags:
            errors["tags"] = "At least one tag is required"
        elif len(tags) > self.max_tags:
            errors["tags"] = f"You can add at most {self.max_tags} tags"

        kinds: List[str] = []
        for attachment in files:
            kind = classify_mime_type(attachment.content_type)
            if attachment.size > self.max_file_size:
                limit_mb = self.max_file_size / (1024 * 1024)
                errors.setdefault("files", f"'{attachment.filename}' exceeds the {limit_mb:.0f}MB limit")
            elif kind is None:
                errors.setdefault(
                    "files",
                    f"'{attachment.filename}' has an unsupported type ({attachment.content_type or 'unknown'})",
                )
            else:
                kinds.append(kind)

        return errors, tags, kinds

    # ── Submission ─────────────────────────────────────────────────────────

    async def submit(
        self,
        session: Session,
        title: str,
        description_html: str,
        tag_names: Sequence[str],
        files: Sequence[Attachment] = (),
    ) -> str:
        """
        Validate, upload, resolve tags and write the question.

        Returns:
            The new question id.

        Raises:
            ValidationError: a field rule failed (nothing was sent anywhere).
            BackendCallError: an upload or a document write failed.
        """
        description_html = sanitize_html(description_html)
        errors, tags, kinds = self.collect_errors(title, description_html, tag_names, files)
        raise_for_field_errors(errors)

        try:
            urls = await self._upload_all(files, kinds)
            tag_ids = list(await asyncio.gather(*(self._resolve_tag(name) for name in tags)))

            question_id = await self._store.add_document(
                QUESTIONS_COLLECTION,
                {
                    "question_id": "",
                    "question_title": title.strip(),
                    "question_description": description_html,
                    "question_file": urls,
                    "question_tags": tag_ids,
                    "created_at": SERVER_TIMESTAMP,
                    "username": session.username,
                    "user_id": session.user_id,
                    "votes": 0,
                    "views": 0,
                    "answer_count": 0,
                },
            )
            await self._store.set_document(
                QUESTIONS_COLLECTION, question_id, {"question_id": question_id}, merge=True
            )
        except BackendCallError as e:
            logger.error(
                "Question submission by %s failed at %s: %s",
                session.username,
                e.service,
                e.message,
            )
            raise BackendCallError(message=SUBMIT_FAILED_MESSAGE, service=e.service)

        logger.info(
            "Question %s created by %s (%d tags, %d files)",
            question_id,
            session.username,
            len(tag_ids),
            len(urls),
        )
        return question_id

    async def _upload_all(self, files: Sequence[Attachment], kinds: Sequence[str]) -> List[str]:
        if not files:
            return []
        results = await asyncio.gather(
            *(
                self._objects.upload(f.filename, f.content, f.content_type, kind)
                for f, kind in zip(files, kinds)
            ),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            orphaned = [r for r in results if isinstance(r, str)]
            if orphaned:
                logger.warning("Upload batch failed; %d uploaded file(s) orphaned: %s", len(orphaned), orphaned)
            raise failures[0]
        return list(results)

    async def _resolve_tag(self, name: str) -> str:
        async with self._tag_locks[name]:
            existing = await self._store.query_documents(TAGS_COLLECTION, "tag_name", name)
            if existing:
                return existing[0].data.get("tag_id") or existing[0].id

            tag_id = await self._store.add_document(TAGS_COLLECTION, {"tag_id": "", "tag_name": name})
            await self._store.set_document(TAGS_COLLECTION, tag_id, {"tag_id": tag_id}, merge=True)
            logger.info("Created tag '%s' (%s)", name, tag_id)
            return tag_id

    # ── Preview ────────────────────────────────────────────────────────────

    def preview(
        self,
        title: str,
        tag_names: Sequence[str],
        description_html: Optional[str] = None,
        commands: Optional[List[Dict[str, Any]]] = None,
    ) -> QuestionPreview:
        """
        Render what the question would look like. Nothing is written; rule
        violations are reported in `errors` instead of raised.
        """
        if commands is not None:
            description_html = build_document(commands).render_html()
        description_html = sanitize_html(description_html or "")
        errors, tags, _ = self.collect_errors(title, description_html, tag_names)
        return QuestionPreview(
            title=title.strip(),
            description_html=description_html,
            description_text=html_to_text(description_html),
            tags=tags,
            errors=errors,
        )
