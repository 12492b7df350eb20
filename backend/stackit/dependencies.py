"""
StackIt Backend — Dependency Wiring
=====================================

What:  FastAPI dependencies that hand gateways, services and the current
       Session to route handlers.
How:   Gateways and the SessionCache are process-wide singletons created on
       first use. Services are cheap and built per request from whatever
       the gateway dependencies return, so tests only override the gateway
       providers (app.dependency_overrides) and everything above follows.

Auth:
    get_current_session  Authorization: Bearer <identity token> → Session,
                         or AuthenticationError (401, redirect /login or
                         /register)
    require_admin        Session with role "admin", or PermissionDeniedError
"""

import asyncio
from collections import defaultdict
from typing import Dict, Optional

from fastapi import Depends, Header

from stackit.config import settings
from stackit.database import async_session_factory
from stackit.exceptions import PermissionDeniedError
from stackit.gateways.document_store import DocumentStore, SqlDocumentStore
from stackit.gateways.identity import FirebaseIdentityGateway, IdentityGateway
from stackit.gateways.object_store import CloudinaryObjectStore, LocalObjectStore, ObjectStore
from stackit.services.accounts import AccountService
from stackit.services.question_composer import QuestionComposer
from stackit.services.question_detail import QuestionDetailService
from stackit.services.question_feed import QuestionFeed
from stackit.services.session_cache import Session, SessionCache

_document_store: Optional[DocumentStore] = None
_object_store: Optional[ObjectStore] = None
_identity_gateway: Optional[IdentityGateway] = None
_session_cache: Optional[SessionCache] = None

# Shared by every composer instance so per-name locking spans requests
_tag_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)


# ── Gateways ───────────────────────────────────────────────────────────────


def get_document_store() -> DocumentStore:
    global _document_store
    if _document_store is None:
        _document_store = SqlDocumentStore(async_session_factory)
    return _document_store


def get_object_store() -> ObjectStore:
    global _object_store
    if _object_store is None:
        if settings.object_store_backend == "local":
            _object_store = LocalObjectStore(settings.storage_root, settings.public_base_url)
        else:
            _object_store = CloudinaryObjectStore(
                cloud_name=settings.cloudinary_cloud_name,
                upload_preset=settings.cloudinary_upload_preset,
                base_url=settings.cloudinary_base_url,
            )
    return _object_store


def get_identity_gateway() -> IdentityGateway:
    global _identity_gateway
    if _identity_gateway is None:
        _identity_gateway = FirebaseIdentityGateway(
            api_key=settings.firebase_api_key,
            base_url=settings.identity_base_url,
        )
    return _identity_gateway


def get_session_cache() -> SessionCache:
    """
    The SessionCache singleton, subscribed to the identity gateway's
    sign-in / sign-out events on creation.
    """
    global _session_cache
    if _session_cache is None:
        _session_cache = SessionCache(get_document_store())
        _session_cache.attach(get_identity_gateway())
    return _session_cache


# ── Services ───────────────────────────────────────────────────────────────


def get_account_service(
    identity: IdentityGateway = Depends(get_identity_gateway),
    document_store: DocumentStore = Depends(get_document_store),
    session_cache: SessionCache = Depends(get_session_cache),
) -> AccountService:
    return AccountService(
        identity=identity,
        document_store=document_store,
        session_cache=session_cache,
        phone_number_pattern=settings.phone_number_pattern,
    )


def get_question_composer(
    document_store: DocumentStore = Depends(get_document_store),
    object_store: ObjectStore = Depends(get_object_store),
) -> QuestionComposer:
    return QuestionComposer(
        document_store=document_store,
        object_store=object_store,
        max_file_size=settings.max_file_size,
        title_min_length=settings.title_min_length,
        description_min_length=settings.description_min_length,
        max_tags=settings.max_tags,
        tag_locks=_tag_locks,
    )


def get_question_feed(document_store: DocumentStore = Depends(get_document_store)) -> QuestionFeed:
    return QuestionFeed(document_store, page_size=settings.page_size)


def get_question_detail_service(
    document_store: DocumentStore = Depends(get_document_store),
) -> QuestionDetailService:
    return QuestionDetailService(document_store)


# ── Auth ───────────────────────────────────────────────────────────────────


def bearer_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


async def get_current_session(
    token: Optional[str] = Depends(bearer_token),
    session_cache: SessionCache = Depends(get_session_cache),
    identity: IdentityGateway = Depends(get_identity_gateway),
) -> Session:
    return await session_cache.resolve(token, identity)


async def require_admin(session: Session = Depends(get_current_session)) -> Session:
    if not session.is_admin:
        raise PermissionDeniedError(message="Administrator access required")
    return session
