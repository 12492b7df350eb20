"""
StackIt Backend — Application Package Initializer
==================================================

What: Marks the `stackit` directory as a Python package.
Who:  Used by uvicorn (`uvicorn stackit.main:app`), Alembic and pytest.

Architecture Note:
    The backend is a thin orchestration layer around three external
    collaborators (identity, documents, files):

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (Composer, Feed, Detail) │  ← Validation, orchestration
    ├─────────────────────────────────────┤
    │       Schemas & Editor model        │  ← Pydantic contracts, rich text
    ├─────────────────────────────────────┤
    │  Gateways (Identity/Document/Object)│  ← One class per external service
    └─────────────────────────────────────┘

    Routes never talk to a gateway directly; they receive services built
    from injected gateways (see `stackit.dependencies`), so every layer can be
    tested with in-memory doubles.
"""

__version__ = "1.0.0"
