"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

import firebase_admin
from firebase_admin import credentials, firestore

from lookbook.config import Settings, get_settings
from lookbook.store import DocumentStore, FirestoreDocumentStore, InMemoryDocumentStore

logger = logging.getLogger(__name__)

_store: DocumentStore | None = None


def _init_firebase(settings: Settings) -> firebase_admin.App:
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass
    cred = credentials.Certificate(settings.firebase_service_account())
    app = firebase_admin.initialize_app(
        cred, {"projectId": settings.firebase_project_id}
    )
    logger.info("Firebase initialized for project %s", settings.firebase_project_id)
    return app


def get_store() -> DocumentStore:
    """
    Return a singleton document store shared by every request.
    """
    global _store
    if _store is not None:
        return _store

    settings = get_settings()
    if settings.use_in_memory_store or not settings.firebase_project_id:
        logger.info("Using in-memory document store")
        _store = InMemoryDocumentStore()
    else:
        app = _init_firebase(settings)
        _store = FirestoreDocumentStore(firestore.client(app))
    return _store
