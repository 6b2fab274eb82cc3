"""
HTTP routes for the Lookbook API.

Envelopes differ per collection and clients rely on them: feed items and
images answer `{ok, ...}`, categories and the passthrough write answer
`{success, ...}`, groups and AI cards answer bare objects and arrays.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Optional

from fastapi import APIRouter, Body, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from lookbook.dependencies import get_store
from lookbook.errors import LookbookError, NotFoundError, ValidationError
from lookbook.groups import GROUP_COLLECTIONS, GroupItemService
from lookbook.normalize import (
    now_iso,
    sanitize_ai_card_create,
    sanitize_ai_card_update,
    sanitize_image,
    sanitize_item,
    shape_ai_card,
    shape_category,
    shape_image,
    shape_item,
    to_iso,
)
from lookbook.schemas import (
    AddJsonDataPayload,
    CategoryPayload,
    HealthResponse,
    PassthroughResponse,
)
from lookbook.store import (
    DOCUMENT_ID,
    DocumentStore,
    StoredDocument,
    query_with_fallback,
)

logger = logging.getLogger(__name__)

router = APIRouter()
debug_router = APIRouter()
passthrough_router = APIRouter()

RECENT_ITEMS = "recentItems"
IMAGES = "images"
CATEGORIES = "categories"
AI_CARDS = "aiCards"

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 100

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

JsonBody = Optional[dict[str, Any]]


def _error(status_code: int, **content: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content)


def _require(payload: dict, *fields: str) -> None:
    for field in fields:
        if not payload.get(field):
            raise ValidationError(f"{field} is required")


def _parse_limit(raw: Optional[str]) -> int:
    match = _LEADING_INT.match(raw or "")
    value = int(match.group(1)) if match else 0
    return min(value if value > 0 else DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT)


def _bool_filter(field: str, raw: Optional[str]) -> list[tuple[str, str, Any]]:
    if raw in ("true", "false"):
        return [(field, "==", raw == "true")]
    return []


def _search(items: list[dict], q: Optional[str]) -> list[dict]:
    if not q or not q.strip():
        return items
    needle = q.strip().lower()

    def matches(item: dict) -> bool:
        tags = item.get("tags") or []
        return (
            needle in item["_id"].lower()
            or needle in item["title"].lower()
            or needle in item["description"].lower()
            or needle in ",".join(str(tag) for tag in tags).lower()
        )

    return [item for item in items if matches(item)]


def _list_shaped(
    store: DocumentStore,
    collection: str,
    shape: Callable[[StoredDocument], dict],
    filters: list,
    limit: Optional[str],
    q: Optional[str],
):
    try:
        docs = query_with_fallback(
            store, collection, filters=filters, limit=_parse_limit(limit)
        )
    except LookbookError as e:
        logger.exception("Failed to list %s", collection)
        return _error(500, ok=False, error=e.message)
    items = _search([shape(doc) for doc in docs], q)
    return {"ok": True, "count": len(items), "items": items}


def _get_shaped(
    store: DocumentStore,
    collection: str,
    doc_id: str,
    shape: Callable[[StoredDocument], dict],
):
    try:
        doc = store.get(collection, doc_id)
    except LookbookError as e:
        logger.exception("Failed to read %s/%s", collection, doc_id)
        return _error(400, ok=False, error=e.message)
    if doc is None:
        return _error(404, ok=False, error="Not found")
    return {"ok": True, "item": shape(doc)}


def _create_shaped(
    store: DocumentStore,
    collection: str,
    payload: dict,
    shape: Callable[[StoredDocument], dict],
):
    if not payload.get("createdAt"):
        payload["createdAt"] = now_iso()
    try:
        doc_id = store.add(collection, payload)
        doc = store.get(collection, doc_id)
    except LookbookError as e:
        logger.exception("Failed to create document in %s", collection)
        return _error(400, ok=False, error=e.message)
    if doc is None:
        return _error(404, ok=False, error="Not found")
    return JSONResponse(
        status_code=201,
        content=jsonable_encoder({"ok": True, "id": doc_id, "item": shape(doc)}),
    )


def _update_shaped(
    store: DocumentStore,
    collection: str,
    doc_id: str,
    payload: dict,
    shape: Callable[[StoredDocument], dict],
):
    try:
        store.set(collection, doc_id, payload, merge=True)
        doc = store.get(collection, doc_id)
    except LookbookError as e:
        logger.exception("Failed to update %s/%s", collection, doc_id)
        return _error(400, ok=False, error=e.message)
    if doc is None:
        return _error(404, ok=False, error="Not found")
    return {"ok": True, "id": doc_id, "item": shape(doc)}


def _delete(store: DocumentStore, collection: str, doc_id: str):
    try:
        store.delete(collection, doc_id)
    except LookbookError as e:
        logger.exception("Failed to delete %s/%s", collection, doc_id)
        return _error(400, ok=False, error=e.message)
    return {"ok": True, "id": doc_id}


# recentItems


@router.get("/recent-items")
def list_recent_items(
    limit: Optional[str] = None,
    q: Optional[str] = None,
    category: Optional[str] = None,
    saved: Optional[str] = None,
    store: DocumentStore = Depends(get_store),
):
    filters = [("category", "==", category)] if category else []
    filters += _bool_filter("isSaved", saved)
    return _list_shaped(store, RECENT_ITEMS, shape_item, filters, limit, q)


@router.get("/recent-items/{doc_id}")
def get_recent_item(doc_id: str, store: DocumentStore = Depends(get_store)):
    return _get_shaped(store, RECENT_ITEMS, doc_id, shape_item)


@router.post("/recent-items", status_code=201)
def create_recent_item(
    body: JsonBody = Body(None), store: DocumentStore = Depends(get_store)
):
    return _create_shaped(store, RECENT_ITEMS, sanitize_item(body or {}), shape_item)


@router.put("/recent-items/{doc_id}")
def update_recent_item(
    doc_id: str, body: JsonBody = Body(None), store: DocumentStore = Depends(get_store)
):
    return _update_shaped(
        store, RECENT_ITEMS, doc_id, sanitize_item(body or {}), shape_item
    )


@router.delete("/recent-items/{doc_id}")
def delete_recent_item(doc_id: str, store: DocumentStore = Depends(get_store)):
    return _delete(store, RECENT_ITEMS, doc_id)


# images


@router.get("/images")
def list_images(
    limit: Optional[str] = None,
    q: Optional[str] = None,
    category: Optional[str] = None,
    pub: Optional[str] = None,
    store: DocumentStore = Depends(get_store),
):
    filters = [("category", "==", category)] if category else []
    filters += _bool_filter("isPublic", pub)
    return _list_shaped(store, IMAGES, shape_image, filters, limit, q)


@router.get("/images/{doc_id}")
def get_image(doc_id: str, store: DocumentStore = Depends(get_store)):
    return _get_shaped(store, IMAGES, doc_id, shape_image)


@router.post("/images", status_code=201)
def create_image(body: JsonBody = Body(None), store: DocumentStore = Depends(get_store)):
    payload = sanitize_image(body or {})
    try:
        _require(payload, "title")
    except ValidationError as e:
        return _error(e.status_code, ok=False, error=e.message)
    return _create_shaped(store, IMAGES, payload, shape_image)


@router.put("/images/{doc_id}")
def update_image(
    doc_id: str, body: JsonBody = Body(None), store: DocumentStore = Depends(get_store)
):
    return _update_shaped(store, IMAGES, doc_id, sanitize_image(body or {}), shape_image)


@router.delete("/images/{doc_id}")
def delete_image(doc_id: str, store: DocumentStore = Depends(get_store)):
    return _delete(store, IMAGES, doc_id)


# categories


@router.get("/categories")
def list_categories(store: DocumentStore = Depends(get_store)):
    try:
        docs = store.query(CATEGORIES)
    except LookbookError as e:
        logger.exception("Failed to list categories")
        return _error(500, success=False, error=e.message)
    return {"success": True, "categories": [shape_category(doc) for doc in docs]}


@router.get("/categories/{doc_id}")
def get_category(doc_id: str, store: DocumentStore = Depends(get_store)):
    try:
        doc = store.get(CATEGORIES, doc_id)
    except LookbookError as e:
        logger.exception("Failed to read category %s", doc_id)
        return _error(500, success=False, error=e.message)
    if doc is None:
        return _error(404, success=False, error="Not found")
    return {"success": True, "category": shape_category(doc)}


@router.post("/categories")
def create_category(
    payload: Optional[CategoryPayload] = None,
    store: DocumentStore = Depends(get_store),
):
    if payload is None or not payload.name:
        return _error(400, success=False, error="Name is required")
    try:
        doc_id = store.add(CATEGORIES, {"name": payload.name})
    except LookbookError as e:
        logger.exception("Failed to create category")
        return _error(500, success=False, error=e.message)
    return {"success": True, "id": doc_id}


@router.put("/categories/{doc_id}")
def update_category(
    doc_id: str,
    payload: Optional[CategoryPayload] = None,
    store: DocumentStore = Depends(get_store),
):
    if payload is None or not payload.name:
        return _error(400, success=False, error="Name is required")
    try:
        store.update(CATEGORIES, doc_id, {"name": payload.name})
    except NotFoundError:
        return _error(404, success=False, error="Not found")
    except LookbookError as e:
        logger.exception("Failed to update category %s", doc_id)
        return _error(500, success=False, error=e.message)
    return {"success": True}


@router.delete("/categories/{doc_id}")
def delete_category(doc_id: str, store: DocumentStore = Depends(get_store)):
    try:
        store.delete(CATEGORIES, doc_id)
    except LookbookError as e:
        logger.exception("Failed to delete category %s", doc_id)
        return _error(500, success=False, error=e.message)
    return {"success": True}


# basics / recreate


def _group_router(collection: str) -> APIRouter:
    group_router = APIRouter()

    def get_service(store: DocumentStore = Depends(get_store)) -> GroupItemService:
        return GroupItemService(store, collection)

    @group_router.get(f"/{collection}")
    def list_groups(service: GroupItemService = Depends(get_service)):
        try:
            return service.list_groups()
        except LookbookError:
            logger.exception("Failed to list %s groups", collection)
            return _error(500, error="Fetch failed")

    @group_router.post(f"/{collection}/{{group_id}}/items")
    def append_group_item(
        group_id: str,
        body: JsonBody = Body(None),
        service: GroupItemService = Depends(get_service),
    ):
        try:
            return service.append_item(group_id, body or {})
        except LookbookError:
            logger.exception("Failed to append to %s/%s", collection, group_id)
            return _error(500, error="Create failed")

    @group_router.put(f"/{collection}/{{group_id}}/items/{{item_id}}")
    def update_group_item(
        group_id: str,
        item_id: str,
        body: JsonBody = Body(None),
        service: GroupItemService = Depends(get_service),
    ):
        try:
            return service.update_item(group_id, item_id, body or {})
        except NotFoundError as e:
            return _error(404, error=e.message)
        except LookbookError:
            logger.exception("Failed to update %s/%s/%s", collection, group_id, item_id)
            return _error(500, error="Update failed")

    @group_router.delete(f"/{collection}/{{group_id}}/items/{{item_id}}")
    def delete_group_item(
        group_id: str,
        item_id: str,
        service: GroupItemService = Depends(get_service),
    ):
        try:
            service.delete_item(group_id, item_id)
        except NotFoundError as e:
            return _error(404, error=e.message)
        except LookbookError:
            logger.exception("Failed to delete %s/%s/%s", collection, group_id, item_id)
            return _error(500, error="Delete failed")
        return {"deleted": True}

    return group_router


for _collection in GROUP_COLLECTIONS:
    router.include_router(_group_router(_collection))


# aiCards


@router.get("/aicards")
def list_ai_cards(store: DocumentStore = Depends(get_store)):
    try:
        docs = query_with_fallback(store, AI_CARDS)
    except LookbookError:
        logger.exception("Failed to list aiCards")
        return _error(500, error="Failed to fetch aiCards")
    return [shape_ai_card(doc) for doc in docs]


@router.get("/aicards/{doc_id}")
def get_ai_card(doc_id: str, store: DocumentStore = Depends(get_store)):
    try:
        doc = store.get(AI_CARDS, doc_id)
    except LookbookError:
        logger.exception("Failed to read aiCard %s", doc_id)
        return _error(500, error="Failed to fetch card")
    if doc is None:
        return _error(404, error="Not found")
    return shape_ai_card(doc)


@router.post("/aicards", status_code=201)
def create_ai_card(body: JsonBody = Body(None), store: DocumentStore = Depends(get_store)):
    payload = sanitize_ai_card_create(body or {}, store.server_timestamp())
    try:
        _require(payload, "title", "category")
    except ValidationError as e:
        return _error(e.status_code, error=e.message)
    try:
        doc_id = store.add(AI_CARDS, payload)
        doc = store.get(AI_CARDS, doc_id)
    except LookbookError:
        logger.exception("Failed to create aiCard")
        return _error(500, error="Failed to create card")
    if doc is None:
        return _error(404, error="Not found")
    return JSONResponse(status_code=201, content=jsonable_encoder(shape_ai_card(doc)))


@router.put("/aicards/{doc_id}")
def update_ai_card(
    doc_id: str, body: JsonBody = Body(None), store: DocumentStore = Depends(get_store)
):
    try:
        previous = store.get(AI_CARDS, doc_id)
        if previous is None:
            return _error(404, error="Not found")
        updates = sanitize_ai_card_update(
            body or {}, previous.get("createdAt"), store.server_timestamp()
        )
        store.set(AI_CARDS, doc_id, updates, merge=True)
        fresh = store.get(AI_CARDS, doc_id)
    except LookbookError:
        logger.exception("Failed to update aiCard %s", doc_id)
        return _error(500, error="Failed to update card")
    return shape_ai_card(fresh or previous)


@router.delete("/aicards/{doc_id}")
def delete_ai_card(doc_id: str, store: DocumentStore = Depends(get_store)):
    try:
        store.delete(AI_CARDS, doc_id)
    except LookbookError:
        logger.exception("Failed to delete aiCard %s", doc_id)
        return _error(500, error="Failed to delete card")
    return {"success": True, "id": doc_id}


# health


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(ok=True, now=now_iso())


@router.get("/test")
def test_store(store: DocumentStore = Depends(get_store)):
    try:
        docs = store.query("test", limit=1)
    except LookbookError as e:
        logger.exception("Store connectivity check failed")
        return _error(500, success=False, error=e.message)
    return {"success": True, "data": [doc.data for doc in docs]}


# passthrough


@passthrough_router.post("/addJsonData", response_model=PassthroughResponse)
def add_json_data(
    payload: Optional[AddJsonDataPayload] = None,
    store: DocumentStore = Depends(get_store),
):
    """
    Write `data` to any collection. The collection name is not checked, so
    this can overwrite documents owned by the other endpoints.
    """
    if payload is None or not payload.collection or payload.data is None:
        return _error(400, success=False, error="Collection and data are required!")
    try:
        if payload.docId and payload.docId.strip():
            doc_id = payload.docId
            store.set(payload.collection, doc_id, payload.data, merge=True)
        else:
            doc_id = store.add(payload.collection, payload.data)
    except LookbookError as e:
        logger.exception("Passthrough write to %s failed", payload.collection)
        return _error(500, success=False, error=e.message)
    logger.info("Passthrough write to %s/%s", payload.collection, doc_id)
    return PassthroughResponse(success=True, id=doc_id)


# debug / dev

SAMPLE_IMAGE = {
    "category": "hairstyle",
    "createdAt": "2025-08-10T13:19:15.486Z",
    "description": "Romantic braided crown hairstyle with soft loose curls",
    "id": "images_1754831955486_wd8d9",
    "imageUrl": "https://images.unsplash.com/photo-1522337360788-8b13dee7a37e?w=800&h=1000&fit=crop&crop=face",
    "thumbnailUrl": "https://images.unsplash.com/photo-1522337360788-8b13dee7a37e?w=400&h=500&fit=crop&crop=face",
    "isPublic": True,
    "likes": 489,
    "saves": 568,
    "shares": 145,
    "tags": ["braided crown", "romantic", "curls", "wedding", "boho"],
    "title": "Braided Crown with Loose Curls",
    "uploadDate": "2024-02-01T13:45:00Z",
    "uploadedBy": "user_001",
    "metadata": {"format": "jpg", "height": 1000, "width": 800, "size": 1345678},
}


def _peek(store: DocumentStore, collection: str):
    try:
        docs = store.query(collection, order_by=DOCUMENT_ID, direction="desc", limit=10)
    except LookbookError as e:
        logger.exception("Failed to peek at %s", collection)
        return _error(500, ok=False, error=e.message)
    items = [
        {
            "_id": doc.id,
            "createdAt": to_iso(doc.get("createdAt")),
            "category": doc.get("category") or None,
        }
        for doc in docs
    ]
    return {"ok": True, "items": items}


@debug_router.get("/debug/peek")
def peek_recent_items(store: DocumentStore = Depends(get_store)):
    return _peek(store, RECENT_ITEMS)


@debug_router.get("/debug/peek-images")
def peek_images(store: DocumentStore = Depends(get_store)):
    return _peek(store, IMAGES)


@debug_router.post("/dev/seed-image", status_code=201)
def seed_image(store: DocumentStore = Depends(get_store)):
    try:
        doc_id = store.add(IMAGES, dict(SAMPLE_IMAGE))
    except LookbookError as e:
        logger.exception("Failed to seed sample image")
        return _error(500, ok=False, error=e.message)
    return {"ok": True, "id": doc_id}
