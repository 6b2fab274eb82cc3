"""
Shaping and sanitizing of stored documents.

`shape_*` functions turn a stored document into the fully defaulted object the
API promises to clients. `sanitize_*` functions turn an untyped request body
into a partial document holding only the fields that coerced cleanly, so a
merge-write never overwrites a stored value with a default.

None of the coercions here raise: a value that cannot be coerced is omitted.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from lookbook.store import StoredDocument

logger = logging.getLogger(__name__)

Payload = Mapping[str, Any]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

ITEM_TEXT_FIELDS = (
    "category",
    "description",
    "image",
    "thumbnail",
    "instagramUrl",
    "uploadDate",
    "title",
)
IMAGE_TEXT_FIELDS = (
    "category",
    "createdAt",
    "description",
    "title",
    "imageUrl",
    "uploadDate",
    "uploadedBy",
)
STAT_FIELDS = ("views", "saves", "shares")
IMAGE_COUNTER_FIELDS = ("likes", "saves", "shares", "views")
IMAGE_METADATA_NUMBERS = ("size", "width", "height")
PRODUCT_TEXT_FIELDS = ("brand", "name", "image", "link", "price")
AI_CARD_TEXT_FIELDS = ("title", "image", "prompt", "link", "gender", "category")
DEFAULT_GENDER = "Unisex"


def _format_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{value.microsecond // 1000:03d}Z"


def now_iso() -> str:
    return _format_iso(datetime.now(timezone.utc))


def to_iso(value: Any) -> Optional[str]:
    """
    Coerce a stored timestamp to ISO-8601 text.

    Accepts text (returned as is), datetimes (including Firestore's
    DatetimeWithNanoseconds), objects exposing a datetime conversion, and
    `{seconds, nanoseconds}` pairs. Anything else, or any failure, gives None.
    """
    if not value:
        return None
    try:
        if isinstance(value, str):
            return value
        if isinstance(value, datetime):
            return _format_iso(value)
        for name in ("to_datetime", "ToDatetime"):
            convert = getattr(value, name, None)
            if callable(convert):
                return _format_iso(convert())
        if isinstance(value, Mapping):
            seconds = value.get("seconds", value.get("_seconds"))
            nanos = value.get("nanoseconds", value.get("_nanoseconds"))
        else:
            seconds = getattr(value, "seconds", None)
            nanos = getattr(value, "nanos", getattr(value, "nanoseconds", None))
        if seconds is not None:
            millis = round(float(seconds) * 1000) + int(float(nanos or 0) // 1_000_000)
            return _format_iso(_EPOCH + timedelta(milliseconds=millis))
    except Exception:
        logger.debug("Could not coerce %r to an ISO timestamp", value, exc_info=True)
    return None


def as_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def as_bool(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def num_or_none(value: Any) -> Optional[float]:
    """Parse a finite number; integral results come back as int."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def norm_tags(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        entries = [str(tag) for tag in value if tag is not None]
    elif isinstance(value, str):
        entries = value.split(",")
    else:
        return []
    return [tag.strip() for tag in entries if tag.strip()]


def _text(value: Any) -> str:
    return as_string(value) if value else ""


def _compact(values: dict) -> dict:
    return {key: value for key, value in values.items() if value is not None}


def _trimmed(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def norm_products(value: Any) -> list[dict]:
    """Keep the coercible fields of each product; drop entries left empty."""
    if not isinstance(value, list):
        return []
    products = []
    for entry in value:
        if not isinstance(entry, Mapping):
            continue
        product = {"id": num_or_none(entry.get("id"))}
        for key in PRODUCT_TEXT_FIELDS:
            product[key] = as_string(entry.get(key))
        product = _compact(product)
        if product:
            products.append(product)
    return products


def shape_item(doc: StoredDocument) -> dict:
    data = doc.data or {}
    content = data.get("content")
    content = dict(content) if isinstance(content, Mapping) else {}
    content["products"] = norm_products(content.get("products"))
    tags = data.get("tags")

    shaped = {"_id": doc.id}
    for key in ITEM_TEXT_FIELDS:
        shaped[key] = _text(data.get(key))
    shaped.update(
        {
            "isSaved": bool(data.get("isSaved")),
            "tags": tags if isinstance(tags, list) else norm_tags(tags),
            "createdAt": to_iso(data.get("createdAt")),
            "content": content,
        }
    )
    if isinstance(data.get("id"), str):
        shaped["id"] = data["id"]
    stats = data.get("stats")
    if isinstance(stats, Mapping):
        shaped["stats"] = _compact({key: num_or_none(stats.get(key)) for key in STAT_FIELDS})
    return shaped


def sanitize_item(body: Payload) -> dict:
    body = body if isinstance(body, Mapping) else {}
    out: dict[str, Any] = {}

    def put(key: str, value: Any) -> None:
        if value is not None:
            out[key] = value

    for key in ITEM_TEXT_FIELDS:
        put(key, as_string(body.get(key)))
    put("isSaved", as_bool(body.get("isSaved")))
    if body.get("tags") is not None:
        put("tags", norm_tags(body.get("tags")))
    put("id", _trimmed(body.get("id")))
    put("createdAt", _trimmed(body.get("createdAt")))

    raw_content = body.get("content")
    content = dict(raw_content) if isinstance(raw_content, Mapping) else {}
    if isinstance(content.get("products"), list):
        content["products"] = norm_products(content["products"])
    elif isinstance(body.get("products"), list):
        # Legacy clients send products at the top level.
        content["products"] = norm_products(body["products"])
    elif "products" in content:
        content["products"] = []
    if content:
        out["content"] = content

    stats = body.get("stats")
    if isinstance(stats, Mapping):
        put("stats", _compact({key: num_or_none(stats.get(key)) for key in STAT_FIELDS}) or None)
    return out


def shape_image(doc: StoredDocument) -> dict:
    data = doc.data or {}
    meta = data.get("metadata")
    meta = meta if isinstance(meta, Mapping) else {}
    tags = data.get("tags")

    shaped = {
        "_id": doc.id,
        "category": _text(data.get("category")),
        "createdAt": to_iso(data.get("createdAt")),
        "description": _text(data.get("description")),
        "title": _text(data.get("title")),
        "imageUrl": _text(data.get("imageUrl")),
        "thumbnailUrl": _text(data.get("thumbnailUrl") or data.get("imageUrl")),
        "uploadDate": _text(data.get("uploadDate")),
        "isPublic": bool(data.get("isPublic")),
        "uploadedBy": _text(data.get("uploadedBy")),
        "tags": tags if isinstance(tags, list) else norm_tags(tags),
    }
    if isinstance(data.get("id"), str):
        shaped["id"] = data["id"]
    for key in IMAGE_COUNTER_FIELDS:
        shaped[key] = max(num_or_none(data.get(key)) or 0, 0)
    metadata = {"format": _text(meta.get("format"))}
    for key in IMAGE_METADATA_NUMBERS:
        metadata[key] = num_or_none(meta.get(key))
    shaped["metadata"] = _compact(metadata)
    return shaped


def sanitize_image(body: Payload) -> dict:
    body = body if isinstance(body, Mapping) else {}
    out: dict[str, Any] = {}

    def put(key: str, value: Any) -> None:
        if value is not None:
            out[key] = value

    for key in IMAGE_TEXT_FIELDS:
        put(key, as_string(body.get(key)))
    put("id", _trimmed(body.get("id")))
    thumbnail = body.get("thumbnailUrl")
    put("thumbnailUrl", as_string(thumbnail if thumbnail is not None else body.get("imageUrl")))
    put("isPublic", as_bool(body.get("isPublic")))
    for key in IMAGE_COUNTER_FIELDS:
        put(key, num_or_none(body.get(key)))
    if body.get("tags") is not None:
        put("tags", norm_tags(body.get("tags")))

    meta = body.get("metadata")
    if isinstance(meta, Mapping):
        metadata = {}
        if isinstance(meta.get("format"), str):
            metadata["format"] = meta["format"]
        for key in IMAGE_METADATA_NUMBERS:
            metadata[key] = num_or_none(meta.get(key))
        put("metadata", _compact(metadata) or None)
    return out


def shape_ai_card(doc: StoredDocument) -> dict:
    data = doc.data or {}
    return {
        "id": doc.id,
        "title": _text(data.get("title")),
        "image": _text(data.get("image") or data.get("imageUrl")),
        "prompt": _text(data.get("prompt")),
        "link": _text(data.get("link")),
        "gender": _text(data.get("gender")) or DEFAULT_GENDER,
        # Cards created before categories existed are keyed by category.
        "category": _text(data.get("category")) or doc.id,
        "createdAt": to_iso(data.get("createdAt")),
    }


def sanitize_ai_card_create(body: Payload, server_timestamp: Any) -> dict:
    body = body if isinstance(body, Mapping) else {}
    return {
        "title": _text(body.get("title")),
        "image": _text(body.get("image")),
        "prompt": _text(body.get("prompt")),
        "link": _text(body.get("link")),
        "gender": _text(body.get("gender")) or DEFAULT_GENDER,
        "category": _text(body.get("category")).strip(),
        "createdAt": server_timestamp,
    }


def sanitize_ai_card_update(
    body: Payload, previous_created_at: Any, server_timestamp: Any
) -> dict:
    """Partial update; createdAt is carried over and never taken from the body."""
    body = body if isinstance(body, Mapping) else {}
    updates = {
        key: as_string(body[key])
        for key in AI_CARD_TEXT_FIELDS
        if body.get(key) is not None
    }
    updates["createdAt"] = previous_created_at or server_timestamp
    return updates


def shape_category(doc: StoredDocument) -> dict:
    return {"id": doc.id, **(doc.data or {})}


def shape_group(doc: StoredDocument) -> dict:
    return {"id": doc.id, **(doc.data or {})}
