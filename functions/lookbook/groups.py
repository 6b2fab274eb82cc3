"""
Item lists embedded in group documents ("basics" and "recreate").

Appends go through the store's atomic array-union and are safe under
concurrent callers. Updates and deletes read the whole `items` list, change it
and write it back, so concurrent writers to the same group race and the last
write wins. There is no version check.

Generated item ids are unique. An `id` supplied by the caller is stored as
given and is not checked against the group, so callers that pick their own
ids must keep them unique. A duplicate is appended as a second item, and
update and delete then act on the first match and on every match.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Mapping, Optional

from lookbook.errors import NotFoundError
from lookbook.normalize import shape_group
from lookbook.store import DocumentStore

logger = logging.getLogger(__name__)

GROUP_COLLECTIONS = ("basics", "recreate")


class ItemIdGenerator:
    """Millisecond clock tokens, strictly increasing within this process."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            self._last = max(int(self._clock() * 1000), self._last + 1)
            return str(self._last)


default_id_generator = ItemIdGenerator()


class GroupItemService:
    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        id_generator: Optional[Callable[[], str]] = None,
    ):
        self.store = store
        self.collection = collection
        self._next_id = id_generator or default_id_generator

    def list_groups(self) -> list[dict]:
        return [shape_group(doc) for doc in self.store.query(self.collection)]

    def append_item(self, group_id: str, payload: Mapping[str, Any]) -> dict:
        item = {**payload, "id": payload.get("id") or self._next_id()}
        # Create the group if needed without touching an existing items list.
        self.store.set(self.collection, group_id, {}, merge=True)
        self.store.update(
            self.collection, group_id, {"items": self.store.array_union(item)}
        )
        logger.info("Appended item %s to %s/%s", item["id"], self.collection, group_id)
        return item

    def _load_items(self, group_id: str) -> list:
        group = self.store.get(self.collection, group_id)
        if group is None:
            raise NotFoundError("Group not found")
        items = group.get("items")
        return list(items) if isinstance(items, list) else []

    def update_item(
        self, group_id: str, item_id: str, payload: Mapping[str, Any]
    ) -> dict:
        """Shallow-merge `payload` onto the item, keeping its position."""
        items = self._load_items(group_id)
        for index, item in enumerate(items):
            if isinstance(item, Mapping) and item.get("id") == item_id:
                break
        else:
            raise NotFoundError("Item not found")
        items[index] = {**items[index], **payload}
        self.store.update(self.collection, group_id, {"items": items})
        return items[index]

    def delete_item(self, group_id: str, item_id: str) -> None:
        items = self._load_items(group_id)
        remaining = [
            item
            for item in items
            if not (isinstance(item, Mapping) and item.get("id") == item_id)
        ]
        self.store.update(self.collection, group_id, {"items": remaining})
        if len(remaining) != len(items):
            logger.info("Deleted item %s from %s/%s", item_id, self.collection, group_id)
