import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from lookbook.normalize import (
    as_bool,
    as_string,
    norm_products,
    norm_tags,
    num_or_none,
    sanitize_ai_card_create,
    sanitize_ai_card_update,
    sanitize_image,
    sanitize_item,
    shape_ai_card,
    shape_image,
    shape_item,
    to_iso,
)
from lookbook.store import InMemoryDocumentStore, StoredDocument


class ToIsoTests(unittest.TestCase):
    def test_text_passes_through(self):
        self.assertEqual(to_iso("2024-02-01T13:45:00Z"), "2024-02-01T13:45:00Z")

    def test_aware_datetime(self):
        value = datetime(2025, 8, 10, 13, 19, 15, 486123, tzinfo=timezone.utc)
        self.assertEqual(to_iso(value), "2025-08-10T13:19:15.486Z")

    def test_naive_datetime_is_treated_as_utc(self):
        self.assertEqual(
            to_iso(datetime(2025, 8, 10, 13, 19, 15)), "2025-08-10T13:19:15.000Z"
        )

    def test_offset_datetime_is_converted_to_utc(self):
        value = datetime(2025, 8, 10, 15, 0, tzinfo=timezone(timedelta(hours=2)))
        self.assertEqual(to_iso(value), "2025-08-10T13:00:00.000Z")

    def test_seconds_nanoseconds_pair(self):
        value = {"seconds": 1754831955, "nanoseconds": 486000000}
        self.assertEqual(to_iso(value), "2025-08-10T13:19:15.486Z")

    def test_serialized_admin_timestamp(self):
        value = {"_seconds": 1754831955, "_nanoseconds": 0}
        self.assertEqual(to_iso(value), "2025-08-10T13:19:15.000Z")

    def test_object_with_seconds_and_nanos(self):
        value = SimpleNamespace(seconds=1754831955, nanos=486999999)
        self.assertEqual(to_iso(value), "2025-08-10T13:19:15.486Z")

    def test_object_with_datetime_conversion(self):
        class Stamp:
            def to_datetime(self):
                return datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        self.assertEqual(to_iso(Stamp()), "2024-01-02T03:04:05.000Z")

    def test_failures_return_none(self):
        class Broken:
            def to_datetime(self):
                raise RuntimeError("boom")

        for value in (None, "", {}, 0, 12345, {"seconds": "abc"}, Broken()):
            with self.subTest(value=value):
                self.assertIsNone(to_iso(value))
        self.assertIsNone(to_iso({"seconds": float("inf")}))


class CoercionTests(unittest.TestCase):
    def test_as_string(self):
        self.assertIsNone(as_string(None))
        self.assertEqual(as_string(5), "5")
        self.assertEqual(as_string(2.0), "2")
        self.assertEqual(as_string(2.5), "2.5")
        self.assertEqual(as_string(True), "true")
        self.assertEqual(as_string(""), "")

    def test_as_bool_only_accepts_booleans(self):
        self.assertIs(as_bool(False), False)
        self.assertIsNone(as_bool("true"))
        self.assertIsNone(as_bool(1))

    def test_num_or_none(self):
        self.assertEqual(num_or_none("12"), 12)
        self.assertEqual(num_or_none(" 3.5 "), 3.5)
        self.assertEqual(num_or_none(4.0), 4)
        self.assertIsInstance(num_or_none(4.0), int)
        self.assertEqual(num_or_none(True), 1)
        self.assertEqual(num_or_none(0), 0)
        for value in (None, "", "  ", "abc", float("nan"), float("inf"), [1], {}):
            with self.subTest(value=value):
                self.assertIsNone(num_or_none(value))

    def test_norm_tags(self):
        self.assertEqual(norm_tags(" a, b ,,c "), ["a", "b", "c"])
        self.assertEqual(norm_tags([" x ", "", 3, None]), ["x", "3"])
        self.assertEqual(norm_tags(None), [])
        self.assertEqual(norm_tags(5), [])

    def test_norm_products(self):
        products = norm_products(
            [
                {"id": "7", "brand": "B", "price": 12.5, "link": None},
                {},
                "junk",
                {"id": "not-a-number", "name": None},
                {"name": "Serum"},
            ]
        )
        self.assertEqual(
            products,
            [{"id": 7, "brand": "B", "price": "12.5"}, {"name": "Serum"}],
        )
        self.assertEqual(norm_products(None), [])
        self.assertEqual(norm_products({"id": 1}), [])


class ShapeItemTests(unittest.TestCase):
    def test_empty_document_is_fully_defaulted(self):
        shaped = shape_item(StoredDocument(id="abc", data={}))
        self.assertEqual(
            shaped,
            {
                "_id": "abc",
                "category": "",
                "description": "",
                "image": "",
                "thumbnail": "",
                "instagramUrl": "",
                "uploadDate": "",
                "title": "",
                "isSaved": False,
                "tags": [],
                "createdAt": None,
                "content": {"products": []},
            },
        )

    def test_products_always_a_list(self):
        for content in (None, "text", {"products": "bad", "note": "x"}, {"note": "x"}):
            with self.subTest(content=content):
                shaped = shape_item(StoredDocument(id="a", data={"content": content}))
                self.assertEqual(shaped["content"]["products"], [])

    def test_keeps_extra_content_and_numeric_stats(self):
        shaped = shape_item(
            StoredDocument(
                id="a",
                data={
                    "id": "ext-1",
                    "tags": "one, two",
                    "content": {"caption": "hi", "products": [{"id": 1}]},
                    "stats": {"views": "10", "saves": "x"},
                },
            )
        )
        self.assertEqual(shaped["id"], "ext-1")
        self.assertEqual(shaped["tags"], ["one", "two"])
        self.assertEqual(shaped["content"], {"caption": "hi", "products": [{"id": 1}]})
        self.assertEqual(shaped["stats"], {"views": 10})

    def test_non_text_external_id_is_omitted(self):
        shaped = shape_item(StoredDocument(id="a", data={"id": 42}))
        self.assertNotIn("id", shaped)


class SanitizeItemTests(unittest.TestCase):
    def test_only_present_fields_are_written(self):
        self.assertEqual(sanitize_item({"title": "T"}), {"title": "T"})
        self.assertEqual(sanitize_item({}), {})
        self.assertEqual(sanitize_item(None), {})

    def test_invalid_values_are_omitted(self):
        out = sanitize_item(
            {"isSaved": "yes", "id": "   ", "createdAt": 5, "stats": {"views": "x"}}
        )
        self.assertEqual(out, {})

    def test_coercions(self):
        out = sanitize_item(
            {
                "title": 12,
                "isSaved": True,
                "tags": "a, b",
                "id": " ext-1 ",
                "createdAt": " 2024-01-01T00:00:00.000Z ",
                "stats": {"views": "3", "saves": None, "shares": 1},
            }
        )
        self.assertEqual(
            out,
            {
                "title": "12",
                "isSaved": True,
                "tags": ["a", "b"],
                "id": "ext-1",
                "createdAt": "2024-01-01T00:00:00.000Z",
                "stats": {"views": 3, "shares": 1},
            },
        )

    def test_content_products_are_normalized(self):
        out = sanitize_item(
            {"content": {"caption": "c", "products": [{"id": "2", "name": "N"}, {}]}}
        )
        self.assertEqual(
            out["content"], {"caption": "c", "products": [{"id": 2, "name": "N"}]}
        )

    def test_legacy_top_level_products(self):
        out = sanitize_item({"products": [{"brand": "B"}]})
        self.assertEqual(out["content"], {"products": [{"brand": "B"}]})

    def test_malformed_products_become_empty_list(self):
        out = sanitize_item({"content": {"products": "bad"}})
        self.assertEqual(out["content"], {"products": []})

    def test_content_without_products_does_not_touch_products(self):
        out = sanitize_item({"content": {"caption": "c"}})
        self.assertEqual(out["content"], {"caption": "c"})


class ImageTests(unittest.TestCase):
    def test_counters_default_to_zero_on_read(self):
        shaped = shape_image(StoredDocument(id="img", data={"likes": -3, "views": "7"}))
        self.assertEqual(shaped["likes"], 0)
        self.assertEqual(shaped["saves"], 0)
        self.assertEqual(shaped["shares"], 0)
        self.assertEqual(shaped["views"], 7)
        self.assertEqual(shaped["metadata"], {"format": ""})
        self.assertEqual(shaped["tags"], [])
        self.assertFalse(shaped["isPublic"])

    def test_thumbnail_falls_back_to_image_url_on_read(self):
        shaped = shape_image(StoredDocument(id="img", data={"imageUrl": "http://a/b.jpg"}))
        self.assertEqual(shaped["thumbnailUrl"], "http://a/b.jpg")

    def test_metadata_numbers_only_when_numeric(self):
        shaped = shape_image(
            StoredDocument(
                id="img", data={"metadata": {"format": "jpg", "width": "800", "size": "?"}}
            )
        )
        self.assertEqual(shaped["metadata"], {"format": "jpg", "width": 800})

    def test_sanitize_defaults_thumbnail_and_skips_counters(self):
        out = sanitize_image({"title": "X", "imageUrl": "http://a/b.jpg"})
        self.assertEqual(
            out,
            {"title": "X", "imageUrl": "http://a/b.jpg", "thumbnailUrl": "http://a/b.jpg"},
        )

    def test_sanitize_explicit_thumbnail_wins(self):
        out = sanitize_image({"imageUrl": "big.jpg", "thumbnailUrl": "small.jpg"})
        self.assertEqual(out["thumbnailUrl"], "small.jpg")

    def test_sanitize_drops_invalid_fields(self):
        out = sanitize_image(
            {
                "likes": "bad",
                "views": "4",
                "isPublic": "yes",
                "metadata": {"format": 5, "height": "tall"},
            }
        )
        self.assertEqual(out, {"views": 4})


class IdempotenceTests(unittest.TestCase):
    ITEM = {
        "title": "Look",
        "description": "Desc",
        "category": "hair",
        "image": "img.jpg",
        "thumbnail": "thumb.jpg",
        "instagramUrl": "https://instagram.com/p/1",
        "uploadDate": "2024-01-01",
        "isSaved": True,
        "tags": ["a", "b"],
        "id": "ext-1",
        "createdAt": "2025-01-01T00:00:00.000Z",
        "content": {
            "caption": "hi",
            "products": [
                {"id": 1, "brand": "B", "name": "N", "image": "p.jpg", "link": "l", "price": "9"}
            ],
        },
        "stats": {"views": 3, "saves": 2, "shares": 1},
    }
    IMAGE = {
        "category": "hairstyle",
        "createdAt": "2025-08-10T13:19:15.486Z",
        "description": "Braids",
        "title": "Crown",
        "id": "img-1",
        "imageUrl": "big.jpg",
        "thumbnailUrl": "small.jpg",
        "uploadDate": "2024-02-01T13:45:00Z",
        "isPublic": True,
        "likes": 1,
        "saves": 2,
        "shares": 3,
        "views": 4,
        "uploadedBy": "user_001",
        "tags": ["braids"],
        "metadata": {"format": "jpg", "size": 10, "width": 800, "height": 1000},
    }

    def _assert_fixed_point(self, collection, data, shape, sanitize):
        store = InMemoryDocumentStore()
        store.set(collection, "doc", data, merge=False)
        first = sanitize(shape(store.get(collection, "doc")))
        store.set(collection, "doc", first, merge=True)
        second = sanitize(shape(store.get(collection, "doc")))
        self.assertEqual(first, second)
        stored = store.get(collection, "doc").data
        for key, value in data.items():
            self.assertEqual(stored[key], value, key)

    def test_item(self):
        self._assert_fixed_point("recentItems", self.ITEM, shape_item, sanitize_item)

    def test_image(self):
        self._assert_fixed_point("images", self.IMAGE, shape_image, sanitize_image)

    def test_sparse_documents_converge(self):
        store = InMemoryDocumentStore()
        store.set("images", "doc", {"title": "only"}, merge=False)
        first = sanitize_image(shape_image(store.get("images", "doc")))
        store.set("images", "doc", first)
        second = sanitize_image(shape_image(store.get("images", "doc")))
        self.assertEqual(first, second)


class AiCardTests(unittest.TestCase):
    def test_shape_defaults(self):
        shaped = shape_ai_card(StoredDocument(id="Braids", data={"imageUrl": "legacy.jpg"}))
        self.assertEqual(
            shaped,
            {
                "id": "Braids",
                "title": "",
                "image": "legacy.jpg",
                "prompt": "",
                "link": "",
                "gender": "Unisex",
                "category": "Braids",
                "createdAt": None,
            },
        )

    def test_create_never_accepts_client_created_at(self):
        marker = object()
        out = sanitize_ai_card_create(
            {"title": "T", "category": " hair ", "createdAt": "1999-01-01"}, marker
        )
        self.assertIs(out["createdAt"], marker)
        self.assertEqual(out["category"], "hair")
        self.assertEqual(out["gender"], "Unisex")

    def test_update_preserves_previous_created_at(self):
        previous = datetime(2024, 1, 1, tzinfo=timezone.utc)
        out = sanitize_ai_card_update({"createdAt": "x"}, previous, object())
        self.assertEqual(out, {"createdAt": previous})

    def test_update_without_previous_uses_server_timestamp(self):
        marker = object()
        out = sanitize_ai_card_update({"title": 3, "link": None}, None, marker)
        self.assertEqual(out, {"title": "3", "createdAt": marker})


if __name__ == "__main__":
    unittest.main()
