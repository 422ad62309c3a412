"""
CrudKit — Document Transformer Unit Tests
===========================================

What:  Tests for transform_document().
How:   Plain mappings and transient ORM instances (never flushed), so no
       database is needed.

What we test:
    ✅ None in → None out
    ✅ Mapping records: `_id` → `id` (string), `__v` dropped
    ✅ ORM records: primary key → `id`, revision marker dropped, only set
       attributes included, declaration order preserved
    ✅ Foreign keys stringified; populated references embedded and transformed
"""

import uuid

from crudkit.utils.document import transform_document
from tests.models import Category, Post, User


class TestMappingRecords:

    def test_none_returns_none(self):
        assert transform_document(None) is None

    def test_internal_keys_renamed_and_dropped(self):
        doc = transform_document({"_id": 7, "__v": 3, "name": "Ada", "age": 36})
        assert doc == {"id": "7", "name": "Ada", "age": 36}
        assert "_id" not in doc
        assert "__v" not in doc

    def test_plain_id_key(self):
        assert transform_document({"id": "abc", "name": "x"}) == {"id": "abc", "name": "x"}

    def test_both_id_keys_present(self):
        """`_id` is the identifier; a stray `id` never overwrites it."""
        assert transform_document({"_id": "X", "id": "Y", "name": "Ada"}) == {"id": "X", "name": "Ada"}

    def test_uuid_values_stringified(self):
        ref = uuid.uuid4()
        doc = transform_document({"_id": 1, "author_id": ref})
        assert doc["author_id"] == str(ref)


class TestOrmRecords:

    def test_revision_marker_dropped(self):
        uid = uuid.uuid4()
        user = User(id=uid, name="Ada", email="ada@example.com", version_id=4)
        doc = transform_document(user)
        assert doc == {"id": str(uid), "name": "Ada", "email": "ada@example.com"}
        assert "version_id" not in doc

    def test_id_first_then_declaration_order(self):
        user = User(id=uuid.uuid4(), email="ada@example.com", age=36, name="Ada")
        assert list(transform_document(user)) == ["id", "name", "email", "age"]

    def test_unloaded_relationships_excluded(self):
        post = Post(id=uuid.uuid4(), title="Hello", author_id=uuid.uuid4())
        doc = transform_document(post)
        assert "author" not in doc
        assert "category" not in doc

    def test_reference_stringified(self):
        author_id = uuid.uuid4()
        post = Post(id=uuid.uuid4(), title="Hello", author_id=author_id)
        assert transform_document(post)["author_id"] == str(author_id)

    def test_populated_reference_embedded(self):
        uid, cid = uuid.uuid4(), uuid.uuid4()
        author = User(id=uid, name="Ada", email="ada@example.com", version_id=1)
        category = Category(id=cid, name="science")
        post = Post(
            id=uuid.uuid4(), title="Hello", author_id=uid, category_id=cid,
            author=author, category=category, version_id=2,
        )

        doc = transform_document(post)

        assert list(doc) == ["id", "title", "author_id", "category_id", "author", "category"]
        assert doc["author"] == {"id": str(uid), "name": "Ada", "email": "ada@example.com"}
        assert doc["category"] == {"id": str(cid), "name": "science"}
