"""
Unit tests for the document codec.
"""

import json
from dataclasses import dataclass, field
from typing import List, Optional

import pytest

from couchdb_client.document import Attachment, CouchDoc, Document, decode, dumps, encode
from couchdb_client.errors import EncodingError
from couchdb_client.models import DesignDocument, DesignDocumentView, User, new_user


@dataclass
class DummyDocument:
    document: Document = field(default_factory=Document)
    foo: str = ""
    beep: str = ""

    def get_document(self) -> Document:
        return self.document


@dataclass
class Person:
    document: Document = field(default_factory=Document)
    type: str = "person"
    name: str = ""
    age: float = 0
    tags: List[str] = field(default_factory=list)
    nickname: Optional[str] = None

    def get_document(self) -> Document:
        return self.document


class TestEncode:
    """Test dataclass -> JSON encoding."""

    def test_new_document_has_no_identity_fields(self):
        assert encode(DummyDocument(foo="bar", beep="bopp")) == {"foo": "bar", "beep": "bopp"}

    def test_identity_fields_are_flattened(self):
        doc = DummyDocument(document=Document(id="testid", revision="1-abc"), foo="bar")
        assert encode(doc) == {"_id": "testid", "_rev": "1-abc", "foo": "bar", "beep": ""}

    def test_attachments_are_encoded(self):
        doc = DummyDocument(document=Document(
            id="testid",
            attachments={"dog.jpg": Attachment(follows=True, content_type="image/jpeg", length=12)},
        ))
        assert encode(doc)["_attachments"] == {
            "dog.jpg": {"content_type": "image/jpeg", "length": 12, "follows": True},
        }

    def test_attachment_stub_drops_follows(self):
        att = Attachment(content_type="image/jpeg", length=12, stub=True, revpos=1, digest="md5-x")
        assert encode(att) == {
            "content_type": "image/jpeg", "length": 12, "stub": True, "digest": "md5-x", "revpos": 1,
        }

    def test_none_values_are_dropped(self):
        assert "nickname" not in encode(Person(name="John"))

    def test_design_document(self):
        design = DesignDocument(
            document=Document(id="_design/test"),
            views={"foo": DesignDocumentView(map="function(doc) { emit(doc.foo); }")},
        )
        assert encode(design) == {
            "_id": "_design/test",
            "language": "javascript",
            "views": {"foo": {"map": "function(doc) { emit(doc.foo); }"}},
        }

    def test_user_roles_always_sent(self):
        encoded = encode(new_user("john", "password"))
        assert encoded["_id"] == "org.couchdb.user:john"
        assert encoded["roles"] == []
        assert encoded["type"] == "user"
        assert "salt" not in encoded

    def test_dumps_returns_json_bytes(self):
        doc = DummyDocument(document=Document(id="x"), foo="bar")
        assert json.loads(dumps(doc)) == {"_id": "x", "foo": "bar", "beep": ""}

    def test_dumps_unserializable_value(self):
        doc = DummyDocument(foo=object())
        with pytest.raises(EncodingError):
            dumps(doc)


class TestDecode:
    """Test JSON -> dataclass decoding."""

    def test_identity_fields_round_trip(self):
        doc = DummyDocument(
            document=Document(
                id="testid",
                revision="2-def",
                attachments={"a.txt": Attachment(content_type="text/plain", length=3, stub=True, revpos=2)},
            ),
            foo="bar",
            beep="bopp",
        )
        decoded = decode(DummyDocument, json.loads(dumps(doc)))
        assert decoded.document == doc.document
        assert decoded == doc

    def test_plain_document_round_trip(self):
        doc = Document(id="x", revision="1-a")
        assert decode(Document, encode(doc)) == doc

    def test_unknown_fields_are_ignored(self):
        decoded = decode(DummyDocument, {"_id": "a", "_rev": "1-x", "foo": "f", "other": 1})
        assert decoded.foo == "f"
        assert decoded.get_document().id == "a"
        assert decoded.get_document().revision == "1-x"

    def test_nested_types(self):
        data = {
            "_id": "_design/person",
            "_rev": "1-a",
            "language": "javascript",
            "views": {"ageByGender": {"map": "m", "reduce": "r"}},
        }
        design = decode(DesignDocument, data)
        assert design.views["ageByGender"] == DesignDocumentView(map="m", reduce="r")
        assert design.name == "person"

    def test_list_fields(self):
        person = decode(Person, {"name": "Lily", "age": 20, "tags": ["a", "b"]})
        assert person.tags == ["a", "b"]
        assert person.get_document() == Document()

    def test_user_from_server(self):
        user = decode(User, {
            "_id": "org.couchdb.user:john",
            "_rev": "1-a",
            "name": "john",
            "roles": [],
            "type": "user",
            "password_scheme": "pbkdf2",
            "iterations": 10,
            "derived_key": "abc",
            "salt": "def",
        })
        assert user.iterations == 10
        assert user.document.id == "org.couchdb.user:john"

    def test_non_object_rejected(self):
        with pytest.raises(TypeError):
            decode(DummyDocument, ["not", "an", "object"])


class TestCouchDocCapability:
    """Test the get_document() capability."""

    def test_document_returns_itself(self):
        doc = Document(id="a")
        assert doc.get_document() is doc

    def test_composed_documents_satisfy_protocol(self):
        assert isinstance(DummyDocument(), CouchDoc)
        assert isinstance(DesignDocument(), CouchDoc)
        assert isinstance(Document(), CouchDoc)

    def test_embedded_document_is_returned_by_reference(self):
        doc = DummyDocument()
        doc.get_document().revision = "3-c"
        assert doc.document.revision == "3-c"
