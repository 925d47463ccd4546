"""
Document Codec

Base document types and the generic dataclass <-> JSON codec.

Every concrete document type is a dataclass that composes a ``Document``
field and exposes it through ``get_document()``. The codec flattens the
embedded Document into the top level of the JSON object (``_id``, ``_rev``,
``_attachments``) and routes those keys back into it when decoding, so the
generic layer never needs to know about the concrete type's own fields.

Example:

    @dataclass
    class Animal:
        document: Document = field(default_factory=Document)
        animal: str = ""
        owner: str = ""

        def get_document(self) -> Document:
            return self.document
"""
import json
import logging
import typing
from dataclasses import dataclass, field, fields, is_dataclass, MISSING
from typing import Any, Dict, Optional, Protocol, Type, TypeVar, runtime_checkable

from .errors import EncodingError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def json_field(name: Optional[str] = None, omitempty: bool = False, default: Any = MISSING,
               default_factory: Any = MISSING) -> Any:
    """
    Declare a dataclass field with its JSON name and omitempty behaviour.

    Args:
        name: JSON key when it differs from the attribute name
        omitempty: Drop the key from encoded output when the value is empty
        default: Field default
        default_factory: Field default factory
    """
    metadata = {"omitempty": omitempty}
    if name:
        metadata["json"] = name
    if default_factory is not MISSING:
        return field(default_factory=default_factory, metadata=metadata)
    if default is MISSING:
        default = None
    return field(default=default, metadata=metadata)


@dataclass
class Attachment:
    """Attachment metadata as stored in a document's ``_attachments`` map."""
    content_type: str = ""
    length: int = 0
    follows: bool = json_field(omitempty=True, default=False)  # body sent as a multipart part
    stub: Optional[bool] = None
    digest: Optional[str] = None
    revpos: Optional[int] = None
    data: Optional[str] = None  # inline base64
    encoding: Optional[str] = None
    encoded_length: Optional[int] = None


@dataclass
class Document:
    """Identity record shared by every CouchDB document."""
    id: str = json_field("_id", omitempty=True, default="")
    revision: str = json_field("_rev", omitempty=True, default="")
    attachments: Dict[str, Attachment] = json_field("_attachments", omitempty=True, default_factory=dict)

    def get_document(self) -> "Document":
        return self


@runtime_checkable
class CouchDoc(Protocol):
    """Anything that can hand out its embedded Document by reference."""

    def get_document(self) -> Document:
        ...


def _json_name(f) -> str:
    return f.metadata.get("json", f.name)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value is False or value == 0 or value == {} or value == []


def encode(value: Any) -> Any:
    """
    Convert a dataclass (or nested containers of them) into JSON-ready data.

    An embedded Document is flattened into the enclosing object. ``None``
    values are always dropped; ``omitempty`` fields are dropped when empty.
    """
    if is_dataclass(value) and not isinstance(value, type):
        out: Dict[str, Any] = {}
        for f in fields(value):
            item = getattr(value, f.name)
            if isinstance(item, Document) and not isinstance(value, Document):
                out.update(encode(item))
                continue
            if item is None:
                continue
            if f.metadata.get("omitempty") and _is_empty(item):
                continue
            out[_json_name(f)] = encode(item)
        return out
    if isinstance(value, dict):
        return {key: encode(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [encode(item) for item in value]
    return value


def _convert(hint: Any, value: Any) -> Any:
    if value is None:
        return None
    origin = typing.get_origin(hint)
    args = typing.get_args(hint)
    if origin is typing.Union:
        for arg in args:
            if arg is not type(None):
                return _convert(arg, value)
        return value
    if origin in (list, typing.List) and isinstance(value, list):
        item_hint = args[0] if args else Any
        return [_convert(item_hint, item) for item in value]
    if origin in (dict, typing.Dict) and isinstance(value, dict):
        item_hint = args[1] if len(args) == 2 else Any
        return {key: _convert(item_hint, item) for key, item in value.items()}
    if isinstance(hint, type) and is_dataclass(hint) and isinstance(value, dict):
        return decode(hint, value)
    return value


def decode(cls: Type[T], data: Dict[str, Any]) -> T:
    """
    Build a dataclass instance of ``cls`` from decoded JSON.

    Keys are matched by JSON name; unknown keys are ignored. The identity keys
    (``_id``, ``_rev``, ``_attachments``) fill the embedded Document field.

    Raises:
        TypeError: If ``cls`` is not a dataclass or ``data`` is not an object
    """
    if not is_dataclass(cls):
        raise TypeError(f"{cls!r} is not a dataclass")
    if not isinstance(data, dict):
        raise TypeError(f"expected a JSON object for {cls.__name__}, got {type(data).__name__}")

    hints = typing.get_type_hints(cls)
    kwargs: Dict[str, Any] = {}
    for f in fields(cls):
        if not f.init:
            continue
        hint = hints.get(f.name, Any)
        embedded = typing.get_origin(hint) is None and isinstance(hint, type) and issubclass(hint, Document)
        if embedded and not issubclass(cls, Document):
            kwargs[f.name] = decode(hint, data)
            continue
        key = _json_name(f)
        if key in data:
            kwargs[f.name] = _convert(hint, data[key])
    return cls(**kwargs)


def dumps(value: Any) -> bytes:
    """
    Serialize a document (or any encodable value) to UTF-8 JSON bytes.

    Raises:
        EncodingError: If the value cannot be serialized
    """
    try:
        return json.dumps(encode(value)).encode("utf-8")
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to serialize {type(value).__name__}: {e}")
        raise EncodingError(f"cannot serialize {type(value).__name__}: {e}") from e
