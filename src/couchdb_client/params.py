"""
View query parameters and CouchDB's query-string quoting rules.

CouchDB matches view keys by JSON equality, so key parameters must be sent
as JSON literals: a bare string key has to be quoted, a number or a composite
array key must not be. ``quote_value`` is the one place this heuristic lives.

Known limitation: a string that looks numeric (``"2020"``) cannot be told
apart from the number 2020 and is sent unquoted. Pass a pre-quoted literal
(``'"2020"'``) or supply your own ``quote`` callable to override.
"""
import re
import json
import logging
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

from .errors import EncodingError

logger = logging.getLogger(__name__)

# Parameters whose values are JSON keys (possibly composite)
KEY_PARAMS = frozenset(["key", "startkey", "endkey"])

# String parameters CouchDB reads as plain text, not JSON
RAW_PARAMS = frozenset(["stale", "startkey_docid", "endkey_docid"])

# JSON number grammar (RFC 8259); no NaN, Infinity, "+", "_" or padding
_JSON_NUMBER = re.compile(r"-?(0|[1-9][0-9]*)(\.[0-9]+)?([eE][+-]?[0-9]+)?")


def _is_number(text: str) -> bool:
    return _JSON_NUMBER.fullmatch(text) is not None


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def _is_json_literal(text: str) -> bool:
    if text != text.strip():
        return False
    try:
        json.loads(text, parse_constant=_reject_constant)
    except ValueError:
        return False
    return True


def _json(value: Any) -> str:
    try:
        return json.dumps(value, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"cannot encode query value {value!r}: {e}") from e


def quote_key(value: str) -> str:
    """
    Quote a key/startkey/endkey value.

    A value that is already a JSON literal passes through. Otherwise each
    comma-separated component is emitted unquoted if it is a JSON number and
    JSON-quoted if not; several components become an array.

        quote_key('foo1')          -> '"foo1"'
        quote_key('["foo2",20]')   -> '["foo2",20]'
        quote_key('foo2,20')       -> '["foo2",20]'
    """
    if _is_json_literal(value):
        return value
    parts = [part if _is_number(part) else json.dumps(part) for part in value.split(",")]
    if len(parts) == 1:
        return parts[0]
    return "[" + ",".join(parts) + "]"


def quote_value(name: str, value: Any) -> str:
    """
    Render one query parameter value the way CouchDB expects it.

    Args:
        name: Query parameter name (e.g. "key", "limit")
        value: Python value; structured key values are JSON-serialized

    Returns:
        The string to place in the query string (before URL escaping)

    Raises:
        EncodingError: If the value has no JSON form (e.g. NaN)
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if name in KEY_PARAMS and isinstance(value, str):
        return quote_key(value)
    if not isinstance(value, str):
        return _json(value)
    if name in RAW_PARAMS or value in ("true", "false"):
        return value
    return _json(value)


@dataclass
class QueryParameters:
    """
    View and ``_all_docs`` query parameters.

    Fields left as None are not sent, so the server default applies. Fields
    set explicitly (including False and 0) are always sent. See ``defaults()``
    for the library's preset.
    """
    conflicts: Optional[bool] = None
    descending: Optional[bool] = None
    endkey: Any = None
    endkey_docid: Optional[str] = None
    group: Optional[bool] = None
    group_level: Optional[int] = None
    include_docs: Optional[bool] = None
    attachments: Optional[bool] = None
    att_encoding_info: Optional[bool] = None
    inclusive_end: Optional[bool] = None
    key: Any = None
    limit: Optional[int] = None
    reduce: Optional[bool] = None
    skip: Optional[int] = None
    stale: Optional[str] = None
    startkey: Any = None
    startkey_docid: Optional[str] = None
    update_seq: Optional[bool] = None

    @classmethod
    def defaults(cls) -> "QueryParameters":
        """
        Library default preset, a new instance on every call.

        Differs from the server on purpose: ``reduce`` is False (the server
        defaults to true) so map-only queries work against views that also
        define a reduce function. Set ``reduce=True`` to get aggregated rows.
        """
        return cls(
            conflicts=False,
            descending=False,
            group=False,
            include_docs=False,
            attachments=False,
            att_encoding_info=False,
            inclusive_end=True,
            reduce=False,
            skip=0,
            update_seq=False,
        )

    def to_query(self, quote: Callable[[str, Any], str] = quote_value) -> Dict[str, str]:
        """Quoted parameter mapping containing only the fields that are set."""
        query: Dict[str, str] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            query[f.name] = quote(f.name, value)
        return query


def encode_query(params: Optional[QueryParameters],
                 quote: Callable[[str, Any], str] = quote_value) -> str:
    """URL-encode query parameters, e.g. ``key=%22foo1%22&limit=10``."""
    if params is None:
        return ""
    query = urlencode(params.to_query(quote))
    logger.debug(f"Encoded query parameters: {query}")
    return query
