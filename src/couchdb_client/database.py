"""
Database handle: document-level operations on one database.
"""
import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple, Type, TypeVar
from urllib.parse import quote

import httpx

from .document import CouchDoc, Document, decode, encode
from .errors import EncodingError
from .models import (
    DatabaseResponse,
    DocumentResponse,
    PurgeResponse,
    SecurityDocument,
    ViewResponse,
)
from .multipart import encode_multipart
from .params import QueryParameters, encode_query
from .view import View

if TYPE_CHECKING:
    from .client import Client

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Prefixes whose slash belongs in the URL path
_SPECIAL_PREFIXES = ("_design/", "_local/")


def doc_path(doc_id: str) -> str:
    """URL path segment(s) for a document id."""
    for prefix in _SPECIAL_PREFIXES:
        if doc_id.startswith(prefix):
            return prefix + quote(doc_id[len(prefix):], safe=":@")
    return quote(doc_id, safe=":@")


def _update_identity(doc: CouchDoc, result: DocumentResponse):
    document = doc.get_document()
    if result.id:
        document.id = result.id
    if result.rev:
        document.revision = result.rev


class Database:
    """
    Operations scoped to a single database.

    Created with ``Client.use(name)``; holding one makes no request.
    """

    def __init__(self, client: "Client", name: str):
        self.client = client
        self.name = name
        self.path = quote(name, safe="") + "/"

    def __repr__(self) -> str:
        return f"Database({self.name!r})"

    def _request(self, method: str, path: str = "", **kwargs) -> httpx.Response:
        return self.client.request(method, self.path + path, **kwargs)

    def get(self, doc_id: str, doc_type: Type[T] = Document, rev: Optional[str] = None) -> T:
        """
        Fetch a document.

        Args:
            doc_id: Document id
            doc_type: Dataclass to decode into (must expose get_document())
            rev: Specific revision to fetch

        Raises:
            NotFound: If the document does not exist
        """
        query = f"rev={quote(rev, safe='')}" if rev else ""
        return decode(doc_type, self._request("GET", doc_path(doc_id), query=query).json())

    def head(self, doc_id: str) -> httpx.Response:
        """Check a document exists; the ETag header holds its current revision."""
        return self._request("HEAD", doc_path(doc_id))

    def put(self, doc: CouchDoc) -> DocumentResponse:
        """
        Update an existing document.

        Raises:
            ValueError: If the document has no id or no revision
            Conflict: If the revision is not the current one
        """
        document = doc.get_document()
        if not document.id:
            raise ValueError("document id is required for put")
        if not document.revision:
            raise ValueError("document revision is required for put; use post to create")
        result = decode(DocumentResponse, self._request("PUT", doc_path(document.id), body=doc).json())
        _update_identity(doc, result)
        return result

    def post(self, doc: CouchDoc) -> DocumentResponse:
        """Create a document; the server assigns an id when it is empty."""
        result = decode(DocumentResponse, self._request("POST", body=doc).json())
        _update_identity(doc, result)
        logger.debug(f"Created document {result.id} in {self.name}")
        return result

    def delete(self, doc: CouchDoc) -> DocumentResponse:
        """
        Delete (tombstone) a document.

        Raises:
            ValueError: If the document has no id or no revision
        """
        document = doc.get_document()
        if not document.id or not document.revision:
            raise ValueError("document id and revision are required for delete")
        response = self._request(
            "DELETE",
            doc_path(document.id),
            query=f"rev={quote(document.revision, safe='')}",
        )
        return decode(DocumentResponse, response.json())

    def copy(self, doc_id: str, destination: str) -> DocumentResponse:
        """Copy a document to a new id (``destination`` may carry ``?rev=``)."""
        response = self._request("COPY", doc_path(doc_id), headers={"Destination": destination})
        return decode(DocumentResponse, response.json())

    def bulk(
        self,
        docs: Sequence[CouchDoc],
        all_or_nothing: Optional[bool] = None,
        new_edits: Optional[bool] = None,
    ) -> List[DocumentResponse]:
        """
        Write many documents in one request.

        Returns one response per input document, in input order. Items that
        failed carry ``error``/``reason`` instead of raising.
        """
        body = {"docs": [encode(doc) for doc in docs]}
        if all_or_nothing is not None:
            body["all_or_nothing"] = all_or_nothing
        if new_edits is not None:
            body["new_edits"] = new_edits
        results = [decode(DocumentResponse, item) for item in self._request("POST", "_bulk_docs", body=body).json()]
        for doc, result in zip(docs, results):
            if not result.error:
                _update_identity(doc, result)
        failed = sum(1 for result in results if result.error)
        if failed:
            logger.warning(f"Bulk write to {self.name}: {failed} of {len(results)} documents failed")
        return results

    def all_docs(self, params: Optional[QueryParameters] = None) -> ViewResponse:
        """List all documents, accepting the same parameters as a view query."""
        return decode(ViewResponse, self._request("GET", "_all_docs", query=encode_query(params)).json())

    def purge(self, revisions: Dict[str, List[str]]) -> PurgeResponse:
        """
        Permanently remove document revisions.

        Args:
            revisions: Mapping of document id to the revisions to purge
        """
        response = self._request("POST", "_purge", body=revisions)
        logger.info(f"Purged {sum(len(revs) for revs in revisions.values())} revisions from {self.name}")
        return decode(PurgeResponse, response.json())

    def put_attachment(self, doc: CouchDoc, path: str) -> DocumentResponse:
        """
        Store a file as an attachment of a document (multipart/related).

        The attachment is added to the document's attachment map in place.

        Raises:
            ValueError: If the document has no id
            EncodingError: If the file cannot be read or the document serialized
        """
        document = doc.get_document()
        if not document.id:
            raise ValueError("document id is required for attachment upload")
        try:
            file = open(path, "rb")
        except OSError as e:
            raise EncodingError(f"cannot open attachment {path}: {e}") from e
        with file:
            body, content_type = encode_multipart(doc, file)
        response = self._request("PUT", doc_path(document.id), content=body, headers={"Content-Type": content_type})
        result = decode(DocumentResponse, response.json())
        _update_identity(doc, result)
        return result

    def get_attachment(self, doc_id: str, filename: str) -> Tuple[bytes, str]:
        """
        Download an attachment.

        Returns:
            Tuple of (content_bytes, content_type)
        """
        response = self._request("GET", f"{doc_path(doc_id)}/{quote(filename, safe='')}", headers={"Accept": "*/*"})
        return response.content, response.headers.get("Content-Type", "application/octet-stream")

    def get_security(self) -> SecurityDocument:
        return decode(SecurityDocument, self._request("GET", "_security").json())

    def put_security(self, security: SecurityDocument) -> DatabaseResponse:
        return decode(DatabaseResponse, self._request("PUT", "_security", body=security).json())

    def view(self, design_name: str) -> View:
        """Get a handle for the views of design document ``_design/{design_name}``."""
        return View(self, design_name)
