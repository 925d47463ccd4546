"""
multipart/related encoding for documents with an attachment.

http://docs.couchdb.org/en/latest/api/document/common.html#creating-multiple-attachments

The body is assembled completely in memory before anything is handed to the
transport, so a failure while stat-ing, serializing or reading never results
in a partial request.
"""
import os
import uuid
import logging
import mimetypes
from typing import BinaryIO, Optional, Tuple

from .document import Attachment, CouchDoc, dumps
from .errors import EncodingError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Extension -> MIME type, checked before the platform mimetypes database
MIME_TYPES = {
    ".avi": "video/x-msvideo",
    ".css": "text/css; charset=utf-8",
    ".gif": "image/gif",
    ".htm": "text/html; charset=utf-8",
    ".html": "text/html; charset=utf-8",
    ".jpeg": "image/jpeg",
    ".jpg": "image/jpeg",
    ".js": "text/javascript; charset=utf-8",
    ".json": "application/json",
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".svg": "image/svg+xml",
    ".text": "text/plain; charset=utf-8",
    ".txt": "text/plain; charset=utf-8",
    ".wasm": "application/wasm",
    ".webp": "image/webp",
    ".xml": "text/xml; charset=utf-8",
    ".zip": "application/zip",
}


def mime_type(filename: str) -> str:
    """Get the MIME type for a file name from its extension."""
    ext = os.path.splitext(filename)[1].lower()
    if ext in MIME_TYPES:
        return MIME_TYPES[ext]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or DEFAULT_CONTENT_TYPE


def _file_size(file: BinaryIO) -> int:
    try:
        return os.fstat(file.fileno()).st_size
    except (AttributeError, OSError, ValueError):
        # in-memory streams have no file descriptor
        position = file.tell()
        size = file.seek(0, os.SEEK_END)
        file.seek(position)
        return size


def encode_multipart(doc: CouchDoc, file: BinaryIO, boundary: Optional[str] = None) -> Tuple[bytes, str]:
    """
    Build a multipart/related body for a document and one attachment.

    The attachment is declared in the document's ``_attachments`` map (in
    place) with ``follows=True``, the content type derived from the file
    extension and the file's byte length. Part one is the document JSON,
    part two the raw file bytes.

    Args:
        doc: Document to upload
        file: Open binary file; its ``name`` gives the attachment name
        boundary: Optional multipart boundary

    Returns:
        Tuple of (body_bytes, content_type_header)

    Raises:
        EncodingError: If the file cannot be stat-ed or read, or the document
            cannot be serialized
    """
    path = getattr(file, "name", None)
    if not isinstance(path, str) or not path:
        raise EncodingError("attachment file has no name")
    filename = os.path.basename(path)

    try:
        length = _file_size(file)
    except (OSError, ValueError) as e:
        raise EncodingError(f"cannot stat attachment {path}: {e}") from e

    document = doc.get_document()
    document.attachments[filename] = Attachment(
        follows=True,
        content_type=mime_type(path),
        length=length,
    )
    payload = dumps(doc)

    try:
        data = file.read()
    except (OSError, ValueError) as e:
        raise EncodingError(f"cannot read attachment {path}: {e}") from e

    boundary = boundary or uuid.uuid4().hex
    delimiter = f"--{boundary}".encode()
    body = b"".join([
        delimiter, b"\r\n",
        b"Content-Type: application/json\r\n\r\n",
        payload, b"\r\n",
        delimiter, b"\r\n",
        b"\r\n",
        data, b"\r\n",
        delimiter, b"--\r\n",
    ])
    logger.debug(f"Encoded multipart body for {filename}: {length} attachment bytes, {len(body)} total")
    return body, f"multipart/related; boundary={boundary}"
