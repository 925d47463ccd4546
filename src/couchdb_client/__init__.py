# Synchronous CouchDB client built on httpx
from .config import Config, setup_logging
from .errors import (
    CouchDBError,
    BadRequest,
    Unauthorized,
    Forbidden,
    NotFound,
    MethodNotAllowed,
    Conflict,
    PreconditionFailed,
    UnsupportedMediaType,
    ServerError,
    EncodingError,
    error_from_response,
)
from .document import Attachment, CouchDoc, Document, decode, dumps, encode, json_field
from .models import (
    DatabaseInfo,
    DatabaseResponse,
    DesignDocument,
    DesignDocumentView,
    DocumentResponse,
    Element,
    GetSessionResponse,
    PostSessionResponse,
    PurgeResponse,
    ReplicationRequest,
    ReplicationResponse,
    Row,
    SecurityDocument,
    ServerInfo,
    Task,
    User,
    ViewResponse,
    new_user,
)
from .params import QueryParameters, encode_query, quote_value
from .multipart import encode_multipart, mime_type
from .client import Client
from .database import Database
from .view import View

__all__ = [
    # Config
    "Config",
    "setup_logging",
    # Errors
    "CouchDBError",
    "BadRequest",
    "Unauthorized",
    "Forbidden",
    "NotFound",
    "MethodNotAllowed",
    "Conflict",
    "PreconditionFailed",
    "UnsupportedMediaType",
    "ServerError",
    "EncodingError",
    "error_from_response",
    # Documents
    "Attachment",
    "CouchDoc",
    "Document",
    "decode",
    "dumps",
    "encode",
    "json_field",
    "DesignDocument",
    "DesignDocumentView",
    "User",
    "new_user",
    "ReplicationRequest",
    "SecurityDocument",
    "Element",
    # Responses
    "DatabaseInfo",
    "DatabaseResponse",
    "DocumentResponse",
    "GetSessionResponse",
    "PostSessionResponse",
    "PurgeResponse",
    "ReplicationResponse",
    "Row",
    "ServerInfo",
    "Task",
    "ViewResponse",
    # Query parameters
    "QueryParameters",
    "encode_query",
    "quote_value",
    # Attachments
    "encode_multipart",
    "mime_type",
    # Handles
    "Client",
    "Database",
    "View",
]
