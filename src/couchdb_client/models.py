"""
Typed CouchDB request documents and response records.

http://docs.couchdb.org/en/latest/api/index.html
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .document import Document, json_field

DESIGN_PREFIX = "_design/"
USER_PREFIX = "org.couchdb.user:"


@dataclass
class DesignDocumentView:
    map: str = json_field(omitempty=True, default="")
    reduce: str = json_field(omitempty=True, default="")


@dataclass
class DesignDocument:
    """Document holding view and filter function source for the server."""
    document: Document = field(default_factory=Document)
    language: str = json_field(omitempty=True, default="javascript")
    views: Dict[str, DesignDocumentView] = json_field(omitempty=True, default_factory=dict)
    filters: Dict[str, str] = json_field(omitempty=True, default_factory=dict)

    def get_document(self) -> Document:
        return self.document

    @property
    def name(self) -> str:
        doc_id = self.document.id
        return doc_id[len(DESIGN_PREFIX):] if doc_id.startswith(DESIGN_PREFIX) else doc_id


@dataclass
class User:
    """User document stored in the ``_users`` database."""
    document: Document = field(default_factory=Document)
    name: str = json_field(omitempty=True, default="")
    roles: List[str] = field(default_factory=list)
    password: str = json_field(omitempty=True, default="")  # plain text, only when creating
    derived_key: str = json_field(omitempty=True, default="")
    password_sha: str = json_field(omitempty=True, default="")
    password_scheme: str = json_field(omitempty=True, default="")
    salt: str = json_field(omitempty=True, default="")
    type: str = json_field(omitempty=True, default="user")
    iterations: int = json_field(omitempty=True, default=0)

    def get_document(self) -> Document:
        return self.document


def new_user(name: str, password: str, roles: Optional[List[str]] = None) -> User:
    """Create a User whose id follows the ``org.couchdb.user:`` convention."""
    return User(
        document=Document(id=USER_PREFIX + name),
        name=name,
        password=password,
        roles=list(roles or []),
    )


@dataclass
class ReplicationRequest:
    """Body for ``POST /_replicate``."""
    document: Document = field(default_factory=Document)
    source: str = ""
    target: str = ""
    continuous: bool = json_field(omitempty=True, default=False)
    create_target: bool = json_field(omitempty=True, default=False)
    filter: str = json_field(omitempty=True, default="")  # "ddoc/filter"
    query_params: Dict[str, str] = json_field(omitempty=True, default_factory=dict)
    doc_ids: List[str] = json_field(omitempty=True, default_factory=list)
    cancel: bool = json_field(omitempty=True, default=False)

    def get_document(self) -> Document:
        return self.document


@dataclass
class Element:
    names: List[str] = field(default_factory=list)
    roles: List[str] = field(default_factory=list)


@dataclass
class SecurityDocument:
    admins: Element = field(default_factory=Element)
    members: Element = field(default_factory=Element)


# Responses

@dataclass
class Vendor:
    name: str = ""
    version: str = ""


@dataclass
class ServerInfo:
    couchdb: str = ""
    uuid: str = ""
    version: str = ""
    vendor: Vendor = field(default_factory=Vendor)
    features: List[str] = field(default_factory=list)


@dataclass
class DatabaseInfo:
    db_name: str = ""
    doc_count: int = 0
    doc_del_count: int = 0
    update_seq: Any = None
    purge_seq: Any = None
    compact_running: bool = False
    disk_size: int = 0
    data_size: int = 0
    instance_start_time: str = ""
    disk_format_version: int = 0
    committed_update_seq: Any = None


@dataclass
class DatabaseResponse:
    ok: bool = False


@dataclass
class DocumentResponse:
    """Result of a document write; bulk items may carry error/reason instead."""
    ok: bool = False
    id: str = ""
    rev: str = ""
    error: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class Task:
    changes_done: int = 0
    database: str = ""
    pid: str = ""
    progress: int = 0
    started_on: int = 0
    status: str = ""
    task: str = ""
    total_changes: int = 0
    type: str = ""
    updated_on: Any = None


@dataclass
class Row:
    id: Optional[str] = None
    key: Any = None
    value: Any = None  # per-document value or reduced aggregate
    doc: Optional[Dict[str, Any]] = None


@dataclass
class ViewResponse:
    offset: int = 0
    rows: List[Row] = field(default_factory=list)
    total_rows: int = 0
    update_seq: Any = None


@dataclass
class PurgeResponse:
    purge_seq: Any = None
    purged: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class PostSessionResponse:
    ok: bool = False
    name: Optional[str] = None
    roles: List[str] = field(default_factory=list)


@dataclass
class SessionInfo:
    authenticated: str = ""
    authentication_db: str = ""
    authentication_handlers: List[str] = field(default_factory=list)


@dataclass
class UserContext:
    db: str = ""
    name: Optional[str] = None
    roles: List[str] = field(default_factory=list)


@dataclass
class GetSessionResponse:
    ok: bool = False
    info: SessionInfo = field(default_factory=SessionInfo)
    user_ctx: UserContext = json_field("userCtx", default_factory=UserContext)


@dataclass
class ReplicationResponse:
    """
    Result of ``POST /_replicate``.

    For continuous replication only ``ok`` and ``local_id`` are set: the
    server accepted the job, progress shows up in the active tasks.
    """
    ok: bool = False
    session_id: Optional[str] = None
    source_last_seq: Any = None
    replication_id_version: Optional[int] = None
    history: List[Dict[str, Any]] = field(default_factory=list)
    local_id: Optional[str] = json_field("_local_id")
