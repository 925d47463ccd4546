"""
CouchDB client: server-level operations.

Every operation is one synchronous request/response exchange through an
``httpx.Client``. Pass your own ``httpx.Client`` (or just a transport) to
control timeouts, TLS or to plug in a test double.
"""
import logging
from typing import Any, List, Optional, Tuple
from urllib.parse import quote

import httpx

from .config import Config
from .database import Database
from .document import decode, dumps
from .errors import error_from_response
from .models import (
    DatabaseInfo,
    DatabaseResponse,
    DocumentResponse,
    GetSessionResponse,
    PostSessionResponse,
    ReplicationRequest,
    ReplicationResponse,
    ServerInfo,
    Task,
    USER_PREFIX,
    User,
)

logger = logging.getLogger(__name__)


class Client:
    """
    Connection to a CouchDB server.

    A successful ``create_session`` stores the ``AuthSession`` cookie in the
    underlying ``httpx.Client``; it is sent with every later request until
    ``delete_session``. Session calls on one instance are not thread-safe.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        http: Optional[httpx.Client] = None,
        transport: Optional[httpx.BaseTransport] = None,
        auth: Optional[Tuple[str, str]] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the client.

        Args:
            url: Server URL (defaults to COUCHDB_URL)
            http: Pre-configured httpx.Client; the caller keeps ownership
            transport: httpx transport for the client built here
            auth: Basic auth (user, password), defaults to COUCHDB_USER/COUCHDB_PASSWORD
            timeout: Request timeout in seconds (defaults to COUCHDB_TIMEOUT)
        """
        self.url = (url or Config.COUCHDB_URL).rstrip("/") + "/"
        self._owns_http = http is None
        if http is None:
            http = httpx.Client(
                auth=auth or Config.get_auth(),
                timeout=timeout if timeout is not None else Config.COUCHDB_TIMEOUT,
                transport=transport,
            )
        self.http = http
        logger.debug(f"CouchDB client initialized for {self.url}")

    @classmethod
    def from_env(cls) -> "Client":
        """Create a client from the environment configuration."""
        return cls(Config.COUCHDB_URL, auth=Config.get_auth(), timeout=Config.COUCHDB_TIMEOUT)

    def close(self):
        """Close the HTTP client if this instance created it."""
        if self._owns_http:
            self.http.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info):
        self.close()

    def request(
        self,
        method: str,
        path: str,
        query: str = "",
        body: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[dict] = None,
    ) -> httpx.Response:
        """
        Send a request to CouchDB.

        Args:
            method: HTTP method
            path: Path relative to the server URL (e.g. "dummy/_bulk_docs")
            query: Already encoded query string
            body: Value serialized to JSON as the request body
            content: Raw request body (used instead of ``body``)
            headers: Extra request headers

        Returns:
            The successful (2xx) response

        Raises:
            CouchDBError: If the server answers with a non-2xx status
            EncodingError: If ``body`` cannot be serialized
            httpx.TransportError: On connection failures
        """
        url = self.url + path.lstrip("/")
        if query:
            url = f"{url}?{query}"

        request_headers = {"Accept": "application/json"}
        if body is not None:
            content = dumps(body)
            request_headers["Content-Type"] = "application/json"
        if headers:
            request_headers.update(headers)

        response = self.http.request(method, url, content=content, headers=request_headers)
        logger.debug(f"{method} {url} -> {response.status_code}")
        if not response.is_success:
            raise error_from_response(response)
        return response

    def info(self) -> ServerInfo:
        """Get server meta information."""
        return decode(ServerInfo, self.request("GET", "").json())

    def active_tasks(self) -> List[Task]:
        """List running tasks; an empty list when nothing runs."""
        tasks = self.request("GET", "_active_tasks").json() or []
        return [decode(Task, task) for task in tasks]

    def all(self) -> List[str]:
        """List all database names."""
        return self.request("GET", "_all_dbs").json()

    def get(self, name: str) -> DatabaseInfo:
        """Get database information. Raises NotFound if it does not exist."""
        return decode(DatabaseInfo, self.request("GET", quote(name, safe="")).json())

    def create(self, name: str) -> DatabaseResponse:
        """Create a database. Raises PreconditionFailed if it already exists."""
        response = self.request("PUT", quote(name, safe=""))
        logger.info(f"Created database {name}")
        return decode(DatabaseResponse, response.json())

    def delete(self, name: str) -> DatabaseResponse:
        """Delete a database. Raises NotFound if it does not exist."""
        response = self.request("DELETE", quote(name, safe=""))
        logger.info(f"Deleted database {name}")
        return decode(DatabaseResponse, response.json())

    def use(self, name: str) -> Database:
        """Get a handle for a database. No request is made."""
        return Database(self, name)

    def create_user(self, user: User) -> DocumentResponse:
        """Create a user document in the ``_users`` database."""
        path = "_users/" + quote(USER_PREFIX + user.name, safe=":")
        response = self.request("PUT", path, body=user)
        return decode(DocumentResponse, response.json())

    def get_user(self, name: str) -> User:
        path = "_users/" + quote(USER_PREFIX + name, safe=":")
        return decode(User, self.request("GET", path).json())

    def delete_user(self, user: User) -> DocumentResponse:
        document = user.get_document()
        path = "_users/" + quote(document.id, safe=":")
        response = self.request("DELETE", path, query=f"rev={quote(document.revision, safe='')}")
        return decode(DocumentResponse, response.json())

    def create_session(self, name: str, password: str) -> PostSessionResponse:
        """
        Log in with cookie authentication.

        The AuthSession cookie is kept by the HTTP client and attached to all
        following requests made through this instance.
        """
        response = self.request("POST", "_session", body={"name": name, "password": password})
        logger.info(f"Created session for {name}")
        return decode(PostSessionResponse, response.json())

    def get_session(self) -> GetSessionResponse:
        return decode(GetSessionResponse, self.request("GET", "_session").json())

    def delete_session(self) -> DatabaseResponse:
        """Log out and drop the session cookie."""
        response = self.request("DELETE", "_session")
        self.http.cookies.clear()
        logger.info("Deleted session")
        return decode(DatabaseResponse, response.json())

    def replicate(self, request: ReplicationRequest) -> ReplicationResponse:
        """
        Trigger a replication.

        Continuous replications return as soon as the server accepts them;
        follow their progress with ``active_tasks()``.
        """
        response = self.request("POST", "_replicate", body=request)
        logger.info(f"Replication {request.source} -> {request.target} accepted")
        return decode(ReplicationResponse, response.json())
