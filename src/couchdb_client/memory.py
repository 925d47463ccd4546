"""
In-memory CouchDB emulator.

``MemoryTransport`` is an ``httpx`` transport that answers CouchDB requests
from in-process state, so a ``Client`` can be exercised end to end without a
server:

    client = Client("http://127.0.0.1:5984/", transport=MemoryTransport())

Covered: server info, databases, documents with revisions and conflicts,
HEAD/COPY, bulk docs, all docs, purge, security, multipart attachment upload
and download, users, cookie sessions, replication and active tasks. View and
filter functions are not executed (501 ``not_implemented``).
"""
import re
import json
import time
import uuid
import base64
import hashlib
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote, urlparse

import httpx

logger = logging.getLogger(__name__)

USERS_DB = "_users"
REPLICATOR_DB = "_replicator"

_DB_NAME = re.compile(r"^[a-z][a-z0-9_$()+/-]*$")


class _Reply(Exception):
    """Short-circuits request handling with an error response."""

    def __init__(self, status: int, error: str, reason: str):
        super().__init__(reason)
        self.status = status
        self.error = error
        self.reason = reason


def _new_rev(previous: Optional[str]) -> str:
    generation = int(previous.split("-", 1)[0]) + 1 if previous else 1
    return f"{generation}-{uuid.uuid4().hex}"


def _hash_password(password: str, salt: str, iterations: int) -> str:
    return hashlib.pbkdf2_hmac("sha1", password.encode(), salt.encode(), iterations).hex()


class _Database:
    def __init__(self, name: str):
        self.name = name
        self.docs: Dict[str, Dict[str, Any]] = {}  # id -> {rev, revs, deleted, body, attachments}
        self.security: Dict[str, Any] = {}
        self.update_seq = 0
        self.purge_seq = 0
        self.created = time.time()

    def info(self) -> Dict[str, Any]:
        live = [doc for doc in self.docs.values() if not doc["deleted"]]
        return {
            "db_name": self.name,
            "doc_count": len(live),
            "doc_del_count": len(self.docs) - len(live),
            "update_seq": self.update_seq,
            "purge_seq": self.purge_seq,
            "compact_running": False,
            "disk_size": 0,
            "data_size": 0,
            "instance_start_time": str(int(self.created * 1000000)),
            "disk_format_version": 6,
            "committed_update_seq": self.update_seq,
        }


class MemoryTransport(httpx.BaseTransport):
    """In-memory CouchDB speaking HTTP through httpx."""

    def __init__(self, admins: Optional[Dict[str, str]] = None):
        """
        Args:
            admins: Server admins (name -> password). Without admins the
                server runs in "admin party" mode: everybody is _admin.
        """
        self.admins = dict(admins or {})
        self.databases: Dict[str, _Database] = {}
        self.sessions: Dict[str, str] = {}  # AuthSession token -> user name
        self.tasks: List[Dict[str, Any]] = []
        self.uuid = uuid.uuid4().hex
        self._lock = threading.Lock()
        for name in (REPLICATOR_DB, USERS_DB):
            self.databases[name] = _Database(name)

    # transport

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            try:
                response = self._dispatch(request)
            except _Reply as reply:
                response = httpx.Response(reply.status, json={"error": reply.error, "reason": reply.reason})
        logger.debug(f"MemoryTransport {request.method} {request.url} -> {response.status_code}")
        if request.method == "HEAD":
            headers = [(key, value) for key, value in response.headers.items() if key.lower() != "content-length"]
            return httpx.Response(response.status_code, headers=headers)
        return response

    def _dispatch(self, request: httpx.Request) -> httpx.Response:
        raw_path = request.url.raw_path.split(b"?", 1)[0].decode("ascii")
        parts = [unquote(part) for part in raw_path.strip("/").split("/") if part]
        method = request.method

        if not parts:
            if method == "GET":
                return httpx.Response(200, json={
                    "couchdb": "Welcome",
                    "uuid": self.uuid,
                    "version": "3.3.3",
                    "vendor": {"name": "The Apache Software Foundation", "version": "3.3.3"},
                    "features": ["access-ready", "scheduler"],
                })
            raise _Reply(405, "method_not_allowed", "Only GET allowed")

        head = parts[0]
        if head == "_all_dbs":
            return httpx.Response(200, json=sorted(self.databases))
        if head == "_active_tasks":
            return httpx.Response(200, json=list(self.tasks))
        if head == "_session":
            return self._session(request)
        if head == "_replicate":
            return self._replicate(self._json(request))
        if head.startswith("_") and head not in self.databases:
            raise _Reply(400, "illegal_database_name", f"Name: '{head}'. Only lowercase characters (a-z), "
                                                        "digits (0-9), and any of the characters _, $, (, ), +, -, "
                                                        "and / are allowed. Must begin with a letter.")

        if len(parts) == 1:
            return self._database(request, head)

        db = self._db(head)
        rest = parts[1:]
        if rest[0] == "_all_docs":
            return self._all_docs(request, db)
        if rest[0] == "_bulk_docs":
            return self._bulk_docs(request, db)
        if rest[0] == "_purge":
            return self._purge(request, db)
        if rest[0] == "_security":
            if method == "GET":
                return httpx.Response(200, json=db.security)
            db.security = self._json(request)
            return httpx.Response(200, json={"ok": True})
        if rest[0] in ("_design", "_local"):
            if len(rest) < 2:
                raise _Reply(404, "not_found", "missing")
            if rest[0] == "_design" and len(rest) >= 3 and rest[2] in ("_view", "_show", "_list", "_update"):
                raise _Reply(501, "not_implemented", "Design functions are not executed in memory")
            doc_id = f"{rest[0]}/{rest[1]}"
            rest = rest[2:]
        else:
            doc_id = rest[0]
            rest = rest[1:]
        if rest:
            return self._attachment(request, db, doc_id, "/".join(rest))
        return self._document(request, db, doc_id)

    # helpers

    @staticmethod
    def _json(request: httpx.Request) -> Any:
        try:
            return json.loads(request.content or b"null")
        except ValueError:
            raise _Reply(400, "bad_request", "invalid UTF-8 JSON")

    def _db(self, name: str) -> _Database:
        db = self.databases.get(name)
        if db is None:
            raise _Reply(404, "not_found", "Database does not exist.")
        return db

    def _user_name(self, request: httpx.Request) -> Optional[str]:
        token = request.headers.get("cookie", "")
        match = re.search(r"AuthSession=([^;]+)", token)
        if match and match.group(1) in self.sessions:
            return self.sessions[match.group(1)]
        auth = request.headers.get("authorization", "")
        if auth.startswith("Basic "):
            name, _, _ = base64.b64decode(auth[6:]).decode().partition(":")
            return name
        return None

    def _roles(self, name: Optional[str]) -> List[str]:
        if name is None:
            return [] if self.admins else ["_admin"]
        if name in self.admins:
            return ["_admin"]
        user = self.databases[USERS_DB].docs.get(f"org.couchdb.user:{name}")
        if user and not user["deleted"]:
            return list(user["body"].get("roles", []))
        return []

    # server endpoints

    def _session(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            name = self._user_name(request)
            return httpx.Response(200, json={
                "ok": True,
                "userCtx": {"name": name, "roles": self._roles(name)},
                "info": {
                    "authentication_handlers": ["cookie", "default"],
                    "authentication_db": USERS_DB,
                    "authenticated": "cookie" if name else "default",
                },
            })
        if request.method == "POST":
            credentials = self._json(request) or {}
            name = credentials.get("name")
            password = credentials.get("password", "")
            if not self._check_password(name, password):
                raise _Reply(401, "unauthorized", "Name or password is incorrect.")
            token = uuid.uuid4().hex
            self.sessions[token] = name
            return httpx.Response(
                200,
                json={"ok": True, "name": name, "roles": self._roles(name)},
                headers={"Set-Cookie": f"AuthSession={token}; Version=1; Path=/; HttpOnly"},
            )
        if request.method == "DELETE":
            match = re.search(r"AuthSession=([^;]+)", request.headers.get("cookie", ""))
            if match:
                self.sessions.pop(match.group(1), None)
            return httpx.Response(
                200,
                json={"ok": True},
                headers={"Set-Cookie": "AuthSession=; Version=1; Path=/; HttpOnly; Max-Age=0"},
            )
        raise _Reply(405, "method_not_allowed", "Only GET,HEAD,POST,DELETE allowed")

    def _check_password(self, name: Optional[str], password: str) -> bool:
        if not name:
            return False
        if name in self.admins:
            return self.admins[name] == password
        user = self.databases[USERS_DB].docs.get(f"org.couchdb.user:{name}")
        if user is None or user["deleted"]:
            return False
        body = user["body"]
        return body.get("derived_key") == _hash_password(password, body.get("salt", ""), body.get("iterations", 10))

    def _replicate(self, body: Dict[str, Any]) -> httpx.Response:
        source_name = self._db_name(body.get("source", ""))
        target_name = self._db_name(body.get("target", ""))

        if body.get("cancel"):
            before = len(self.tasks)
            self.tasks = [task for task in self.tasks
                          if (task["source"], task["target"]) != (source_name, target_name)]
            if len(self.tasks) == before:
                raise _Reply(404, "not_found", "missing")
            return httpx.Response(200, json={"ok": True})

        if body.get("filter"):
            raise _Reply(501, "not_implemented", "Filter functions are not executed in memory")
        source = self.databases.get(source_name)
        if source is None:
            raise _Reply(404, "db_not_found", f"could not open {body.get('source')}")
        if target_name not in self.databases:
            if not body.get("create_target"):
                raise _Reply(404, "db_not_found", f"could not open {body.get('target')}")
            self.databases[target_name] = _Database(target_name)
        target = self.databases[target_name]

        doc_ids = body.get("doc_ids")
        written = 0
        for doc_id, doc in source.docs.items():
            if doc_ids and doc_id not in doc_ids:
                continue
            target.docs[doc_id] = json.loads(json.dumps(doc, default=lambda raw: base64.b64encode(raw).decode()))
            for attachment in target.docs[doc_id]["attachments"].values():
                attachment["data"] = base64.b64decode(attachment["data"])
            target.update_seq += 1
            written += 1

        if body.get("continuous"):
            now = int(time.time())
            self.tasks.append({
                "type": "replication",
                "pid": f"<0.{len(self.tasks) + 100}.0>",
                "source": source_name,
                "target": target_name,
                "continuous": True,
                "changes_done": written,
                "progress": 100,
                "started_on": now,
                "updated_on": now,
            })
            return httpx.Response(202, json={"ok": True, "_local_id": uuid.uuid4().hex + "+continuous"})

        return httpx.Response(200, json={
            "ok": True,
            "session_id": uuid.uuid4().hex,
            "source_last_seq": source.update_seq,
            "replication_id_version": 4,
            "history": [{"docs_written": written, "docs_read": written, "doc_write_failures": 0}],
        })

    @staticmethod
    def _db_name(location: str) -> str:
        parsed = urlparse(location)
        return unquote(parsed.path.strip("/")) if parsed.scheme else location

    # database endpoints

    def _database(self, request: httpx.Request, name: str) -> httpx.Response:
        if request.method in ("GET", "HEAD"):
            return httpx.Response(200, json=self._db(name).info())
        if request.method == "PUT":
            if name in self.databases:
                raise _Reply(412, "file_exists", "The database could not be created, the file already exists.")
            if not _DB_NAME.match(name):
                raise _Reply(400, "illegal_database_name", f"Name: '{name}'. Only lowercase characters (a-z), "
                                                            "digits (0-9), and any of the characters _, $, (, ), "
                                                            "+, -, and / are allowed. Must begin with a letter.")
            self.databases[name] = _Database(name)
            return httpx.Response(201, json={"ok": True})
        if request.method == "DELETE":
            self._db(name)
            del self.databases[name]
            return httpx.Response(200, json={"ok": True})
        if request.method == "POST":
            return self._write(self._db(name), None, self._json(request), status=201)
        raise _Reply(405, "method_not_allowed", "Only DELETE,GET,HEAD,POST,PUT allowed")

    def _all_docs(self, request: httpx.Request, db: _Database) -> httpx.Response:
        params = request.url.params
        include_docs = params.get("include_docs") == "true"
        ids = sorted(doc_id for doc_id, doc in db.docs.items() if not doc["deleted"])
        if params.get("descending") == "true":
            ids.reverse()
        skip = int(params.get("skip", "0"))
        limit = int(params["limit"]) if "limit" in params else None
        selected = ids[skip:] if limit is None else ids[skip:skip + limit]
        rows = []
        for doc_id in selected:
            row = {"id": doc_id, "key": doc_id, "value": {"rev": db.docs[doc_id]["rev"]}}
            if include_docs:
                row["doc"] = self._render(doc_id, db.docs[doc_id])
            rows.append(row)
        return httpx.Response(200, json={"total_rows": len(ids), "offset": skip, "rows": rows})

    def _bulk_docs(self, request: httpx.Request, db: _Database) -> httpx.Response:
        if request.method != "POST":
            raise _Reply(405, "method_not_allowed", "Only POST allowed")
        body = self._json(request) or {}
        results = []
        for doc in body.get("docs", []):
            try:
                response = self._write(db, None, doc, status=201)
                results.append(response.json())
            except _Reply as reply:
                results.append({"id": doc.get("_id", ""), "error": reply.error, "reason": reply.reason})
        return httpx.Response(201, json=results)

    def _purge(self, request: httpx.Request, db: _Database) -> httpx.Response:
        body = self._json(request) or {}
        purged: Dict[str, List[str]] = {}
        for doc_id, revs in body.items():
            doc = db.docs.get(doc_id)
            if doc is None:
                continue
            removed = [rev for rev in revs if rev in doc["revs"]]
            if not removed:
                continue
            purged[doc_id] = removed
            doc["revs"] = [rev for rev in doc["revs"] if rev not in removed]
            if doc["rev"] in removed:
                del db.docs[doc_id]
        db.purge_seq += 1
        return httpx.Response(200, json={"purge_seq": db.purge_seq, "purged": purged})

    # documents

    def _render(self, doc_id: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        body = dict(doc["body"])
        body["_id"] = doc_id
        body["_rev"] = doc["rev"]
        if doc["attachments"]:
            body["_attachments"] = {
                name: {
                    "content_type": att["content_type"],
                    "revpos": att["revpos"],
                    "digest": att["digest"],
                    "length": len(att["data"]),
                    "stub": True,
                }
                for name, att in doc["attachments"].items()
            }
        return body

    def _document(self, request: httpx.Request, db: _Database, doc_id: str) -> httpx.Response:
        method = request.method
        if method in ("GET", "HEAD"):
            doc = db.docs.get(doc_id)
            if doc is None or doc["deleted"]:
                raise _Reply(404, "not_found", "deleted" if doc else "missing")
            rev = request.url.params.get("rev")
            if rev and rev != doc["rev"]:
                raise _Reply(404, "not_found", "missing")
            return httpx.Response(200, json=self._render(doc_id, doc), headers={"ETag": f'"{doc["rev"]}"'})
        if method == "PUT":
            content_type = request.headers.get("content-type", "")
            if content_type.startswith("multipart/related"):
                body = self._multipart(request, content_type)
            else:
                body = self._json(request)
            return self._write(db, doc_id, body, status=201)
        if method == "DELETE":
            doc = db.docs.get(doc_id)
            if doc is None or doc["deleted"]:
                raise _Reply(404, "not_found", "missing")
            if request.url.params.get("rev") != doc["rev"]:
                raise _Reply(409, "conflict", "Document update conflict.")
            rev = _new_rev(doc["rev"])
            doc.update(rev=rev, deleted=True, body={}, attachments={})
            doc["revs"].append(rev)
            db.update_seq += 1
            return httpx.Response(200, json={"ok": True, "id": doc_id, "rev": rev})
        if method == "COPY":
            doc = db.docs.get(doc_id)
            if doc is None or doc["deleted"]:
                raise _Reply(404, "not_found", "missing")
            destination = request.headers.get("destination", "")
            target_id, _, query = destination.partition("?")
            body = json.loads(json.dumps(doc["body"]))
            match = re.match(r"rev=(.+)", query)
            if match:
                body["_rev"] = match.group(1)
            return self._write(db, unquote(target_id), body, status=201,
                               attachments={name: dict(att) for name, att in doc["attachments"].items()})
        raise _Reply(405, "method_not_allowed", "Only DELETE,GET,HEAD,POST,PUT,COPY allowed")

    def _multipart(self, request: httpx.Request, content_type: str) -> Dict[str, Any]:
        match = re.search(r'boundary="?([^";]+)"?', content_type)
        if not match:
            raise _Reply(400, "bad_request", "missing multipart boundary")
        delimiter = b"--" + match.group(1).encode()
        chunks = request.content.split(delimiter)
        parts: List[Tuple[Dict[str, str], bytes]] = []
        for chunk in chunks[1:]:
            if chunk.startswith(b"--"):
                break
            chunk = chunk[2:] if chunk.startswith(b"\r\n") else chunk
            chunk = chunk[:-2] if chunk.endswith(b"\r\n") else chunk
            if chunk.startswith(b"\r\n"):
                # part without headers
                raw_headers, payload = b"", chunk[2:]
            else:
                raw_headers, _, payload = chunk.partition(b"\r\n\r\n")
            headers = {}
            for line in raw_headers.decode("latin-1").split("\r\n"):
                if ":" in line:
                    key, value = line.split(":", 1)
                    headers[key.strip().lower()] = value.strip()
            parts.append((headers, payload))
        if not parts:
            raise _Reply(400, "bad_request", "empty multipart body")
        try:
            body = json.loads(parts[0][1])
        except ValueError:
            raise _Reply(400, "bad_request", "invalid JSON in first multipart part")
        following = iter(parts[1:])
        for name, att in (body.get("_attachments") or {}).items():
            if att.get("follows"):
                try:
                    _, data = next(following)
                except StopIteration:
                    raise _Reply(400, "bad_request", f"missing attachment data for {name}")
                if len(data) != att.get("length", len(data)):
                    raise _Reply(400, "bad_request", f"attachment length mismatch for {name}")
                att.pop("follows")
                att["data"] = base64.b64encode(data).decode()
        return body

    def _write(self, db: _Database, doc_id: Optional[str], body: Any, status: int,
               attachments: Optional[Dict[str, Dict[str, Any]]] = None) -> httpx.Response:
        if not isinstance(body, dict):
            raise _Reply(400, "bad_request", "Document must be a JSON object")
        body = dict(body)
        doc_id = doc_id or body.get("_id") or uuid.uuid4().hex
        given_rev = body.pop("_rev", None)
        body.pop("_id", None)
        deleted = bool(body.pop("_deleted", False))
        declared = body.pop("_attachments", None) or {}

        existing = db.docs.get(doc_id)
        if existing is not None and not existing["deleted"]:
            if given_rev != existing["rev"]:
                raise _Reply(409, "conflict", "Document update conflict.")
        elif given_rev and (existing is None or given_rev != existing["rev"]):
            raise _Reply(409, "conflict", "Document update conflict.")

        previous = existing["rev"] if existing else None
        rev = _new_rev(previous)
        generation = int(rev.split("-", 1)[0])

        stored = dict(attachments or {})
        for name, att in declared.items():
            if att.get("stub"):
                if existing is None or name not in existing["attachments"]:
                    raise _Reply(412, "missing_stub", f"Invalid attachment stub in {doc_id} for {name}")
                stored[name] = existing["attachments"][name]
            elif "data" in att:
                data = base64.b64decode(att["data"])
                stored[name] = {
                    "content_type": att.get("content_type", "application/octet-stream"),
                    "data": data,
                    "digest": "md5-" + base64.b64encode(hashlib.md5(data).digest()).decode(),
                    "revpos": generation,
                }
            else:
                # follows without a multipart body, or no data at all
                raise _Reply(400, "bad_request", f"Attachment {name} has no data")

        if db.name == USERS_DB and "password" in body:
            salt = uuid.uuid4().hex
            password = body.pop("password")
            body.update(
                password_scheme="pbkdf2",
                iterations=10,
                salt=salt,
                derived_key=_hash_password(password, salt, 10),
            )

        revs = existing["revs"] if existing else []
        db.docs[doc_id] = {
            "rev": rev,
            "revs": revs + [rev],
            "deleted": deleted,
            "body": {} if deleted else body,
            "attachments": {} if deleted else stored,
        }
        db.update_seq += 1
        return httpx.Response(status, json={"ok": True, "id": doc_id, "rev": rev})

    def _attachment(self, request: httpx.Request, db: _Database, doc_id: str, name: str) -> httpx.Response:
        if request.method not in ("GET", "HEAD"):
            raise _Reply(405, "method_not_allowed", "Only GET,HEAD allowed")
        doc = db.docs.get(doc_id)
        if doc is None or doc["deleted"] or name not in doc["attachments"]:
            raise _Reply(404, "not_found", "Document is missing attachment")
        att = doc["attachments"][name]
        return httpx.Response(200, content=att["data"], headers={"Content-Type": att["content_type"]})
