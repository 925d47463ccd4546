"""
CouchDB error types.

A non-2xx response is turned into a CouchDBError carrying the request method,
URL, status code and the server's ``error``/``reason`` fields. Transport
failures are never wrapped: they surface as ``httpx.TransportError``.
"""
import json
import logging
from typing import Dict, Type

import httpx

logger = logging.getLogger(__name__)


class CouchDBError(Exception):
    """Error response returned by the CouchDB server."""

    def __init__(self, method: str, url: str, status_code: int, error: str = "", reason: str = ""):
        self.method = method
        self.url = url
        self.status_code = status_code
        self.error = error
        self.reason = reason
        super().__init__(str(self))

    def __str__(self) -> str:
        return (
            f"CouchDB - {self.method} {self.url}, Status Code: {self.status_code}, "
            f"Error: {self.error}, Reason: {self.reason}"
        )


class BadRequest(CouchDBError):
    pass


class Unauthorized(CouchDBError):
    pass


class Forbidden(CouchDBError):
    pass


class NotFound(CouchDBError):
    pass


class MethodNotAllowed(CouchDBError):
    pass


class Conflict(CouchDBError):
    """Document update conflict (stale or missing revision)."""


class PreconditionFailed(CouchDBError):
    """Raised e.g. when creating a database that already exists."""


class UnsupportedMediaType(CouchDBError):
    pass


class ServerError(CouchDBError):
    pass


class EncodingError(Exception):
    """Local failure to build a request body; nothing was sent."""


_STATUS_ERRORS: Dict[int, Type[CouchDBError]] = {
    400: BadRequest,
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    405: MethodNotAllowed,
    409: Conflict,
    412: PreconditionFailed,
    415: UnsupportedMediaType,
}


def error_from_response(response: httpx.Response) -> CouchDBError:
    """
    Convert a non-2xx CouchDB response into a CouchDBError.

    Args:
        response: Completed response with an error status

    Returns:
        The matching CouchDBError subclass instance

    Raises:
        json.JSONDecodeError: If the response body is not valid JSON
    """
    request = response.request
    error = ""
    reason = ""
    # HEAD responses carry no body
    if request.method != "HEAD" and response.content:
        body = json.loads(response.content)
        if isinstance(body, dict):
            error = body.get("error", "")
            reason = body.get("reason", "")
        else:
            # valid JSON but not an error object; keep it as the reason
            reason = str(body)

    status = response.status_code
    if status >= 500:
        cls = ServerError
    else:
        cls = _STATUS_ERRORS.get(status, CouchDBError)

    logger.warning(f"CouchDB error: {request.method} {request.url} -> {status} {error}: {reason}")
    return cls(request.method, str(request.url), status, error, reason)
