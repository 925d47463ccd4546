"""
View queries against one design document.

Reduction and grouping are shaped by the query parameters only; rows come
back exactly as the server ordered and aggregated them.
"""
from typing import TYPE_CHECKING, Any, List, Optional
from urllib.parse import quote

from .document import decode
from .models import ViewResponse
from .params import QueryParameters, encode_query

if TYPE_CHECKING:
    from .database import Database


class View:
    """Handle for ``/{db}/_design/{design_name}/_view/...``."""

    def __init__(self, database: "Database", design_name: str):
        self.database = database
        self.design_name = design_name
        self.path = f"_design/{quote(design_name, safe='')}/_view/"

    def get(self, name: str, params: Optional[QueryParameters] = None) -> ViewResponse:
        """Query a view with GET."""
        response = self.database._request("GET", self.path + quote(name, safe=""), query=encode_query(params))
        return decode(ViewResponse, response.json())

    def post(self, name: str, keys: List[Any], params: Optional[QueryParameters] = None) -> ViewResponse:
        """Query a view for an explicit key list sent in the request body."""
        response = self.database._request(
            "POST",
            self.path + quote(name, safe=""),
            query=encode_query(params),
            body={"keys": keys},
        )
        return decode(ViewResponse, response.json())
