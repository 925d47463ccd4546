"""
Pytest configuration for couchdb-client tests.

Puts the src directory on the Python path and provides clients wired to the
in-memory CouchDB transport.
"""
import sys
import os
from pathlib import Path

import pytest

# Tests never pick up credentials from the environment
os.environ.pop("COUCHDB_USER", None)
os.environ.pop("COUCHDB_PASSWORD", None)

# Add src directory to Python path
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from couchdb_client import Client  # noqa: E402
from couchdb_client.memory import MemoryTransport  # noqa: E402

SERVER_URL = "http://127.0.0.1:5984/"


@pytest.fixture
def memory_transport():
    """Fresh in-memory CouchDB."""
    return MemoryTransport()


@pytest.fixture
def client(memory_transport):
    """Client talking to the in-memory CouchDB."""
    with Client(SERVER_URL, transport=memory_transport) as couch:
        yield couch


@pytest.fixture
def db(client):
    """The "dummy" database, created empty."""
    client.create("dummy")
    return client.use("dummy")
