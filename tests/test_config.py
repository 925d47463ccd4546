"""
Tests for environment configuration and Client.from_env.
"""

import logging

import httpx

from couchdb_client import Client, Config, setup_logging


class TestConfig:
    """Test Config defaults and credentials."""

    def test_auth_missing(self, monkeypatch):
        monkeypatch.setattr(Config, "COUCHDB_USER", None)
        monkeypatch.setattr(Config, "COUCHDB_PASSWORD", None)
        assert Config.get_auth() is None

    def test_auth_needs_both_values(self, monkeypatch):
        monkeypatch.setattr(Config, "COUCHDB_USER", "admin")
        monkeypatch.setattr(Config, "COUCHDB_PASSWORD", None)
        assert Config.get_auth() is None

    def test_auth(self, monkeypatch):
        monkeypatch.setattr(Config, "COUCHDB_USER", "admin")
        monkeypatch.setattr(Config, "COUCHDB_PASSWORD", "secret")
        assert Config.get_auth() == ("admin", "secret")

    def test_setup_logging_returns_logger(self):
        logger = setup_logging()
        assert isinstance(logger, logging.Logger)


class TestFromEnv:
    """Test building a client from Config."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setattr(Config, "COUCHDB_URL", "http://couch.example:5984")
        monkeypatch.setattr(Config, "COUCHDB_USER", None)
        monkeypatch.setattr(Config, "COUCHDB_PASSWORD", None)
        monkeypatch.setattr(Config, "COUCHDB_TIMEOUT", 7.5)

        with Client.from_env() as couch:
            assert couch.url == "http://couch.example:5984/"
            assert couch.http.timeout == httpx.Timeout(7.5)

    def test_basic_auth_is_sent(self, monkeypatch):
        monkeypatch.setattr(Config, "COUCHDB_USER", "admin")
        monkeypatch.setattr(Config, "COUCHDB_PASSWORD", "secret")
        seen = []

        def handler(request):
            seen.append(request.headers.get("authorization"))
            return httpx.Response(200, json=[])

        with Client("http://127.0.0.1:5984/", transport=httpx.MockTransport(handler)) as couch:
            couch.all()
        assert seen[0].startswith("Basic ")
