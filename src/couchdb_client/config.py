"""
Client configuration loaded from environment variables (and a .env file).
"""
import os
import logging
from typing import Optional, Tuple
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Centralized configuration loaded from environment variables."""

    # CouchDB
    COUCHDB_URL = os.getenv("COUCHDB_URL", "http://localhost:5984/")
    COUCHDB_USER = os.getenv("COUCHDB_USER")
    COUCHDB_PASSWORD = os.getenv("COUCHDB_PASSWORD")
    COUCHDB_TIMEOUT = float(os.getenv("COUCHDB_TIMEOUT", "30"))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def get_auth(cls) -> Optional[Tuple[str, str]]:
        """Basic auth credentials, or None when not configured."""
        if cls.COUCHDB_USER and cls.COUCHDB_PASSWORD:
            return cls.COUCHDB_USER, cls.COUCHDB_PASSWORD
        return None


def setup_logging():
    """Configure logging based on LOG_LEVEL."""
    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    return logging.getLogger(__name__)
