"""Pytest configuration for the companion test suite."""

import os
import sys
import tempfile
from pathlib import Path


def _ensure_test_env() -> None:
    """Seed environment variables before any project module is imported."""
    test_db = Path(tempfile.mkdtemp(prefix="zentia-test-")) / "test.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{test_db}"
    os.environ.pop("INSTANCE_CONNECTION_NAME", None)
    os.environ["GEMINI_API_KEY"] = ""
    os.environ.setdefault("LOG_LEVEL", "WARNING")


_ensure_test_env()

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))
