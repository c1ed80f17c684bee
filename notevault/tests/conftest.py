"""Shared pytest fixtures."""

import os
import tempfile
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load environment variables before importing app modules
load_dotenv()

# Tests always start from the local backend
os.environ["STORAGE_TYPE"] = "local"
os.environ.setdefault("STORAGE_LOCAL_PATH", os.path.join(tempfile.gettempdir(), "notevault-test"))

from fastapi.testclient import TestClient  # noqa: E402

from notevault.config import get_settings  # noqa: E402
from notevault.main import app  # noqa: E402
from notevault.storage.factory import reset_storage_service  # noqa: E402
from notevault.storage.local_storage import LocalStorageService  # noqa: E402
from notevault.storage.router import get_storage  # noqa: E402

STORAGE_ENV_VARS = (
    "STORAGE_TYPE",
    "STORAGE_LOCAL_PATH",
    "APP_URL",
    "S3_BUCKET",
    "S3_REGION",
    "S3_ACCESS_KEY",
    "S3_SECRET_KEY",
    "S3_ENDPOINT",
    "S3_FORCE_PATH_STYLE",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_ANON_KEY",
    "SUPABASE_BUCKET",
)


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    """Create a temporary storage root directory."""
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture
def local_storage(storage_root: Path) -> LocalStorageService:
    """Create a LocalStorageService rooted in a temporary directory."""
    return LocalStorageService(storage_root, base_url="http://testserver/api/attachments")


@pytest.fixture
def client(local_storage: LocalStorageService) -> Iterator[TestClient]:
    """Create a FastAPI test client backed by temporary local storage."""
    app.dependency_overrides[get_storage] = lambda: local_storage
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def clean_storage_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[pytest.MonkeyPatch]:
    """Remove storage settings from the environment and reset cached state."""
    for name in STORAGE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    reset_storage_service()
    yield monkeypatch
    get_settings.cache_clear()
    reset_storage_service()


@pytest.fixture
def make_export() -> Callable[..., str]:
    """Factory wrapping note XML in an en-export document.

    Usage:
        xml = make_export("<note><title>A</title></note>")
    """

    def _make_export(body: str, **attributes: str) -> str:
        attrs = "".join(f' {name.replace("_", "-")}="{value}"' for name, value in attributes.items())
        return (
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            '<!DOCTYPE en-export SYSTEM "http://xml.evernote.com/pub/evernote-export3.dtd">\n'
            f"<en-export{attrs}>\n{body}\n</en-export>\n"
        )

    return _make_export
