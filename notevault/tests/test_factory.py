"""Tests for storage configuration loading and the backend factory."""

import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from notevault.config import Settings
from notevault.dependencies import StorageConfigError
from notevault.storage.factory import (
    LocalStorageConfig,
    S3StorageConfig,
    SupabaseStorageConfig,
    create_storage_service,
    get_storage_service,
    is_supabase_storage,
    load_storage_config,
    reset_storage_service,
)
from notevault.storage.local_storage import LocalStorageService
from notevault.storage.s3_storage import S3StorageService
from notevault.storage.supabase_storage import SupabaseStorageService

pytestmark = pytest.mark.usefixtures("clean_storage_env")


def make_settings(**values: object) -> Settings:
    """Settings from explicit values only, ignoring any .env file."""
    return Settings(_env_file=None, **values)


# =============================================================================
# Config Loading Tests
# =============================================================================


class TestLoadLocalConfig:
    """Tests for the local backend configuration."""

    def test_defaults_to_local(self) -> None:
        """Test that an unset STORAGE_TYPE selects local storage."""
        config = load_storage_config(make_settings())

        assert isinstance(config, LocalStorageConfig)
        assert config.path == Path.cwd() / "uploads"
        assert config.base_url == "http://localhost:3000/api/attachments"

    def test_absolute_path_kept(self, tmp_path: Path) -> None:
        """Test that an absolute STORAGE_LOCAL_PATH is used as-is."""
        config = load_storage_config(make_settings(storage_local_path=str(tmp_path)))

        assert config.path == tmp_path

    def test_base_url_from_app_url(self) -> None:
        """Test that APP_URL determines local attachment URLs."""
        config = load_storage_config(make_settings(app_url="https://notes.example.com/"))

        assert config.base_url == "https://notes.example.com/api/attachments"

    def test_type_is_case_insensitive(self) -> None:
        """Test that STORAGE_TYPE is normalized."""
        assert isinstance(load_storage_config(make_settings(storage_type=" LOCAL ")), LocalStorageConfig)

    def test_unknown_type(self) -> None:
        """Test that unknown backends are rejected with the valid choices."""
        with pytest.raises(StorageConfigError, match="Unknown STORAGE_TYPE 'ftp'") as exc_info:
            load_storage_config(make_settings(storage_type="ftp"))

        assert "local, s3, supabase" in str(exc_info.value)


class TestLoadS3Config:
    """Tests for the S3 backend configuration."""

    def test_complete(self) -> None:
        """Test a fully configured S3 backend."""
        config = load_storage_config(
            make_settings(
                storage_type="s3",
                s3_bucket="bucket",
                s3_region="us-east-1",
                s3_access_key="key",
                s3_secret_key="secret",
                s3_endpoint="http://localhost:9000",
                s3_force_path_style=True,
            )
        )

        assert isinstance(config, S3StorageConfig)
        assert config.bucket == "bucket"
        assert config.endpoint == "http://localhost:9000"
        assert config.force_path_style is True

    def test_missing_variables_named(self) -> None:
        """Test that every missing variable appears in the error."""
        with pytest.raises(StorageConfigError) as exc_info:
            load_storage_config(make_settings(storage_type="s3", s3_bucket="bucket"))

        message = str(exc_info.value)
        assert "S3_REGION" in message
        assert "S3_ACCESS_KEY" in message
        assert "S3_SECRET_KEY" in message
        assert "S3_BUCKET" not in message

    def test_reads_environment(self, clean_storage_env: pytest.MonkeyPatch) -> None:
        """Test that settings are read from environment variables."""
        clean_storage_env.setenv("STORAGE_TYPE", "s3")
        clean_storage_env.setenv("S3_BUCKET", "env-bucket")
        clean_storage_env.setenv("S3_REGION", "eu-west-1")
        clean_storage_env.setenv("S3_ACCESS_KEY", "key")
        clean_storage_env.setenv("S3_SECRET_KEY", "secret")

        config = load_storage_config(make_settings())

        assert isinstance(config, S3StorageConfig)
        assert config.bucket == "env-bucket"
        assert config.endpoint is None


class TestLoadSupabaseConfig:
    """Tests for the Supabase backend configuration."""

    def test_complete(self) -> None:
        """Test a configured Supabase backend with the default bucket."""
        config = load_storage_config(
            make_settings(
                storage_type="supabase",
                supabase_url="https://project.supabase.co",
                supabase_service_role_key="service",
            )
        )

        assert isinstance(config, SupabaseStorageConfig)
        assert config.service_key == "service"
        assert config.bucket == "attachments"

    def test_anon_key_fallback(self) -> None:
        """Test that the anon key is used when no service role key is set."""
        config = load_storage_config(
            make_settings(
                storage_type="supabase",
                supabase_url="https://project.supabase.co",
                supabase_anon_key="anon",
            )
        )

        assert isinstance(config, SupabaseStorageConfig)
        assert config.service_key == "anon"

    def test_missing_url(self) -> None:
        """Test that a missing URL is reported."""
        with pytest.raises(StorageConfigError, match="SUPABASE_URL"):
            load_storage_config(
                make_settings(storage_type="supabase", supabase_service_role_key="service")
            )

    def test_missing_both(self) -> None:
        """Test that both missing variables are named."""
        with pytest.raises(StorageConfigError) as exc_info:
            load_storage_config(make_settings(storage_type="supabase"))

        assert "SUPABASE_URL" in str(exc_info.value)
        assert "SUPABASE_SERVICE_ROLE_KEY" in str(exc_info.value)


# =============================================================================
# Factory Tests
# =============================================================================


class TestCreateStorageService:
    """Tests for building backends from config."""

    def test_local(self, tmp_path: Path) -> None:
        """Test that local config builds a LocalStorageService."""
        service = create_storage_service(LocalStorageConfig(path=tmp_path, base_url="/files"))

        assert isinstance(service, LocalStorageService)
        assert service.base_path == tmp_path
        assert service.base_url == "/files"

    def test_s3(self) -> None:
        """Test that S3 config builds an S3StorageService."""
        service = create_storage_service(
            S3StorageConfig(
                bucket="bucket", region="us-east-1", access_key_id="key", secret_access_key="secret"
            )
        )

        assert isinstance(service, S3StorageService)
        assert service.bucket == "bucket"

    def test_supabase(self) -> None:
        """Test that Supabase config builds a SupabaseStorageService."""
        with patch("notevault.storage.supabase_storage.create_client") as mock_create:
            mock_create.return_value = MagicMock()
            service = create_storage_service(
                SupabaseStorageConfig(url="https://project.supabase.co", service_key="service", bucket="media")
            )

        assert isinstance(service, SupabaseStorageService)
        assert service.bucket == "media"
        assert mock_create.call_args.args[:2] == ("https://project.supabase.co", "service")


class TestProcessWideInstance:
    """Tests for the cached backend instance."""

    def test_same_instance_returned(self, clean_storage_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test that repeated calls return one instance."""
        clean_storage_env.setenv("STORAGE_LOCAL_PATH", str(tmp_path))

        first = get_storage_service()

        assert isinstance(first, LocalStorageService)
        assert get_storage_service() is first

    def test_reset_builds_new_instance(self, clean_storage_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test that reset drops the cached instance."""
        clean_storage_env.setenv("STORAGE_LOCAL_PATH", str(tmp_path))
        first = get_storage_service()

        reset_storage_service()

        assert get_storage_service() is not first

    def test_concurrent_first_use(self, clean_storage_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test that concurrent first calls all see one instance."""
        clean_storage_env.setenv("STORAGE_LOCAL_PATH", str(tmp_path))
        results: list[object] = []
        barrier = threading.Barrier(8)

        def worker() -> None:
            barrier.wait()
            results.append(get_storage_service())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 8
        assert all(result is results[0] for result in results)

    def test_invalid_config_raises_on_first_use(self, clean_storage_env: pytest.MonkeyPatch) -> None:
        """Test that configuration errors surface from get_storage_service."""
        clean_storage_env.setenv("STORAGE_TYPE", "s3")

        with pytest.raises(StorageConfigError, match="S3_BUCKET"):
            get_storage_service()


class TestIsSupabaseStorage:
    """Tests for the backend selector check."""

    def test_true_for_supabase(self) -> None:
        """Test that the Supabase selector is detected."""
        assert is_supabase_storage(make_settings(storage_type="Supabase")) is True

    def test_false_otherwise(self) -> None:
        """Test that other backends are not Supabase."""
        assert is_supabase_storage(make_settings(storage_type="s3")) is False
        assert is_supabase_storage(make_settings()) is False
