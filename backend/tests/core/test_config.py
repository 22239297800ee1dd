"""Tests for application configuration."""
import pytest

from core.config import Settings


class TestCorsOriginsParsing:
    """Tests for CORS origins parsing from environment variables."""

    def test_parse_multiple_origins_comma_separated(self) -> None:
        """Multiple comma-separated origins are parsed correctly."""
        settings = Settings(
            _env_file=None,
            database_url="postgresql://test",
            CORS_ORIGINS="http://localhost:3000,https://example.com",
        )
        assert settings.cors_origins == [
            "http://localhost:3000",
            "https://example.com",
        ]

    def test_parse_origins_with_whitespace_and_trailing_comma(self) -> None:
        """Whitespace is stripped and empty entries are filtered."""
        settings = Settings(
            _env_file=None,
            database_url="postgresql://test",
            CORS_ORIGINS="  http://localhost:3000 , https://example.com ,",
        )
        assert settings.cors_origins == [
            "http://localhost:3000",
            "https://example.com",
        ]

    def test_parse_empty_string(self) -> None:
        """Empty string results in empty list."""
        settings = Settings(_env_file=None, database_url="postgresql://test", CORS_ORIGINS="")
        assert settings.cors_origins == []

    def test_default_cors_origins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Default CORS origins is localhost:3000."""
        monkeypatch.delenv("CORS_ORIGINS", raising=False)
        settings = Settings(_env_file=None, database_url="postgresql://test")
        assert settings.cors_origins == ["http://localhost:3000"]


class TestProviderAndTuningDefaults:
    """Tests for AI provider and pipeline tuning settings."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Unset provider keys mean 'not configured'; tuning has sensible defaults."""
        for name in ("ANTHROPIC_API_KEY", "GOOGLE_API_KEY", "OPENAI_API_KEY"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None, database_url="postgresql://test")

        assert settings.anthropic_api_key == ""
        assert settings.google_api_key == ""
        assert settings.openai_api_key == ""
        assert settings.max_generated_tags == 5
        assert settings.max_merged_tags == 8
        assert settings.max_image_tags == 10
        assert settings.search_overfetch_factor == 3
        assert settings.embedding_content_chars == 2000
        assert settings.embedding_max_chars == 8000

    def test_env_aliases(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Settings read their upper-case environment variable names."""
        monkeypatch.setenv("GOOGLE_API_KEY", "g-key")
        monkeypatch.setenv("SEARCH_OVERFETCH_FACTOR", "5")
        monkeypatch.setenv("EMBEDDING_WORKERS", "4")
        settings = Settings(_env_file=None, database_url="postgresql://test")

        assert settings.google_api_key == "g-key"
        assert settings.search_overfetch_factor == 5
        assert settings.embedding_workers == 4


class TestDevModeSecurityValidation:
    """Tests for DEV_MODE security guard against production database usage."""

    @pytest.mark.parametrize(
        "database_url",
        [
            "postgresql://localhost:5432/test",
            "postgresql://127.0.0.1:5432/test",
            "postgresql://[::1]:5432/test",
        ],
    )
    def test__dev_mode_allowed_with_local_database(self, database_url: str) -> None:
        """DEV_MODE can be enabled with a local database."""
        settings = Settings(_env_file=None, database_url=database_url, DEV_MODE="true")
        assert settings.dev_mode is True

    @pytest.mark.parametrize(
        "database_url",
        [
            "postgresql://prod-db.railway.app:5432/bookmarks",
            "postgresql://192.168.1.100:5432/test",
            "postgresql:///database",
        ],
    )
    def test__dev_mode_blocked_with_non_local_database(self, database_url: str) -> None:
        """DEV_MODE raises error unless the database host is local (fail-safe)."""
        with pytest.raises(
            ValueError,
            match="DEV_MODE cannot be enabled with a non-local database",
        ):
            Settings(_env_file=None, database_url=database_url, DEV_MODE="true")

    def test__dev_mode_disabled_allows_production_database(self) -> None:
        """Production database is allowed when DEV_MODE is disabled."""
        settings = Settings(
            _env_file=None,
            database_url="postgresql://prod-db.railway.app:5432/bookmarks",
            DEV_MODE="false",
        )
        assert settings.dev_mode is False
