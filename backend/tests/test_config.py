"""Tests for environment-driven settings."""

from branchreel.config import Settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("BRANCHREEL_DB_PATH", "BRANCHREEL_CORS_ORIGINS", "BRANCHREEL_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings.from_env()
        assert settings.db_path == "branchreel.db"
        assert settings.cors_origins == ["http://localhost:5173"]
        assert settings.log_level == "INFO"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("BRANCHREEL_DB_PATH", "/tmp/videos.db")
        monkeypatch.setenv("BRANCHREEL_CORS_ORIGINS", "http://a.test, http://b.test,")
        monkeypatch.setenv("BRANCHREEL_LOG_LEVEL", "debug")
        settings = Settings.from_env()
        assert settings.db_path == "/tmp/videos.db"
        assert settings.cors_origins == ["http://a.test", "http://b.test"]
        assert settings.log_level == "DEBUG"
