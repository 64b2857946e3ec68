"""
Tests for environment configuration
"""

from settings import Settings, DEFAULT_COMMENT_API_URL


class TestSettingsFromEnv:
    def test_defaults(self, monkeypatch):
        for name in ("PUMPFUN_TOKEN_MINT", "POLL_INTERVAL", "MOCK_COMMENTS", "HISTORY_FILE",
                     "SNAKE_WS_PORT", "PUMPFUN_API_URL"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings.from_env()
        assert settings.token_mint is None
        assert settings.poll_interval == 3.0
        assert settings.ws_port == 8765
        assert settings.comment_api_url == DEFAULT_COMMENT_API_URL
        assert settings.mock_comments is False
        assert settings.history_file is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("PUMPFUN_TOKEN_MINT", "EnvMint")
        monkeypatch.setenv("POLL_INTERVAL", "1.5")
        monkeypatch.setenv("MAX_COMMENTS", "20")
        monkeypatch.setenv("MOCK_COMMENTS", "yes")
        settings = Settings.from_env()
        assert settings.token_mint == "EnvMint"
        assert settings.poll_interval == 1.5
        assert settings.max_comments == 20
        assert settings.mock_comments is True

    def test_cli_mint_wins(self, monkeypatch):
        monkeypatch.setenv("PUMPFUN_TOKEN_MINT", "EnvMint")
        assert Settings.from_env("ArgMint").token_mint == "ArgMint"
