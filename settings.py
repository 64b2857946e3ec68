"""
Runtime configuration from environment variables (and .env)
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_COMMENT_API_URL = "https://frontend-api.pump.fun/replies"


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    host: str = "localhost"
    ws_port: int = 8765
    http_port: int = 8766

    # Upstream comment feed
    token_mint: Optional[str] = None
    comment_api_url: str = DEFAULT_COMMENT_API_URL
    poll_interval: float = 3.0
    poll_limit: int = 50
    request_timeout: float = 5.0
    mock_comments: bool = False

    # Round lifecycle
    restart_delay: float = 2.0
    autostart_delay: float = 1.0
    tick_base_ms: int = 300
    tick_min_ms: int = 100

    max_comments: int = 100
    history_file: Optional[str] = None

    @classmethod
    def from_env(cls, token_mint: Optional[str] = None) -> "Settings":
        """Build settings from the environment; an explicit mint wins over PUMPFUN_TOKEN_MINT"""
        load_dotenv()
        env = os.environ
        return cls(
            host=env.get("SNAKE_HOST", cls.host),
            ws_port=int(env.get("SNAKE_WS_PORT", cls.ws_port)),
            http_port=int(env.get("SNAKE_HTTP_PORT", cls.http_port)),
            token_mint=token_mint or env.get("PUMPFUN_TOKEN_MINT") or None,
            comment_api_url=env.get("PUMPFUN_API_URL", cls.comment_api_url),
            poll_interval=float(env.get("POLL_INTERVAL", cls.poll_interval)),
            poll_limit=int(env.get("POLL_LIMIT", cls.poll_limit)),
            request_timeout=float(env.get("REQUEST_TIMEOUT", cls.request_timeout)),
            mock_comments=_flag(env.get("MOCK_COMMENTS")),
            restart_delay=float(env.get("RESTART_DELAY", cls.restart_delay)),
            autostart_delay=float(env.get("AUTOSTART_DELAY", cls.autostart_delay)),
            tick_base_ms=int(env.get("TICK_BASE_MS", cls.tick_base_ms)),
            tick_min_ms=int(env.get("TICK_MIN_MS", cls.tick_min_ms)),
            max_comments=int(env.get("MAX_COMMENTS", cls.max_comments)),
            history_file=env.get("HISTORY_FILE") or None,
        )
