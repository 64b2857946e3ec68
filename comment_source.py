"""
Upstream comment feeds: the pump.fun token reply API plus a mock feed for offline demos
"""

import hashlib
import random
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

import requests

from snake_core import utc_now


class CommentSourceError(Exception):
    """The upstream feed could not produce a usable result"""


@dataclass
class RawComment:
    id: str
    username: Optional[str]
    text: str
    created_at: str
    source: str


def _comment_id(raw: Dict, username: Optional[str], text: str, created_at: Optional[str]) -> str:
    source_id = raw.get("id")
    if source_id is not None and str(source_id).strip():
        return str(source_id)
    # No upstream id: hash the content so repeated polls still dedupe
    digest = hashlib.sha1(f"{username}|{created_at}|{text}".encode("utf-8")).hexdigest()
    return f"h-{digest[:16]}"


def normalize_comment(raw, source: str = "pumpfun") -> Optional[RawComment]:
    """
    Convert one upstream item into a RawComment.
    Any field may be missing; items without text are dropped (None).
    """
    if not isinstance(raw, dict):
        return None

    text = raw.get("text")
    if not isinstance(text, str) or not text.strip():
        text = raw.get("content")
    if not isinstance(text, str) or not text.strip():
        return None

    user = raw.get("user")
    if isinstance(user, dict):
        username = user.get("username")
    elif isinstance(user, str):
        username = user
    else:
        username = None
    username = username or raw.get("username")
    if not isinstance(username, str) or not username.strip():
        username = None

    created_at = raw.get("created_at") or raw.get("timestamp")
    comment_id = _comment_id(raw, username, text, created_at)

    return RawComment(
        id=comment_id,
        username=username,
        text=text,
        created_at=str(created_at) if created_at is not None else utc_now(),
        source=source,
    )


def _extract_items(payload) -> List:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("replies", "comments", "data"):
            if isinstance(payload.get(key), list):
                return payload[key]
    raise CommentSourceError(f"Unexpected payload shape: {type(payload).__name__}")


class PumpFunCommentSource:
    """Reads the reply thread of one token mint"""

    name = "pumpfun"

    def __init__(self, token_mint: str, base_url: str, limit: int = 50, timeout: float = 5.0):
        self.token_mint = token_mint
        self.base_url = base_url.rstrip("/")
        self.limit = limit
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.token_mint}"

    def fetch_comments(self) -> List[RawComment]:
        """Blocking GET; every failure is raised as CommentSourceError"""
        headers = {
            "Accept": "application/json",
            "User-Agent": "snake-stream/0.1",
        }
        params = {"limit": self.limit, "offset": 0}

        try:
            response = requests.get(self.url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise CommentSourceError(f"Request failed: {e}") from e

        if response.status_code != 200:
            raise CommentSourceError(f"API Error: {response.status_code} - {response.text[:200]}")

        try:
            payload = response.json()
        except ValueError as e:
            raise CommentSourceError(f"Malformed JSON: {e}") from e

        comments = []
        for item in _extract_items(payload):
            comment = normalize_comment(item, self.name)
            if comment:
                comments.append(comment)
        return comments


MOCK_USERS = ["degen_dave", "moonboi", "ser_snek", "paperhands", "wagmi_wendy", None]

MOCK_PHRASES = [
    "go up!!", "DOWN DOWN DOWN", "left pls", "turn right", "hello friends",
    "pump it up", "gm", "right now!", "this snake is cooked", "left left",
    "lfg", "go down", "to the moon",
]


class MockCommentSource:
    """Random chatter so the stream can run without a token"""

    name = "mock"

    def __init__(self, max_per_poll: int = 3, seed: Optional[int] = None):
        self.max_per_poll = max_per_poll
        self.rng = random.Random(seed)

    def fetch_comments(self) -> List[RawComment]:
        count = self.rng.randint(0, self.max_per_poll)
        return [
            RawComment(
                id=uuid.uuid4().hex,
                username=self.rng.choice(MOCK_USERS),
                text=self.rng.choice(MOCK_PHRASES),
                created_at=utc_now(),
                source=self.name,
            )
            for _ in range(count)
        ]


def create_comment_source(settings):
    """Real feed when a mint is configured, mock chatter when asked for, otherwise None"""
    if settings.token_mint:
        return PumpFunCommentSource(
            settings.token_mint,
            settings.comment_api_url,
            limit=settings.poll_limit,
            timeout=settings.request_timeout,
        )
    if settings.mock_comments:
        return MockCommentSource()
    return None
