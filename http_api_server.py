"""
HTTP API for comments and round control.
Runs in a background thread; every request is executed on the game's event loop.
"""

import asyncio
import json
import logging
from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler
from typing import Any, Dict, Tuple
from urllib.parse import urlparse, parse_qs

from snake_core import CommentValidationError

logger = logging.getLogger(__name__)

# Global references to the running game
GAME_LOOP = None
EVENT_LOOP = None

DEFAULT_COMMENT_LIMIT = 50
REQUEST_TIMEOUT = 10.0


def set_game_loop(game_loop, event_loop: asyncio.AbstractEventLoop):
    global GAME_LOOP, EVENT_LOOP
    GAME_LOOP = game_loop
    EVENT_LOOP = event_loop


def _parse_limit(query: Dict) -> int:
    try:
        limit = int(query.get("limit", [DEFAULT_COMMENT_LIMIT])[0])
    except ValueError:
        return DEFAULT_COMMENT_LIMIT
    return limit if limit > 0 else DEFAULT_COMMENT_LIMIT


async def dispatch(game_loop, method: str, path: str, query: Dict, body: Any) -> Tuple[int, Any]:
    """Route one request; returns (status, json payload)"""
    if path == "/api/comments":
        if method == "POST":
            if not isinstance(body, dict):
                return 400, {"error": "Request body must be a JSON object"}
            try:
                comment = await game_loop.submit_comment(body.get("username"), body.get("originalText"))
            except CommentValidationError as e:
                return 400, {"error": str(e)}
            return 200, comment.to_dict()
        if method == "GET":
            comments = game_loop.store.recent_comments(_parse_limit(query))
            return 200, [c.to_dict() for c in comments]

    elif path == "/api/game/start" and method == "POST":
        game = await game_loop.start_round()
        return 200, {"success": True, "gameId": game.game_id}

    elif path == "/api/game/stop" and method == "POST":
        game = await game_loop.stop_round()
        if game is None:
            return 409, {"error": "No active game"}
        return 200, {"success": True, "gameId": game.game_id, "finalScore": game.score}

    elif path == "/api/game/current" and method == "GET":
        return 200, game_loop.summary()

    elif path == "/api/stats" and method == "GET":
        return 200, game_loop.stats()

    return 404, {"error": "Not found"}


class ApiHandler(BaseHTTPRequestHandler):
    def _send_json(self, status: int, payload):
        body = json.dumps(payload).encode()
        self.send_response(status)
        self.send_header('Content-type', 'application/json')
        self.send_header('Content-Length', str(len(body)))
        self.send_header('Access-Control-Allow-Origin', '*')
        self.end_headers()
        self.wfile.write(body)

    def _read_body(self):
        length = int(self.headers.get('Content-Length') or 0)
        if not length:
            return {}
        return json.loads(self.rfile.read(length))

    def _handle(self, method: str):
        if GAME_LOOP is None or EVENT_LOOP is None:
            self._send_json(503, {"error": "Game loop not available"})
            return

        url = urlparse(self.path)
        try:
            body = self._read_body() if method == "POST" else None
        except (ValueError, UnicodeDecodeError):
            self._send_json(400, {"error": "Invalid JSON body"})
            return

        future = asyncio.run_coroutine_threadsafe(
            dispatch(GAME_LOOP, method, url.path, parse_qs(url.query), body),
            EVENT_LOOP
        )
        try:
            status, payload = future.result(timeout=REQUEST_TIMEOUT)
        except Exception:
            logger.exception("Error handling %s %s", method, url.path)
            status, payload = 500, {"error": "Internal server error"}
        self._send_json(status, payload)

    def do_GET(self):
        self._handle("GET")

    def do_POST(self):
        self._handle("POST")

    def do_OPTIONS(self):
        self.send_response(200)
        self.send_header('Access-Control-Allow-Origin', '*')
        self.send_header('Access-Control-Allow-Methods', 'GET, POST, OPTIONS')
        self.send_header('Access-Control-Allow-Headers', 'Content-Type')
        self.end_headers()

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


def create_api_server(host: str = "localhost", port: int = 8766) -> ThreadingHTTPServer:
    return ThreadingHTTPServer((host, port), ApiHandler)


def run_api_server(host: str = "localhost", port: int = 8766):
    """Run the HTTP API (blocking; meant for a daemon thread)"""
    server = create_api_server(host, port)
    logger.info("HTTP API running on http://%s:%d", host, port)
    server.serve_forever()
