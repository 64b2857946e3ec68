"""
WebSocket server broadcasting the snake stream to viewers
"""

import asyncio
import json
import logging
import sys
import threading
from typing import Callable, Dict, Optional, Set

import websockets

from comment_poller import CommentPoller
from comment_source import create_comment_source
from game_loop import SnakeGameLoop
from game_store import GameStore
from http_api_server import run_api_server, set_game_loop
from settings import Settings
from snake_core import CommentValidationError
from storage import create_repository

logger = logging.getLogger(__name__)


class BroadcastHub:
    """Tracks viewer connections and fans events out to them in order"""

    def __init__(self, snapshot: Optional[Callable[[], Optional[Dict]]] = None):
        self.clients: Set = set()
        self.snapshot = snapshot or (lambda: None)

    @property
    def count(self) -> int:
        return len(self.clients)

    async def register(self, websocket):
        """Register a new client and send it the live round, if any"""
        self.clients.add(websocket)
        state = self.snapshot()
        if state is not None:
            self._send(websocket, json.dumps({"type": "gameState", "data": state}))
        logger.info("Client connected. Total clients: %d", self.count)

    def unregister(self, websocket):
        """Remove a client; safe to call more than once"""
        self.clients.discard(websocket)

    def send_to(self, websocket, event: Dict):
        self._send(websocket, json.dumps(event))

    async def broadcast(self, event: Dict):
        """Serialize once and send to every open connection"""
        if not self.clients:
            return
        message = json.dumps(event)
        # Copy: failed sends remove clients mid-loop
        for client in list(self.clients):
            self._send(client, message)

    def _send(self, client, message: str) -> bool:
        # websockets.broadcast writes into the connection's buffer without
        # waiting on it, so a stalled viewer never holds up the others.
        # Connections that are not OPEN are skipped by the library.
        try:
            websockets.broadcast([client], message, raise_exceptions=True)
            return True
        except Exception as e:
            logger.warning("Send failed, dropping client: %s", e)
        self.unregister(client)
        return False


class SnakeWebSocketServer:
    def __init__(self, game_loop: SnakeGameLoop, hub: BroadcastHub,
                 host: str = "localhost", port: int = 8765):
        self.game_loop = game_loop
        self.hub = hub
        self.host = host
        self.port = port

    async def handle_client(self, websocket):
        """Handle a client connection"""
        await self.hub.register(websocket)
        try:
            async for message in websocket:
                await self.handle_message(websocket, message)
        except websockets.exceptions.ConnectionClosed:
            logger.debug("Connection closed by client")
        finally:
            self.hub.unregister(websocket)
            logger.info("Client disconnected. Total clients: %d", self.hub.count)

    async def handle_message(self, websocket, message):
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON received: %r", message[:100])
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object message: %r", data)
            return

        kind = data.get("type") or data.get("command")
        if kind == "comment":
            try:
                await self.game_loop.submit_comment(
                    data.get("username"), data.get("originalText"), source="websocket"
                )
            except CommentValidationError as e:
                self.hub.send_to(websocket, {"type": "error", "data": {"message": str(e)}})
        elif kind == "start":
            await self.game_loop.start_round()
        else:
            logger.debug("Ignoring message type %r", kind)

    async def start_server(self):
        """Start the WebSocket server"""
        async with websockets.serve(self.handle_client, self.host, self.port):
            logger.info("Server running at ws://%s:%d", self.host, self.port)
            await asyncio.Future()  # Run forever


def build_game_loop(settings: Settings) -> SnakeGameLoop:
    """Wire store, hub, poller and storage into a game loop"""
    store = GameStore(settings.max_comments)
    hub = BroadcastHub(store.snapshot)

    source = create_comment_source(settings)
    if source:
        poller = CommentPoller(source, store, settings.poll_interval)
        logger.info("Comment source: %s", source.name)
    else:
        poller = None
        logger.warning("No PUMPFUN_TOKEN_MINT set; only HTTP and WebSocket comments will steer the snake")

    repository = create_repository(settings.history_file)
    return SnakeGameLoop(store, hub, poller, repository, settings)


async def main(settings: Settings):
    """Run the WebSocket server, the HTTP API and the game"""
    game_loop = build_game_loop(settings)
    set_game_loop(game_loop, asyncio.get_running_loop())

    api_thread = threading.Thread(
        target=run_api_server,
        args=(settings.host, settings.http_port),
        daemon=True
    )
    api_thread.start()

    server = SnakeWebSocketServer(game_loop, game_loop.hub, settings.host, settings.ws_port)
    try:
        await asyncio.gather(server.start_server(), game_loop.run_forever())
    finally:
        await game_loop.shutdown()


def cli():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    # Token mint may be passed as the first argument
    token_mint = sys.argv[1] if len(sys.argv) > 1 else None
    settings = Settings.from_env(token_mint)

    try:
        asyncio.run(main(settings))
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    cli()
