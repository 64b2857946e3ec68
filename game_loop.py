"""
Round lifecycle for the comment-controlled snake stream.
Starts, ticks, ends and auto-restarts rounds, and routes comments into commands.
"""

import asyncio
import logging
import random
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple

from commands import parse_command, command_label
from comment_source import RawComment
from game_store import GameStore
from settings import Settings
from snake_core import (
    Comment,
    CommentValidationError,
    Direction,
    GameRound,
    step,
    tick_interval,
    utc_now,
)
from storage import GameRepository, NullRepository

logger = logging.getLogger(__name__)

ANONYMOUS = "Anonymous"
MAX_TEXT_LENGTH = 500
MAX_USERNAME_LENGTH = 64

EVENTS = ("gameStarted", "scoreUpdated", "moveRequested", "gameOver")


def validate_comment_input(username, text) -> Tuple[str, str]:
    """Returns (username, text) or raises CommentValidationError"""
    if not isinstance(text, str) or not text.strip():
        raise CommentValidationError("originalText is required and must be a non-empty string")
    if len(text) > MAX_TEXT_LENGTH:
        raise CommentValidationError(f"originalText must be at most {MAX_TEXT_LENGTH} characters")

    if username is None:
        return ANONYMOUS, text
    if not isinstance(username, str):
        raise CommentValidationError("username must be a string")
    username = username.strip()
    if len(username) > MAX_USERNAME_LENGTH:
        raise CommentValidationError(f"username must be at most {MAX_USERNAME_LENGTH} characters")
    return username or ANONYMOUS, text


class SnakeGameLoop:
    """Owns round transitions; every state change runs as one step on the event loop"""

    def __init__(self, store: GameStore, hub, poller=None,
                 repository: Optional[GameRepository] = None,
                 settings: Optional[Settings] = None,
                 rng: Optional[random.Random] = None):
        self.store = store
        self.hub = hub
        self.poller = poller
        self.repository = repository or NullRepository()
        self.settings = settings or Settings()
        self.rng = rng or random.Random()
        self.callbacks: Dict[str, List[Callable]] = {event: [] for event in EVENTS}
        self._tick_task: Optional[asyncio.Task] = None
        self._restart_task: Optional[asyncio.Task] = None
        # One worker: writes land in the order they were made
        self._storage = ThreadPoolExecutor(max_workers=1, thread_name_prefix="storage")

    # Events

    def subscribe(self, event: str, callback: Callable):
        """Add a callback for gameStarted / scoreUpdated / moveRequested / gameOver"""
        if event not in self.callbacks:
            raise ValueError(f"Unknown event: {event}")
        self.callbacks[event].append(callback)

    def _emit(self, event: str, payload: Dict):
        for callback in self.callbacks[event]:
            try:
                callback(payload)
            except Exception:
                logger.exception("%s callback failed", event)

    def _persist(self, operation: Callable, *args):
        """Queue a repository call on the storage thread; the event loop never waits on disk"""
        self._storage.submit(self._persist_now, operation, *args)

    @staticmethod
    def _persist_now(operation: Callable, *args):
        # Storage is best-effort; the in-memory round stays authoritative
        try:
            operation(*args)
        except Exception:
            logger.exception("Persistence failed in %s", getattr(operation, "__name__", operation))

    async def flush_storage(self):
        """Wait for every queued repository call to finish"""
        await asyncio.get_running_loop().run_in_executor(self._storage, lambda: None)

    # Lifecycle

    async def start_round(self) -> GameRound:
        """End whatever is running and start a fresh round"""
        self._cancel_restart()

        while self.store.active_id() is not None:
            await self.stop_round("superseded")

        game = GameRound.new()
        self.store.set_active(game)
        if self.poller:
            self.poller.start(game.game_id, self.ingest_polled_comment)
        self._tick_task = asyncio.create_task(self._run_ticks(game.game_id))
        logger.info("New game started: %s", game.game_id)

        self._persist(self.repository.save_round, game)
        data = game.to_dict()
        await self.hub.broadcast({"type": "gameStarted", "data": data})
        self._emit("gameStarted", data)
        return game

    async def stop_round(self, reason: str = "stopped") -> Optional[GameRound]:
        """
        End the active round. Returns the ended round, or None if nothing was active.
        Only collisions and tick errors schedule a restart; a pending one is left alone here.
        """
        game = self.store.get_active()
        if game is None:
            return None

        game.end(reason)
        self.store.set_active(game)
        self.store.record_round_end(game)
        if self.poller:
            self.poller.stop()
        self._cancel_ticks()
        logger.info("Game %s ended (%s) with score %d", game.game_id, reason, game.score)

        self._persist(self.repository.save_round, game)
        self._persist(self.repository.update_stats, self.stats())

        data = {
            "gameId": game.game_id,
            "finalScore": game.score,
            "level": game.level,
            "moves": game.moves,
            "reason": reason,
        }
        await self.hub.broadcast({"type": "gameEnded", "data": data})
        self._emit("gameOver", data)
        return game

    async def _end_and_restart(self, reason: str):
        ended = await self.stop_round(reason)
        if ended:
            self._schedule_restart()

    def _schedule_restart(self):
        self._cancel_restart()
        self._restart_task = asyncio.create_task(self._restart_after(self.settings.restart_delay))

    async def _restart_after(self, delay: float):
        await asyncio.sleep(delay)
        logger.info("Auto-restarting after %.1fs", delay)
        await self.start_round()

    def _cancel_restart(self):
        task = self._restart_task
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._restart_task = None

    def _cancel_ticks(self):
        task = self._tick_task
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._tick_task = None

    @property
    def restart_pending(self) -> bool:
        return self._restart_task is not None and not self._restart_task.done()

    # Simulation

    async def _run_ticks(self, round_id: str):
        while self.store.active_id() == round_id:
            game = self.store.get_active()
            await asyncio.sleep(tick_interval(game.level, self.settings.tick_base_ms, self.settings.tick_min_ms))
            try:
                await self.tick(round_id)
            except Exception:
                logger.exception("Tick failed for round %s", round_id)
                if self.store.active_id() == round_id:
                    await self._end_and_restart("error")
                return

    async def tick(self, round_id: Optional[str] = None):
        """Advance the active round one cell; ends it on collision"""
        game = self.store.get_active()
        if game is None or (round_id is not None and game.game_id != round_id):
            return None

        result = step(game, self.rng)
        self.store.set_active(game)

        if result.collision:
            await self._end_and_restart(result.collision)
            return result

        await self.hub.broadcast({"type": "gameTick", "data": game.to_dict()})
        if result.ate:
            data = {"gameId": game.game_id, "score": game.score, "level": game.level}
            await self.hub.broadcast({"type": "scoreUpdated", "data": data})
            self._emit("scoreUpdated", data)
        return result

    # Commands

    def apply_command(self, round_id: str, direction: Direction) -> bool:
        """Turn the snake if round_id is still the active round and the turn is not a reversal"""
        game = self.store.get_active()
        if game is None or game.game_id != round_id:
            logger.debug("Dropping %s for stale round %s", direction.value, round_id)
            return False
        if not game.turn(direction):
            return False
        self.store.set_active(game)
        self._emit("moveRequested", {"gameId": round_id, "direction": direction.value})
        return True

    async def submit_comment(self, username, text, source: str = "api") -> Comment:
        """Validate, store and act on a comment from the HTTP or WebSocket surface"""
        username, text = validate_comment_input(username, text)
        raw = RawComment(
            id=uuid.uuid4().hex,
            username=username,
            text=text,
            created_at=utc_now(),
            source=source,
        )
        comment, _ = await self._ingest(raw, allow_command=True)
        return comment

    async def ingest_polled_comment(self, raw: RawComment, round_id: str,
                                    allow_command: bool) -> Tuple[Optional[Comment], bool]:
        if self.store.active_id() != round_id:
            return None, False
        return await self._ingest(raw, allow_command)

    async def _ingest(self, raw: RawComment, allow_command: bool) -> Tuple[Comment, bool]:
        direction = parse_command(raw.text)
        active_id = self.store.active_id()
        comment = Comment(
            id=raw.id,
            username=raw.username or ANONYMOUS,
            original_text=raw.text,
            command=command_label(direction),
            is_valid=direction is not None,
            created_at=raw.created_at,
            game_id=active_id,
            source=raw.source,
        )
        self.store.append_comment(comment)

        applied = False
        if direction and allow_command and active_id:
            applied = self.apply_command(active_id, direction)

        self._persist(self.repository.save_comment, comment)

        if applied:
            await self.hub.broadcast({
                "type": "commandReceived",
                "data": {
                    "command": direction.value,
                    "direction": direction.name,
                    "comment": comment.to_dict(),
                    "gameId": active_id,
                },
            })
        await self.hub.broadcast({"type": "newComment", "data": comment.to_dict()})
        return comment, applied

    # Queries

    def summary(self) -> Dict:
        current = self.store.get_current()
        return {
            "game": {
                "id": current.game_id,
                "isActive": current.active,
                "score": current.score,
                "level": current.level,
            } if current else None,
            "gameState": current.to_dict() if current else None,
            "connectedPlayers": self.hub.count,
        }

    def stats(self) -> Dict:
        return self.store.stats(active_players=self.hub.count)

    async def run_forever(self):
        """Auto-start the first round, then keep the stream going until cancelled"""
        await asyncio.sleep(self.settings.autostart_delay)
        await self.start_round()
        logger.info("Snake game auto-started for 24/7 streaming")
        await asyncio.Future()

    async def shutdown(self):
        self._cancel_restart()
        await self.stop_round("shutdown")
        if self.poller:
            self.poller.stop()
        await self.flush_storage()
        self._storage.shutdown()
