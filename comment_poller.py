"""
Polls the upstream comment feed for the active round and hands new comments to the game loop
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Awaitable, Callable, Optional, Tuple

from comment_source import CommentSourceError, RawComment
from game_store import GameStore
from snake_core import Comment

logger = logging.getLogger(__name__)

# handler(raw, round_id, allow_command) -> (comment or None if the round is gone, applied)
CommentHandler = Callable[[RawComment, str, bool], Awaitable[Tuple[Optional[Comment], bool]]]

MAX_SEEN_IDS = 5000


class CommentPoller:
    def __init__(self, source, store: GameStore, interval: float = 3.0, max_seen: int = MAX_SEEN_IDS):
        self.source = source
        self.store = store
        self.interval = interval
        self.max_seen = max_seen
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._task: Optional[asyncio.Task] = None
        self.round_id: Optional[str] = None
        self.polls = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, round_id: str, handler: CommentHandler):
        """Begin polling for a round; any earlier round's poller is cancelled"""
        self.stop()
        self.round_id = round_id
        self._task = asyncio.create_task(self._run(round_id, handler))
        logger.info("Comment polling started for round %s (every %.1fs)", round_id, self.interval)

    def stop(self):
        if self._task and not self._task.done():
            self._task.cancel()
            logger.info("Comment polling stopped for round %s", self.round_id)
        self._task = None
        self.round_id = None

    def seen(self, comment_id: str) -> bool:
        return comment_id in self._seen

    def _mark_seen(self, comment_id: str):
        self._seen[comment_id] = None
        while len(self._seen) > self.max_seen:
            self._seen.popitem(last=False)

    async def _run(self, round_id: str, handler: CommentHandler):
        # Fixed interval, retried forever; a bad poll only costs one interval
        while True:
            try:
                await self.poll_once(round_id, handler)
            except asyncio.CancelledError:
                raise
            except Exception:
                self.failures += 1
                logger.exception("Unexpected error polling comments for round %s", round_id)
            await asyncio.sleep(self.interval)

    async def poll_once(self, round_id: str, handler: CommentHandler) -> Optional[Comment]:
        """
        One poll: fetch, drop stale results and already-seen ids, feed the rest to the handler.
        At most one command is applied per poll. Returns the comment whose command was applied.
        """
        self.polls += 1
        loop = asyncio.get_running_loop()
        try:
            raw_comments = await loop.run_in_executor(None, self.source.fetch_comments)
        except CommentSourceError as e:
            self.failures += 1
            logger.warning("Comment source unavailable, no command this interval: %s", e)
            return None

        if self.store.active_id() != round_id:
            logger.info("Discarding poll result for superseded round %s", round_id)
            return None

        applied = None
        for raw in raw_comments or []:
            if self.seen(raw.id):
                continue

            comment, was_applied = await handler(raw, round_id, applied is None)
            if comment is None:
                # Round ended while we were handing comments over; the rest stay unseen
                break
            self._mark_seen(raw.id)
            if was_applied:
                applied = comment

        return applied
