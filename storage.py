"""
Best-effort persistence for rounds, comments and aggregate stats.
The live game never depends on these succeeding.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Dict, Optional
from snake_core import GameRound, Comment

logger = logging.getLogger(__name__)


class GameRepository:
    """Interface for the durable record of the stream"""

    def save_round(self, game: GameRound):
        raise NotImplementedError

    def save_comment(self, comment: Comment):
        raise NotImplementedError

    def update_stats(self, stats: Dict):
        raise NotImplementedError


class NullRepository(GameRepository):
    """Used when no history file is configured"""

    def save_round(self, game: GameRound):
        pass

    def save_comment(self, comment: Comment):
        pass

    def update_stats(self, stats: Dict):
        pass


class JsonFileRepository(GameRepository):
    """
    Keeps rounds keyed by id, the last comments and the stats row in one JSON file.
    The whole document is rewritten on each save.
    """

    def __init__(self, path: str, max_comments: int = 100):
        self.path = path
        self.max_comments = max_comments
        self.data = self._load()

    def _load(self) -> Dict:
        empty = {"rounds": {}, "comments": [], "stats": {}}
        if not os.path.exists(self.path):
            return empty
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.exception("Could not read history file %s, starting empty", self.path)
            return empty
        if not isinstance(data, dict):
            logger.error("History file %s is not a JSON object, starting empty", self.path)
            return empty
        data.setdefault("rounds", {})
        data.setdefault("comments", [])
        data.setdefault("stats", {})
        return data

    def _write(self):
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(self.data, f, indent=2)
        os.replace(tmp_path, self.path)

    def save_round(self, game: GameRound):
        duration = _duration_seconds(game.started_at, game.ended_at)
        self.data["rounds"][game.game_id] = {
            "id": game.game_id,
            "score": game.score,
            "level": game.level,
            "moves": game.moves,
            "duration": duration,
            "isActive": game.active,
            "startedAt": game.started_at,
            "endedAt": game.ended_at,
            "endReason": game.end_reason,
        }
        self._write()

    def save_comment(self, comment: Comment):
        self.data["comments"].append(comment.to_dict())
        self.data["comments"] = self.data["comments"][-self.max_comments:]
        self._write()

    def update_stats(self, stats: Dict):
        self.data["stats"] = dict(stats, updatedAt=datetime.now(timezone.utc).isoformat())
        self._write()


def _duration_seconds(started_at: str, ended_at: Optional[str]) -> int:
    if not ended_at:
        return 0
    start = datetime.fromisoformat(started_at)
    end = datetime.fromisoformat(ended_at)
    return max(0, int((end - start).total_seconds()))


def create_repository(history_file: Optional[str]) -> GameRepository:
    if not history_file:
        return NullRepository()
    logger.info("Persisting game history to %s", history_file)
    return JsonFileRepository(history_file)
