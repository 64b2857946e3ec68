"""
In-process store for the live round and the recent comment window
"""

from collections import deque
from itertools import islice
from typing import Dict, List, Optional
from snake_core import GameRound, Comment

DEFAULT_MAX_COMMENTS = 100


class GameStore:
    """Holds the one authoritative round plus a bounded ring of recent comments"""

    def __init__(self, max_comments: int = DEFAULT_MAX_COMMENTS):
        if max_comments < 1:
            raise ValueError("max_comments must be positive")
        self.max_comments = max_comments
        self._current: Optional[GameRound] = None
        self._comments = deque(maxlen=max_comments)  # oldest on the left

        # Aggregates for the stats endpoint
        self.total_games = 0
        self.total_comments = 0
        self.total_final_score = 0

    def get_active(self) -> Optional[GameRound]:
        """Copy of the active round, or None"""
        if self._current is None or not self._current.active:
            return None
        return self._current.copy()

    def get_current(self) -> Optional[GameRound]:
        """Copy of the latest round whether or not it has ended"""
        return self._current.copy() if self._current else None

    def active_id(self) -> Optional[str]:
        if self._current is None or not self._current.active:
            return None
        return self._current.game_id

    def set_active(self, game: GameRound):
        self._current = game.copy()

    def snapshot(self) -> Optional[Dict]:
        game = self._current
        if game is None or not game.active:
            return None
        return game.to_dict()

    def append_comment(self, comment: Comment):
        self._comments.append(comment)
        self.total_comments += 1

    def recent_comments(self, limit: int = 50) -> List[Comment]:
        """Most recent first, truncated to limit"""
        if limit <= 0:
            return []
        return list(islice(reversed(self._comments), limit))

    def record_round_end(self, game: GameRound):
        self.total_games += 1
        self.total_final_score += game.score

    def stats(self, active_players: int = 0) -> Dict:
        average = self.total_final_score // self.total_games if self.total_games else 0
        return {
            "totalGames": self.total_games,
            "totalComments": self.total_comments,
            "activePlayers": active_players,
            "averageScore": average,
        }
