"""
Snake Core Game Logic
Rounds, comments and the grid simulation step for the comment-controlled stream
"""

import random
import uuid
from datetime import datetime, timezone
from typing import List, Tuple, Dict, Optional
from enum import Enum
from dataclasses import dataclass, field

GRID_WIDTH = 40   # 800px canvas / 20px cells
GRID_HEIGHT = 30  # 600px canvas / 20px cells

START_CELL = (10, 10)
START_FOOD = (15, 15)

Cell = Tuple[int, int]


class CommentValidationError(ValueError):
    """Raised when a submitted comment is malformed"""


class Direction(Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"

    @property
    def opposite(self) -> "Direction":
        return _OPPOSITES[self]

    @property
    def delta(self) -> Cell:
        return _DELTAS[self]


_OPPOSITES = {
    Direction.UP: Direction.DOWN,
    Direction.DOWN: Direction.UP,
    Direction.LEFT: Direction.RIGHT,
    Direction.RIGHT: Direction.LEFT,
}

_DELTAS = {
    Direction.UP: (0, -1),
    Direction.DOWN: (0, 1),
    Direction.LEFT: (-1, 0),
    Direction.RIGHT: (1, 0),
}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Comment:
    id: str
    username: str
    original_text: str
    command: str  # "up" / "down" / "left" / "right" or "invalid"
    is_valid: bool
    created_at: str
    game_id: Optional[str] = None
    source: str = "api"

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "gameId": self.game_id,
            "username": self.username,
            "originalText": self.original_text,
            "command": self.command,
            "isValid": self.is_valid,
            "createdAt": self.created_at,
            "source": self.source,
        }


@dataclass
class StepResult:
    ate: bool = False
    collision: Optional[str] = None  # "wall" or "self"


@dataclass
class GameRound:
    game_id: str
    snake: List[Cell]
    food: Optional[Cell]
    direction: Direction = Direction.RIGHT
    heading: Direction = Direction.RIGHT  # direction used by the last tick
    score: int = 0
    level: int = 1
    moves: int = 0
    active: bool = True
    started_at: str = field(default_factory=utc_now)
    ended_at: Optional[str] = None
    end_reason: Optional[str] = None

    @classmethod
    def new(cls) -> "GameRound":
        """Fresh round with the default snake, food and direction"""
        return cls(
            game_id=uuid.uuid4().hex,
            snake=[START_CELL],
            food=START_FOOD,
        )

    @property
    def head(self) -> Cell:
        return self.snake[0]

    def copy(self) -> "GameRound":
        return GameRound(
            game_id=self.game_id,
            snake=list(self.snake),
            food=self.food,
            direction=self.direction,
            heading=self.heading,
            score=self.score,
            level=self.level,
            moves=self.moves,
            active=self.active,
            started_at=self.started_at,
            ended_at=self.ended_at,
            end_reason=self.end_reason,
        )

    def can_turn(self, direction: Direction) -> bool:
        """A turn may not reverse the last tick's heading or the pending direction"""
        return direction != self.heading.opposite and direction != self.direction.opposite

    def turn(self, direction: Direction) -> bool:
        if not self.active or not self.can_turn(direction):
            return False
        self.direction = direction
        return True

    def end(self, reason: str):
        self.active = False
        self.ended_at = utc_now()
        self.end_reason = reason

    def to_dict(self) -> Dict:
        return {
            "gameId": self.game_id,
            "snake": [{"x": x, "y": y} for x, y in self.snake],
            "food": {"x": self.food[0], "y": self.food[1]} if self.food else None,
            "direction": self.direction.value,
            "score": self.score,
            "level": self.level,
            "moves": self.moves,
            "isActive": self.active,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
        }


def spawn_food(snake: List[Cell], rng: random.Random,
               width: int = GRID_WIDTH, height: int = GRID_HEIGHT) -> Optional[Cell]:
    """Pick a random free cell, None when the snake fills the grid"""
    occupied = set(snake)
    free = [(x, y) for x in range(width) for y in range(height) if (x, y) not in occupied]
    if not free:
        return None
    return rng.choice(free)


def step(game: GameRound, rng: Optional[random.Random] = None,
         width: int = GRID_WIDTH, height: int = GRID_HEIGHT) -> StepResult:
    """
    Advance the snake one cell in its stored direction.
    Mutates the round in place; a collision leaves the snake where it was.
    """
    rng = rng or random.Random()
    game.heading = game.direction

    dx, dy = game.direction.delta
    hx, hy = game.head
    head = (hx + dx, hy + dy)

    if not (0 <= head[0] < width and 0 <= head[1] < height):
        return StepResult(collision="wall")

    if head in game.snake:
        return StepResult(collision="self")

    game.snake.insert(0, head)
    game.moves += 1

    if head == game.food:
        game.score += 10 * game.level

        # Level up every 5 segments
        if len(game.snake) % 5 == 0:
            game.level += 1

        game.food = spawn_food(game.snake, rng, width, height)
        return StepResult(ate=True)

    game.snake.pop()
    return StepResult()


def tick_interval(level: int, base_ms: int = 300, min_ms: int = 100) -> float:
    """Seconds between ticks; faster with every level"""
    return max(min_ms, base_ms - (level - 1) * 20) / 1000.0
