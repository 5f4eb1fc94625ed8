"""
Snake game engine used to score neural policies.

The game is fully deterministic: the only randomness is fruit placement,
drawn from a generator seeded once when the game is created. Replaying the
same action sequence on a game built with the same seed and parameters
reproduces the same episode exactly.

Grid origin (0, 0) is the top-left corner, x grows to the right and y grows
downwards.
"""

import math
from collections import deque
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional, Tuple

import numpy as np


class Direction(IntEnum):
    """Absolute heading, in clockwise order."""
    UP = 0
    RIGHT = 1
    DOWN = 2
    LEFT = 3


class Action(IntEnum):
    """Heading-relative action; a reversal cannot be expressed."""
    STRAIGHT = 0
    LEFT = 1
    RIGHT = 2


class DeathCause(IntEnum):
    NONE = 0
    WALL = 1        # hit a wall
    SELF = 2        # hit own body
    STALL = 3       # no fruit for too long
    TIMEOUT = 4     # tick cap reached

    def __str__(self):
        return self.name.lower()


# Unit step per heading
_STEPS = {
    Direction.UP: (0, -1),
    Direction.RIGHT: (1, 0),
    Direction.DOWN: (0, 1),
    Direction.LEFT: (-1, 0),
}


def turn(direction: Direction, action: Action) -> Direction:
    """Heading after applying a relative action."""
    if action == Action.LEFT:
        return Direction((direction + 3) % 4)
    if action == Action.RIGHT:
        return Direction((direction + 1) % 4)
    return Direction(direction)


def move(cell: Tuple[int, int], direction: Direction, distance: int = 1) -> Tuple[int, int]:
    dx, dy = _STEPS[direction]
    return cell[0] + dx * distance, cell[1] + dy * distance


# =============================================================================
# EPISODE STATISTICS
# =============================================================================

@dataclass(frozen=True)
class EpisodeStats:
    """Outcome of one finished episode."""
    fruits: int
    ticks: int
    progress: float
    death: DeathCause
    seed: int
    score: float = 0.0

    def to_dict(self) -> dict:
        return {
            'fruits': self.fruits,
            'ticks': self.ticks,
            'progress': self.progress,
            'death': str(self.death),
            'seed': self.seed,
            'score': self.score,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EpisodeStats":
        return cls(
            fruits=int(data['fruits']),
            ticks=int(data['ticks']),
            progress=float(data['progress']),
            death=DeathCause[str(data['death']).upper()],
            seed=int(data['seed']),
            score=float(data.get('score', 0.0)),
        )


@dataclass(frozen=True)
class AggregatedStats:
    """Statistics across several episodes of the same policy."""
    score_mean: float = 0.0
    score_std: float = 0.0
    fruits_mean: float = 0.0
    ticks_mean: float = 0.0
    progress_mean: float = 0.0
    death_counts: Dict[str, int] = field(default_factory=dict)
    num_episodes: int = 0

    def robustness_score(self, lam: float) -> float:
        """Ranking score that rewards consistency: mean - lambda * std."""
        return self.score_mean - lam * self.score_std


def aggregate(episodes: List[EpisodeStats]) -> AggregatedStats:
    """
    Compute mean/std statistics from a set of episodes.

    The standard deviation is the population one (divides by n).
    """
    n = len(episodes)
    if n == 0:
        return AggregatedStats()

    death_counts: Dict[str, int] = {}
    for ep in episodes:
        key = str(ep.death)
        death_counts[key] = death_counts.get(key, 0) + 1

    score_mean = sum(ep.score for ep in episodes) / n
    variance = sum((ep.score - score_mean) ** 2 for ep in episodes) / n

    return AggregatedStats(
        score_mean=score_mean,
        score_std=math.sqrt(variance),
        fruits_mean=sum(ep.fruits for ep in episodes) / n,
        ticks_mean=sum(ep.ticks for ep in episodes) / n,
        progress_mean=sum(ep.progress for ep in episodes) / n,
        death_counts=death_counts,
        num_episodes=n,
    )


# =============================================================================
# SIMULATION ENGINE
# =============================================================================
class SnakeGame:
    """Single snake on a bounded grid, advanced one tick per action."""

    def __init__(self, width: int, height: int, start_length: int, tick_cap: int,
                 stall_window: int, fruit_enabled: bool, seed: int):
        self.width = width
        self.height = height
        self.start_length = start_length
        self.tick_cap = tick_cap
        self.stall_window = stall_window
        self.fruit_enabled = fruit_enabled
        self.seed = seed

        self.rng = np.random.default_rng(seed)
        self.reset()

    @classmethod
    def from_config(cls, env_cfg: dict, seed: int) -> "SnakeGame":
        return cls(env_cfg['width'], env_cfg['height'], env_cfg['start_length'],
                   env_cfg['tick_cap'], env_cfg['stall_window'], env_cfg['fruit_enabled'], seed)

    def reset(self):
        """Place the snake in the centre facing right, tail extending left."""
        self.tick = 0
        self.ticks_no_fruit = 0
        self.fruits_eaten = 0
        self.alive = True
        self.death = DeathCause.NONE
        self.progress = 0.0
        self.last_fruit_dist = 0.0

        center_x = self.width // 2
        center_y = self.height // 2
        self.direction = Direction.RIGHT

        # Head at index 0
        self.body = deque((center_x - i, center_y) for i in range(self.start_length))
        self.occupied = set(self.body)

        self.fruit: Optional[Tuple[int, int]] = None
        if self.fruit_enabled:
            self._spawn_fruit()
            self.last_fruit_dist = self._distance_to_fruit()

    # -------------------------------------------------------------------------
    # Transition
    # -------------------------------------------------------------------------
    def step(self, action):
        """Advance one tick. Does nothing once the episode is over."""
        if not self.alive:
            return

        self.tick += 1
        self.ticks_no_fruit += 1

        self.direction = turn(self.direction, Action(action))
        new_head = move(self.body[0], self.direction)

        if not self.in_bounds(new_head):
            self._die(DeathCause.WALL)
            return

        # The tail vacates this tick, so it is not an obstacle
        if new_head in self.occupied and new_head != self.body[-1]:
            self._die(DeathCause.SELF)
            return

        if self.fruit_enabled and new_head == self.fruit:
            self.body.appendleft(new_head)
            self.occupied.add(new_head)
            self.fruits_eaten += 1
            self.ticks_no_fruit = 0
            self._spawn_fruit()
            self.last_fruit_dist = self._distance_to_fruit()
        else:
            tail = self.body.pop()
            self.occupied.discard(tail)
            self.body.appendleft(new_head)
            self.occupied.add(new_head)

            if self.fruit_enabled:
                new_dist = self._distance_to_fruit()
                improvement = self.last_fruit_dist - new_dist
                if improvement > 0:
                    self.progress += improvement
                self.last_fruit_dist = new_dist

        if self.ticks_no_fruit >= self.stall_window:
            self._die(DeathCause.STALL)
        elif self.tick >= self.tick_cap:
            self._die(DeathCause.TIMEOUT)

    def _die(self, cause: DeathCause):
        self.alive = False
        self.death = cause

    def _spawn_fruit(self):
        """Place fruit uniformly at random on an empty cell (row-major order)."""
        empty = [(x, y) for y in range(self.height) for x in range(self.width)
                 if (x, y) not in self.occupied]
        if empty:
            self.fruit = empty[int(self.rng.integers(len(empty)))]
        else:
            # Board is full, nothing left to eat
            self.fruit = None

    def _distance_to_fruit(self) -> float:
        if self.fruit is None:
            return 0.0
        hx, hy = self.body[0]
        return float(abs(hx - self.fruit[0]) + abs(hy - self.fruit[1]))

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------
    @property
    def head(self) -> Tuple[int, int]:
        return self.body[0]

    @property
    def tail(self) -> Tuple[int, int]:
        return self.body[-1]

    @property
    def length(self) -> int:
        return len(self.body)

    def in_bounds(self, cell: Tuple[int, int]) -> bool:
        return 0 <= cell[0] < self.width and 0 <= cell[1] < self.height

    def stats(self, seed: int = None) -> EpisodeStats:
        """Episode statistics so far (final once the game is over)."""
        return EpisodeStats(
            fruits=self.fruits_eaten,
            ticks=self.tick,
            progress=self.progress,
            death=self.death,
            seed=self.seed if seed is None else seed,
        )

    # -------------------------------------------------------------------------
    # Sensors (read-only queries used by feature extraction)
    # -------------------------------------------------------------------------
    def _probe(self, action) -> Tuple[int, int]:
        return move(self.body[0], turn(self.direction, Action(action)))

    def is_danger_wall(self, action) -> bool:
        """Would this action run into a wall?"""
        return not self.in_bounds(self._probe(action))

    def is_danger_body(self, action) -> bool:
        """Would this action run into the body (tail excluded)?"""
        cell = self._probe(action)
        return cell in self.occupied and cell != self.body[-1]

    def is_danger(self, action) -> bool:
        return self.is_danger_wall(action) or self.is_danger_body(action)

    def body_distance(self, action) -> float:
        """
        Distance to the first body cell along a ray in the turned heading.

        Returns the distance normalised by width + height, or 1.0 when the ray
        leaves the grid without touching the body.
        """
        direction = turn(self.direction, Action(action))
        head = self.body[0]
        max_dist = self.width + self.height

        for dist in range(1, max_dist):
            cell = move(head, direction, dist)
            if not self.in_bounds(cell):
                return 1.0
            if cell in self.occupied:
                return dist / max_dist
        return 1.0

    def fruit_direction(self) -> Tuple[float, float]:
        """
        Fruit offset in the heading-relative frame.

        Returns (x, y) where positive y points forward and positive x points to
        the snake's right, both normalised by width + height.
        """
        if self.fruit is None:
            return 0.0, 0.0

        hx, hy = self.body[0]
        max_d = self.width + self.height
        dx = (self.fruit[0] - hx) / max_d
        dy = (self.fruit[1] - hy) / max_d

        if self.direction == Direction.UP:
            return dx, -dy
        if self.direction == Direction.RIGHT:
            return dy, dx
        if self.direction == Direction.DOWN:
            return -dx, dy
        return -dy, -dx

    def fruit_distance_norm(self) -> float:
        if self.fruit is None:
            return 1.0
        return self._distance_to_fruit() / (self.width + self.height)

    def length_norm(self) -> float:
        return len(self.body) / (self.width * self.height)

    def tail_direction(self) -> Tuple[float, float]:
        """World-frame offset from head to tail, normalised by width + height."""
        hx, hy = self.body[0]
        tx, ty = self.body[-1]
        max_d = self.width + self.height
        return (tx - hx) / max_d, (ty - hy) / max_d
