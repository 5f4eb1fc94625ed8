"""
Track fitness functions: reduce one episode's stats to a scalar score.

The mode is resolved once into a plain function bound to its constants, so
the evaluation loop never looks anything up by name.
"""

from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable

from game import DeathCause, EpisodeStats

# Terminal penalties shared by the fruit and multi tracks
CRASH_PENALTY = 300.0       # wall or self
IDLE_PENALTY = 150.0        # stall or timeout

# Multi track constants
MULTI_FRUIT_REWARD = 8000.0
MULTI_SURVIVAL_W = 2.0
MULTI_SURVIVAL_CAP = 60


class FitnessMode(Enum):
    WALL = 'wall'
    SELF = 'self'
    FRUIT = 'fruit'
    MULTI = 'multi'


@dataclass(frozen=True)
class FitnessParams:
    wall_penalty: float = 500.0
    self_penalty: float = 600.0
    stall_penalty: float = 100.0
    self_wall_scale: float = 0.33
    fruit_reward: float = 5000.0
    survival_cap: int = 40
    survival_w: float = 2.0
    progress_w: float = 10.0

    @classmethod
    def from_config(cls, fitness_cfg: dict) -> "FitnessParams":
        return cls(**{name: fitness_cfg[name] for name in cls.__dataclass_fields__
                      if name in fitness_cfg})


def _terminal_penalty(death: DeathCause) -> float:
    if death in (DeathCause.WALL, DeathCause.SELF):
        return CRASH_PENALTY
    if death in (DeathCause.STALL, DeathCause.TIMEOUT):
        return IDLE_PENALTY
    return 0.0


def fitness_wall(stats: EpisodeStats, params: FitnessParams) -> float:
    score = float(stats.ticks)
    if stats.death == DeathCause.WALL:
        score -= params.wall_penalty
    return score


def fitness_self(stats: EpisodeStats, params: FitnessParams) -> float:
    score = float(stats.ticks)
    if stats.death == DeathCause.SELF:
        score -= params.self_penalty
    elif stats.death == DeathCause.WALL:
        # lighter wall penalty on the self track
        score -= params.wall_penalty * params.self_wall_scale
    elif stats.death == DeathCause.STALL:
        score -= params.stall_penalty
    return score


def fitness_fruit(stats: EpisodeStats, params: FitnessParams) -> float:
    score = params.fruit_reward * stats.fruits
    score += params.survival_w * min(stats.ticks, params.survival_cap)
    score += params.progress_w * stats.progress
    return score - _terminal_penalty(stats.death)


def fitness_multi(stats: EpisodeStats, params: FitnessParams) -> float:
    score = MULTI_FRUIT_REWARD * stats.fruits
    score += MULTI_SURVIVAL_W * min(stats.ticks, MULTI_SURVIVAL_CAP)
    score += params.progress_w * stats.progress
    return score - _terminal_penalty(stats.death)


FITNESS_FUNCTIONS = {
    FitnessMode.WALL: fitness_wall,
    FitnessMode.SELF: fitness_self,
    FitnessMode.FRUIT: fitness_fruit,
    FitnessMode.MULTI: fitness_multi,
}


def make_fitness(fitness_cfg: dict) -> Callable[[EpisodeStats], float]:
    """
    Bind the configured mode and constants into a single-argument function.

    Unknown modes score like the wall track. The result is picklable so it can
    be shipped to worker processes.
    """
    try:
        mode = FitnessMode(fitness_cfg.get('mode', 'wall'))
    except ValueError:
        mode = FitnessMode.WALL
    return partial(FITNESS_FUNCTIONS[mode], params=FitnessParams.from_config(fitness_cfg))
