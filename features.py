"""
Observation encodings: turn a game state into the policy's input vector.

Each extractor owns a single float32 buffer that is overwritten in place on
every call, so extraction does not allocate once the extractor exists.
"""

from enum import Enum

import numpy as np

import config
from game import Action, SnakeGame

_S, _L, _R = Action.STRAIGHT, Action.LEFT, Action.RIGHT


class ObsType(Enum):
    WALL = 'wall'      # 3: wall danger ahead/left/right
    SELF = 'self'      # 6: any danger + body ray distances
    FRUIT = 'fruit'    # 6: fruit direction + any danger + length
    MULTI = 'multi'    # 10: danger + rays + fruit direction/distance + length


OBS_DIMS = {obs: config.OBS_DIMS[obs.value] for obs in ObsType}


def obs_type_from_name(name: str) -> ObsType:
    """Resolve an encoding name ('fruit' or 'fruit_min'); unknown names give WALL."""
    if name and name.endswith('_min'):
        name = name[:-4]
    try:
        return ObsType(name)
    except ValueError:
        return ObsType.WALL


def obs_dim(name: str) -> int:
    return OBS_DIMS[obs_type_from_name(name)]


class FeatureExtractor:
    """Builds observation vectors for one encoding."""

    def __init__(self, obs_type):
        if not isinstance(obs_type, ObsType):
            obs_type = obs_type_from_name(obs_type)
        self.obs_type = obs_type
        self.buffer = np.zeros(OBS_DIMS[obs_type], dtype=np.float32)
        self._fill = {
            ObsType.WALL: self._extract_wall,
            ObsType.SELF: self._extract_self,
            ObsType.FRUIT: self._extract_fruit,
            ObsType.MULTI: self._extract_multi,
        }[obs_type]

    @property
    def size(self) -> int:
        return self.buffer.shape[0]

    def extract(self, game: SnakeGame) -> np.ndarray:
        """Fill and return the internal buffer (do not keep references across calls)."""
        self._fill(game)
        return self.buffer

    def _extract_wall(self, game):
        buf = self.buffer
        buf[0] = game.is_danger_wall(_S)
        buf[1] = game.is_danger_wall(_L)
        buf[2] = game.is_danger_wall(_R)

    def _extract_self(self, game):
        buf = self.buffer
        buf[0] = game.is_danger(_S)
        buf[1] = game.is_danger(_L)
        buf[2] = game.is_danger(_R)
        buf[3] = game.body_distance(_S)
        buf[4] = game.body_distance(_L)
        buf[5] = game.body_distance(_R)

    def _extract_fruit(self, game):
        buf = self.buffer
        buf[0], buf[1] = game.fruit_direction()
        buf[2] = game.is_danger(_S)
        buf[3] = game.is_danger(_L)
        buf[4] = game.is_danger(_R)
        buf[5] = game.length_norm()

    def _extract_multi(self, game):
        buf = self.buffer
        buf[0] = game.is_danger(_S)
        buf[1] = game.is_danger(_L)
        buf[2] = game.is_danger(_R)
        buf[3] = game.body_distance(_S)
        buf[4] = game.body_distance(_L)
        buf[5] = game.body_distance(_R)
        buf[6], buf[7] = game.fruit_direction()
        buf[8] = game.fruit_distance_norm()
        buf[9] = game.length_norm()
