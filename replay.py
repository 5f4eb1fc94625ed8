"""
Deterministic action traces for episode playback.

A replay stores only the seed, the environment parameters and the action
sequence. Playback rebuilds the game from scratch and feeds the actions back
in; fruit placement comes out identical because the game's generator is
seeded the same way.
"""

import json
import os
from typing import List

from game import Action, EpisodeStats, SnakeGame

ENV_KEYS = ('width', 'height', 'start_length', 'tick_cap', 'stall_window', 'fruit_enabled')


class Replay:
    """Recorded episode: seed, environment config, actions and final stats."""

    def __init__(self, seed: int, env_cfg: dict):
        self.seed = seed
        self.config = {key: env_cfg[key] for key in ENV_KEYS}
        self.actions: List[int] = []
        self.final_stats: EpisodeStats = None

    def record(self, action):
        self.actions.append(int(action))

    def set_final_stats(self, stats: EpisodeStats):
        self.final_stats = stats

    def to_dict(self) -> dict:
        return {
            'seed': self.seed,
            'config': dict(self.config),
            'actions': list(self.actions),
            'final_stats': self.final_stats.to_dict() if self.final_stats is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Replay":
        replay = cls(int(data['seed']), data['config'])
        replay.actions = [int(a) for a in data['actions']]
        if data.get('final_stats') is not None:
            replay.final_stats = EpisodeStats.from_dict(data['final_stats'])
        return replay

    def save(self, path: str):
        """Write the replay as JSON, creating parent directories."""
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> "Replay":
        with open(path, 'r') as f:
            return cls.from_dict(json.load(f))

    # -------------------------------------------------------------------------
    # Playback
    # -------------------------------------------------------------------------
    def playback(self) -> SnakeGame:
        """Fresh game in the recorded starting state."""
        return SnakeGame.from_config(self.config, self.seed)

    def play_to(self, game: SnakeGame, step: int) -> SnakeGame:
        """Advance a playback game through the first `step` recorded actions."""
        step = min(step, len(self.actions))
        for i in range(game.tick, step):
            if not game.alive:
                break
            game.step(Action(self.actions[i]))
        return game

    def run(self) -> EpisodeStats:
        """Re-simulate the whole trace and return the resulting stats."""
        game = self.play_to(self.playback(), len(self.actions))
        return game.stats(self.seed)
