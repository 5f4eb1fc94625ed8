"""
Episode evaluation and the parallel scoring passes.

Every episode builds its own game, network and feature extractor from an
explicit seed, so results do not depend on which worker ran them or in which
order. Workers only return stats; the orchestrating process writes each
result into the agent it was computed for.
"""

import multiprocessing
import os
from concurrent.futures import ProcessPoolExecutor
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

import numpy as np
import torch

from features import FeatureExtractor, obs_type_from_name
from fitness import make_fitness
from game import AggregatedStats, EpisodeStats, SnakeGame, aggregate
from genetics import Agent
from policy import PolicyNetwork
from replay import Replay


class EpisodeRunner:
    """Plays complete episodes for one track configuration."""

    def __init__(self, cfg: dict):
        self.cfg = cfg
        self.env_cfg = cfg['env']
        self.obs_type = obs_type_from_name(cfg['track']['obs'])
        self.fitness_fn = make_fitness(cfg['fitness'])

    def new_game(self, seed: int) -> SnakeGame:
        return SnakeGame.from_config(self.env_cfg, seed)

    def run(self, genome: np.ndarray, seed: int, replay: Replay = None) -> EpisodeStats:
        """Play one episode to its end and return scored stats."""
        game = self.new_game(seed)
        network = PolicyNetwork.from_config(self.cfg, genome)
        extractor = FeatureExtractor(self.obs_type)
        # The extractor refills the same buffer, so one tensor view serves every tick
        obs = torch.from_numpy(extractor.buffer)

        while game.alive:
            extractor.extract(game)
            action = network.forward(obs)
            if replay is not None:
                replay.record(action)
            game.step(action)

        stats = game.stats(seed)
        return replace(stats, score=float(self.fitness_fn(stats)))

    def run_seeds(self, genome: np.ndarray, seeds: Sequence[int]) -> List[EpisodeStats]:
        return [self.run(genome, seed) for seed in seeds]


# =============================================================================
# WORKER PROCESS
# =============================================================================

_WORKER_RUNNER: Optional[EpisodeRunner] = None


def _init_worker(cfg: dict) -> None:
    global _WORKER_RUNNER
    # Tiny matrices; intra-op threads only add contention between workers
    torch.set_num_threads(1)
    _WORKER_RUNNER = EpisodeRunner(cfg)


def _run_seeds_worker(genome: np.ndarray, seeds: Sequence[int]) -> List[EpisodeStats]:
    if _WORKER_RUNNER is None:
        raise RuntimeError("Worker not initialized")
    return _WORKER_RUNNER.run_seeds(genome, seeds)


# =============================================================================
# EVALUATOR
# =============================================================================
class Evaluator:
    """
    Scores agents on one or many seeds using a fixed-size worker pool.

    Each public pass blocks until every episode in its batch has finished.
    """

    def __init__(self, cfg: dict):
        self.cfg = cfg
        self.runner = EpisodeRunner(cfg)
        workers = cfg['eval']['workers']
        self.workers = workers if workers > 0 else (os.cpu_count() or 1)
        self._executor: Optional[ProcessPoolExecutor] = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _pool(self) -> ProcessPoolExecutor:
        if self._executor is None:
            self._executor = ProcessPoolExecutor(
                max_workers=self.workers,
                mp_context=multiprocessing.get_context('spawn'),
                initializer=_init_worker,
                initargs=(self.cfg,),
            )
        return self._executor

    def _dispatch(self, genomes: List[np.ndarray],
                  seed_lists: List[Sequence[int]]) -> List[List[EpisodeStats]]:
        """Run each genome on its seed list; results come back in input order."""
        if self.workers <= 1 or len(genomes) <= 1:
            return [self.runner.run_seeds(g, s) for g, s in zip(genomes, seed_lists)]
        chunksize = max(1, len(genomes) // (self.workers * 4))
        return list(self._pool().map(_run_seeds_worker, genomes, seed_lists, chunksize=chunksize))

    # -------------------------------------------------------------------------
    # Passes
    # -------------------------------------------------------------------------
    def evaluate_agent(self, agent: Agent, seed: int) -> EpisodeStats:
        return self.runner.run(agent.genome, seed)

    def evaluate_population(self, agents: List[Agent], seed: int):
        """Single-seed pass: store stats and fitness on every agent."""
        results = self._dispatch([a.genome for a in agents], [[seed]] * len(agents))
        for agent, episodes in zip(agents, results):
            agent.stats = episodes[0]
            agent.fitness = episodes[0].score

    def multiseed_seeds(self) -> List[int]:
        base = self.cfg['eval']['multiseed_base_seed']
        return list(range(base, base + self.cfg['eval']['multiseed_runs']))

    def evaluate_multiseed(self, agent: Agent) -> AggregatedStats:
        return aggregate(self.runner.run_seeds(agent.genome, self.multiseed_seeds()))

    def evaluate_candidates(self, candidates: List[Agent]):
        """Multi-seed pass: store aggregated stats and robustness score on each candidate."""
        seeds = self.multiseed_seeds()
        lam = self.cfg['eval']['robustness_lambda']
        results = self._dispatch([a.genome for a in candidates], [seeds] * len(candidates))
        for agent, episodes in zip(candidates, results):
            agent.agg_stats = aggregate(episodes)
            agent.robust_score = agent.agg_stats.robustness_score(lam)

    def run_benchmark(self, agents: List[Agent]) -> List[AggregatedStats]:
        """Score agents on the fixed benchmark seeds (never the training seeds)."""
        seeds = list(self.cfg['eval']['benchmark_seeds'])
        results = self._dispatch([a.genome for a in agents], [seeds] * len(agents))
        return [aggregate(episodes) for episodes in results]

    def evaluate_with_replay(self, agent: Agent, seed: int) -> Tuple[Replay, EpisodeStats]:
        """Play one episode while recording every action for playback."""
        replay = Replay(seed, self.cfg['env'])
        stats = self.runner.run(agent.genome, seed, replay=replay)
        replay.set_final_stats(stats)
        return replay, stats
