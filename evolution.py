"""
Snake Neuroevolution - genetic training loop

Evolves fixed-topology policy networks with a two-stage evaluation:
- Screening: every agent plays one episode on the generation's seed
- Robustness: the top candidates (plus the best-ever champion) play several
  fixed seeds and are ranked by mean - lambda * std of their scores
- Benchmark: periodically the leaders are scored on a separate seed suite
- Selection: elitism, tournament selection, uniform crossover and mutation
"""

import os
import time
from typing import Dict, List, Optional

import numpy as np

import config
from config import NUM_ACTIONS
from evaluator import Evaluator
from genetics import Agent, Population, next_generation
from metrics import RunLogger, log_top_k, summarize_benchmark, summarize_generation
from persistence import AsyncChampionSaver, make_checkpoint
from policy import genome_size

TOPN_DEBUG_EVERY = 10       # Generations between top-N listings


# =============================================================================
# TRAINER
# =============================================================================
class Trainer:
    """Owns the population, the generation-scoped RNG and the best-ever champion."""

    def __init__(self, cfg: dict, out_dir: str = '.', log_files: bool = True,
                 save_artifacts: bool = True, verbose: bool = True):
        self.cfg = cfg
        self.verbose = verbose
        self.generation = 0

        # Selection and variation randomness; never shared with evaluation
        self.rng = np.random.default_rng(cfg['seed'])

        self.genome_size = genome_size(config.obs_dim(cfg), cfg['nn']['hidden1'],
                                       cfg['nn']['hidden2'], NUM_ACTIONS)
        self.population = Population.random(cfg['ga']['population'], self.genome_size, self.rng)
        self.evaluator = Evaluator(cfg)
        self.best_ever: Optional[Agent] = None

        self.history: List[Dict] = []
        self.benchmarks: List[Dict] = []

        log_cfg = cfg['logging']
        self.artifacts_dir = os.path.join(out_dir, log_cfg['artifacts_dir'])
        self.logger = None
        if log_files:
            self.logger = RunLogger(os.path.join(out_dir, log_cfg['csv_path']),
                                    os.path.join(out_dir, log_cfg['json_path']),
                                    echo=verbose and log_cfg['every_gen_summary'])
        self.saver = AsyncChampionSaver() if save_artifacts else None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self.evaluator.close()
        if self.logger is not None:
            self.logger.close()
        if self.saver is not None:
            self.saver.shutdown()

    def generation_seed(self, generation: int) -> int:
        return self.cfg['seed'] + generation

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------
    def select_candidates(self) -> List[Agent]:
        """Top-K by fitness plus the best-ever champion (matched by genome identity)."""
        k = min(self.cfg['eval']['topk_multiseed'], len(self.population))
        candidates = self.population.agents[:k]
        if self.best_ever is not None and not any(c.genome is self.best_ever.genome for c in candidates):
            candidates.append(self.best_ever)
        return candidates

    def _update_best_ever(self, candidates: List[Agent]):
        if not candidates:
            return
        best = max(candidates, key=lambda a: a.robust_score)
        if self.best_ever is None or best.robust_score > self.best_ever.robust_score:
            self.best_ever = best.clone()

    def step(self) -> Dict:
        """Run one full generation and return its summary."""
        gen = self.generation + 1
        gen_seed = self.generation_seed(gen)
        start = time.time()
        pop = self.population

        # 1. Single-seed screening of the whole population
        self.evaluator.evaluate_population(pop.agents, gen_seed)

        # 2. Rank
        pop.sort_by_fitness()
        summary = summarize_generation(gen, pop.agents)

        # 3-4. Multi-seed robustness scoring of the candidates
        candidates = self.select_candidates()
        self.evaluator.evaluate_candidates(candidates)

        # 5. Best-ever update
        self._update_best_ever(candidates)
        summary['robust_score'] = self.best_ever.robust_score if self.best_ever is not None else None
        summary['elapsed'] = time.time() - start

        if self.logger is not None:
            self.logger.log_generation(summary)
        elif self.verbose and self.cfg['logging']['every_gen_summary']:
            print(f"Gen {gen:4d} | Best: {summary['best_fitness']:8.1f} | Mean: {summary['mean_fitness']:8.1f}")

        topn = self.cfg['logging']['topn_debug']
        if self.verbose and topn > 0 and gen % TOPN_DEBUG_EVERY == 0:
            log_top_k(pop.agents, topn)

        # 6. Periodic benchmark on the fixed seed suite
        every = self.cfg['eval']['benchmark_every']
        if every > 0 and gen % every == 0:
            results = self.evaluator.run_benchmark(pop.top_k(self.cfg['eval']['benchmark_top']))
            benchmark = summarize_benchmark(gen, results)
            summary['benchmark'] = benchmark
            self.benchmarks.append(benchmark)
            if self.logger is not None:
                self.logger.log_benchmark(benchmark)

        self._save_artifacts(gen, gen_seed)

        # 7. Next generation
        pop.agents = next_generation(pop, self.cfg['ga'], self.rng)

        self.generation = gen
        self.history.append(summary)
        return summary

    def run(self, generations: int) -> Optional[Agent]:
        """Train for a number of generations and return the best-ever champion."""
        start = time.time()
        for _ in range(generations):
            self.step()
        elapsed = time.time() - start

        if self.verbose:
            print("---")
            print(f"Training complete! {generations} generations in {elapsed:.1f}s")
            if self.best_ever is not None:
                b = self.best_ever
                print(f"Best ever: Fitness={b.fitness:.1f}, RobustScore={b.robust_score:.1f}, "
                      f"Ticks={b.stats.ticks}, Fruits={b.stats.fruits}")

        self.save_final_champion()
        return self.best_ever

    # -------------------------------------------------------------------------
    # Artifacts
    # -------------------------------------------------------------------------
    def _save_artifacts(self, gen: int, gen_seed: int):
        if self.saver is None:
            return
        log_cfg = self.cfg['logging']

        every = log_cfg['save_champion_every']
        if every > 0 and gen % every == 0:
            path = os.path.join(self.artifacts_dir, f"champion_gen{gen}.pt")
            self.saver.save_async(make_checkpoint(self.population.best(), gen, self.cfg), path)

        every = log_cfg['replay_every']
        if every > 0 and gen % every == 0:
            replay, stats = self.evaluator.evaluate_with_replay(self.population.best(), gen_seed)
            path = os.path.join(self.artifacts_dir, f"replay_gen{gen}.json")
            try:
                replay.save(path)
                print(f"[SAVED] Replay Gen {gen}: {len(replay.actions)} actions, death={stats.death} -> {path}")
            except OSError as e:
                print(f"[WARN] Failed to save replay {path}: {e}")

    def save_final_champion(self) -> Optional[str]:
        """Write the best-ever champion and wait for pending checkpoints."""
        if self.saver is None or self.best_ever is None:
            return None
        path = os.path.join(self.artifacts_dir, "champion_final.pt")
        self.saver.save_async(make_checkpoint(self.best_ever, self.generation, self.cfg), path, block=True)
        self.saver.wait()
        return path
