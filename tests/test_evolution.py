"""Tests for the training loop."""

import numpy as np
import pytest

from config import make_config
from evolution import Trainer
from persistence import load_champion


def tiny_config(track='wall', **logging):
    log_cfg = {'save_champion_every': 0, 'replay_every': 0, 'topn_debug': 0}
    log_cfg.update(logging)
    return make_config(track, {
        'ga': {'population': 10, 'elites': 2, 'selection_pool': 6},
        'eval': {'topk_multiseed': 3, 'multiseed_runs': 2, 'workers': 1,
                 'benchmark_every': 2, 'benchmark_top': 2, 'benchmark_seeds': [2000, 2001]},
        'logging': log_cfg,
    })


class TestTrainer:
    """Generations, best-ever tracking and artifacts."""

    def test_generation_seed(self):
        with Trainer(tiny_config(), log_files=False, save_artifacts=False, verbose=False) as trainer:
            assert trainer.generation_seed(1) == 1338
            assert trainer.generation_seed(10) == 1347

    def test_step_produces_summary(self):
        with Trainer(tiny_config(), log_files=False, save_artifacts=False, verbose=False) as trainer:
            summary = trainer.step()
            assert summary['generation'] == 1
            assert trainer.generation == 1
            assert summary['robust_score'] == trainer.best_ever.robust_score
            assert len(trainer.population) == 10
            assert sum(summary['death_counts'].values()) == 10
            assert 'benchmark' not in summary

            summary = trainer.step()
            assert summary['benchmark']['agents'] == 2
            assert len(trainer.benchmarks) == 1

    def test_candidates_include_best_ever_once(self):
        with Trainer(tiny_config(), log_files=False, save_artifacts=False, verbose=False) as trainer:
            trainer.step()
            best = trainer.best_ever
            trainer.evaluator.evaluate_population(trainer.population.agents, 1339)
            trainer.population.sort_by_fitness()
            candidates = trainer.select_candidates()
            assert candidates[-1] is best
            assert sum(1 for c in candidates if c.genome is best.genome) == 1
            assert len(candidates) == 4

    def test_best_ever_is_monotonic_and_private(self):
        with Trainer(tiny_config(), log_files=False, save_artifacts=False, verbose=False) as trainer:
            scores = []
            for _ in range(4):
                trainer.step()
                scores.append(trainer.best_ever.robust_score)
                for agent in trainer.population:
                    assert agent.genome is not trainer.best_ever.genome
            assert scores == sorted(scores)

    def test_same_seed_same_run(self):
        def run():
            with Trainer(tiny_config(), log_files=False, save_artifacts=False, verbose=False) as trainer:
                summaries = [trainer.step() for _ in range(3)]
                return ([s['best_fitness'] for s in summaries],
                        trainer.best_ever.genome.copy())

        fit_a, genome_a = run()
        fit_b, genome_b = run()
        assert fit_a == fit_b
        np.testing.assert_array_equal(genome_a, genome_b)

    def test_run_writes_logs_and_artifacts(self, tmp_path, capsys):
        cfg = tiny_config(save_champion_every=2, replay_every=2)
        with Trainer(cfg, out_dir=str(tmp_path)) as trainer:
            best = trainer.run(2)

        assert best is not None
        assert (tmp_path / "runs" / "run.csv").exists()
        assert (tmp_path / "runs" / "run.jsonl").exists()
        assert (tmp_path / "artifacts" / "champion_gen2.pt").exists()
        assert (tmp_path / "artifacts" / "replay_gen2.json").exists()

        final = load_champion(str(tmp_path / "artifacts" / "champion_final.pt"))
        assert final['generation'] == 2
        assert final['robust_score'] == pytest.approx(best.robust_score)
        np.testing.assert_array_equal(final['genome'], best.genome)

        out = capsys.readouterr().out
        assert "Training complete!" in out
        assert "[BENCHMARK]" in out

    def test_fruit_track_trains(self):
        with Trainer(tiny_config('fruit'), log_files=False, save_artifacts=False, verbose=False) as trainer:
            summary = trainer.step()
            assert summary['mean_ticks'] > 0

    def test_unwritable_replay_warns_and_training_continues(self, tmp_path, capsys):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("occupied")
        with Trainer(tiny_config(replay_every=1), out_dir=str(tmp_path), log_files=False) as trainer:
            trainer.artifacts_dir = str(blocker)
            summary = trainer.step()
            assert summary['generation'] == 1
            assert trainer.generation == 1
            trainer.step()
            assert trainer.generation == 2

        assert "[WARN] Failed to save replay" in capsys.readouterr().out
        assert blocker.read_text() == "occupied"
