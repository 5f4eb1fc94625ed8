"""Tests for champion checkpoints."""

import numpy as np
import pytest

from config import make_config
from features import FeatureExtractor
from game import DeathCause, EpisodeStats, SnakeGame
from genetics import Agent
from persistence import (AsyncChampionSaver, champion_to_agent, load_champion, make_checkpoint,
                         save_champion)
from policy import PolicyNetwork, genome_size, random_genome


def trained_agent(cfg, seed=0):
    n = genome_size(6, cfg['nn']['hidden1'])
    agent = Agent(random_genome(n, np.random.default_rng(seed)))
    agent.fitness = 1234.5
    agent.robust_score = 1000.0
    agent.stats = EpisodeStats(fruits=3, ticks=87, progress=4.0, death=DeathCause.STALL, seed=1)
    return agent


class TestCheckpoint:
    """Synchronous save and load."""

    def test_round_trip_preserves_actions(self, tmp_path):
        cfg = make_config('fruit')
        agent = trained_agent(cfg)
        path = tmp_path / "artifacts" / "champion.pt"
        save_champion(str(path), agent, generation=42, cfg=cfg)

        record = load_champion(str(path))
        assert record['generation'] == 42
        assert record['fitness'] == pytest.approx(1234.5)
        assert record['ticks'] == 87
        assert record['fruits'] == 3
        assert record['track'] == 'fruit'
        assert record['hidden1'] == cfg['nn']['hidden1']
        assert record['genome'].dtype == np.float32

        restored = champion_to_agent(record)
        original_net = PolicyNetwork.from_config(cfg, agent.genome)
        restored_net = PolicyNetwork.from_config(cfg, restored.genome)
        extractor = FeatureExtractor('fruit')
        for seed in range(5):
            game = SnakeGame.from_config(cfg['env'], seed)
            for _ in range(20):
                if not game.alive:
                    break
                obs = extractor.extract(game)
                action = original_net.forward(obs)
                assert restored_net.forward(obs) == action
                game.step(action)

    def test_checkpoint_copies_genome(self):
        cfg = make_config('fruit')
        agent = trained_agent(cfg)
        checkpoint = make_checkpoint(agent, 1)
        agent.genome[:] = 0.0
        assert float(checkpoint['genome'].abs().sum()) > 0.0
        assert 'track' not in checkpoint


class TestAsyncSaver:
    """Background writer."""

    def test_writes_checkpoint(self, tmp_path, capsys):
        cfg = make_config('fruit')
        saver = AsyncChampionSaver()
        path = tmp_path / "out" / "champion_gen5.pt"
        assert saver.save_async(make_checkpoint(trained_agent(cfg), 5, cfg), str(path), block=True)
        saver.wait()
        saver.shutdown()
        assert path.exists()
        assert load_champion(str(path))['generation'] == 5
        assert "[SAVED]" in capsys.readouterr().out
        assert saver.failures == 0

    def test_failure_is_reported_not_raised(self, tmp_path, capsys):
        cfg = make_config('fruit')
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("file in the way")
        saver = AsyncChampionSaver()
        saver.save_async(make_checkpoint(trained_agent(cfg), 1, cfg), str(blocker / "c.pt"), block=True)
        saver.wait()
        saver.shutdown()
        assert saver.failures == 1
        assert "[ERROR]" in capsys.readouterr().out

    def test_unpicklable_checkpoint_does_not_stop_the_worker(self, tmp_path, capsys):
        cfg = make_config('fruit')
        saver = AsyncChampionSaver()
        bad = make_checkpoint(trained_agent(cfg), 1, cfg)
        bad['callback'] = lambda: None
        saver.save_async(bad, str(tmp_path / "bad.pt"), block=True)
        good_path = tmp_path / "good.pt"
        saver.save_async(make_checkpoint(trained_agent(cfg), 2, cfg), str(good_path), block=True)
        saver.wait()
        saver.shutdown()

        assert saver.failures == 1
        assert load_champion(str(good_path))['generation'] == 2
        out = capsys.readouterr().out
        assert "[ERROR]" in out and "[SAVED]" in out
