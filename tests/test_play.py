"""Tests for playback and the command line entry points."""

import json

import numpy as np
import yaml

import ab_test
import main
import play
from config import make_config
from evaluator import Evaluator
from game import Action, Direction, SnakeGame
from genetics import Agent
from persistence import save_champion
from policy import genome_size, random_genome


def make_game(**kwargs):
    params = dict(width=10, height=10, start_length=3, tick_cap=200, stall_window=9999,
                  fruit_enabled=False, seed=1)
    params.update(kwargs)
    return SnakeGame(**params)


class TestRenderText:
    """Terminal frames."""

    def test_frame_layout(self):
        frame = play.render_text(make_game(), Action.STRAIGHT).split('\n')
        assert frame[0] == '+' + '-' * 10 + '+'
        assert frame[11] == '+' + '-' * 10 + '+'
        # Row y=5 holds the head at x=5 and the body to its left
        assert frame[6] == '|...oo>....|'
        assert frame[12] == "Tick:   0 | Fruits: 0 | Length: 3 | Action: STRAIGHT"

    def test_head_follows_heading_and_fruit_is_drawn(self):
        game = make_game(start_length=1, fruit_enabled=True)
        game.fruit = (0, 0)
        game.direction = Direction.UP
        frame = play.render_text(game).split('\n')
        assert frame[1][1] == '@'
        assert frame[6][6] == '^'
        assert frame[12].endswith("Action: ---")

    def test_dead_frame(self):
        game = make_game(start_length=1)
        while game.alive:
            game.step(Action.STRAIGHT)
        frame = play.render_text(game)
        assert frame.endswith("DEAD: wall")


class TestPlayCli:
    """Headless playback of champions and replays."""

    def _champion(self, tmp_path):
        cfg = make_config('fruit')
        genome = random_genome(genome_size(6, cfg['nn']['hidden1']), np.random.default_rng(0))
        agent = Agent(genome)
        path = tmp_path / "champion.pt"
        save_champion(str(path), agent, 3, cfg)
        return str(path), agent, cfg

    def test_champion_headless(self, tmp_path, capsys):
        path, agent, cfg = self._champion(tmp_path)
        assert play.main(['--champion', path, '--no-display', '--seed', '9']) == 0
        out = capsys.readouterr().out
        assert "Loaded champion from gen 3" in out
        assert "Game Over!" in out

        expected = Evaluator(cfg).runner.run(agent.genome, 9)
        assert f"Ticks: {expected.ticks}, Fruits: {expected.fruits}" in out

    def test_no_timeout_lifts_cap(self, tmp_path):
        path, _, _ = self._champion(tmp_path)
        args = play.parse_args(['--champion', path, '--no-timeout', '--no-stall'])
        pilot = play.build_pilot(args)
        assert pilot.game.tick_cap == play.UNLIMITED
        assert pilot.game.stall_window == play.UNLIMITED

    def test_replay_headless(self, tmp_path, capsys):
        path, agent, cfg = self._champion(tmp_path)
        replay, stats = Evaluator(cfg).evaluate_with_replay(agent, 4)
        replay_path = tmp_path / "replay.json"
        replay.save(str(replay_path))

        assert play.main(['--replay', str(replay_path), '--no-display']) == 0
        out = capsys.readouterr().out
        assert f"Death: {stats.death}" in out
        assert f"Ticks: {stats.ticks}, Fruits: {stats.fruits}" in out

    def test_text_mode_prints_frames(self, tmp_path, capsys):
        path, _, _ = self._champion(tmp_path)
        assert play.main(['--champion', path, '--text', '--delay', '0']) == 0
        assert "Action:" in capsys.readouterr().out

    def test_missing_champion(self, tmp_path, capsys):
        assert play.main(['--champion', str(tmp_path / "nope.pt"), '--no-display']) == 1
        assert "[ERROR]" in capsys.readouterr().out


class TestTrainCli:
    """Training entry point."""

    def test_short_training_run(self, tmp_path, capsys):
        config_path = tmp_path / "tiny.yaml"
        config_path.write_text(yaml.safe_dump({
            'track': 'wall',
            'ga': {'population': 8, 'elites': 1, 'selection_pool': 4},
            'eval': {'topk_multiseed': 2, 'multiseed_runs': 2, 'benchmark_every': 0},
            'logging': {'save_champion_every': 0, 'replay_every': 0},
        }))
        out_dir = tmp_path / "out"
        code = main.main(['--config', str(config_path), '--generations', '2', '--workers', '1',
                          '--out', str(out_dir), '--plot'])
        assert code == 0
        assert (out_dir / "runs" / "run.csv").exists()
        assert (out_dir / "runs" / "run.png").exists()
        assert (out_dir / "artifacts" / "champion_final.pt").exists()
        assert "CONFIGURATION SUMMARY" in capsys.readouterr().out

    def test_bad_config(self, tmp_path, capsys):
        assert main.main(['--track', 'wall', '--seed', '-3', '--out', str(tmp_path)]) == 1
        assert "[ERROR]" in capsys.readouterr().out


class TestABTest:
    """Configuration comparison harness."""

    def test_compares_two_variants(self, tmp_path):
        base = {'population': 8, 'elites': 1, 'selection_pool': 4}
        eval_cfg = {'topk_multiseed': 2, 'multiseed_runs': 2, 'workers': 1, 'benchmark_every': 0}
        runner = ab_test.ABTestRunner(
            {'ga': dict(base, mutation_rate=0.2), 'eval': eval_cfg},
            {'ga': dict(base, mutation_rate=0.05), 'eval': eval_cfg},
            track='wall', test_name='tiny')
        final_a, final_b = runner.run(generations=2, report_interval=1)
        assert final_a['generation'] == 2 and final_b['generation'] == 2
        assert len(runner.metrics_a) == 2

        path = tmp_path / "results.json"
        runner.save_results(str(path), final_a, final_b)
        report = json.loads(path.read_text())
        assert report['test_name'] == 'tiny'
        assert set(report['winners']) == set(ab_test.METRICS)


class TestRenderer:
    """Pygame viewer on the dummy video driver."""

    def test_draws_and_steps_without_display(self, monkeypatch):
        monkeypatch.setenv("SDL_VIDEODRIVER", "dummy")
        import pygame
        from pygame_renderer import PyGameRenderer

        cfg = make_config('fruit')
        genome = random_genome(genome_size(6, cfg['nn']['hidden1']), np.random.default_rng(1))
        pilot = play.PolicyPilot(cfg, genome, seed=2)
        renderer = PyGameRenderer(pilot, delay_ms=10)
        try:
            renderer.simulation_speed = 3
            renderer.advance()
            assert pilot.game.tick == 3 or not pilot.game.alive
            renderer.render_header()
            renderer.render_board()
            renderer.render_stats_panel()
            pilot.reset()
            assert pilot.game.tick == 0
        finally:
            pygame.quit()
