"""
Snake Neuroevolution - playback entry point

Plays a saved champion (or re-simulates a recorded replay) in a pygame
window, as text frames in the terminal, or headless with just the final
stats.

Usage:
    python play.py --champion artifacts/champion_final.pt --seed 12345
    python play.py --replay artifacts/replay_gen500.json --text
"""

import argparse
import pickle
import sys
import time
from typing import Optional

import torch

from config import ConfigError, load_config, make_config
from features import FeatureExtractor, obs_type_from_name
from game import Action, Direction, SnakeGame
from persistence import load_champion
from policy import PolicyNetwork
from replay import Replay

UNLIMITED = 999999          # Effectively disables the tick cap / stall window

HEAD_CHARS = {
    Direction.UP: '^',
    Direction.RIGHT: '>',
    Direction.DOWN: 'v',
    Direction.LEFT: '<',
}
BODY_CHAR = 'o'
FRUIT_CHAR = '@'
EMPTY_CHAR = '.'


# =============================================================================
# PILOTS
# =============================================================================
class PolicyPilot:
    """Drives a game with a policy network."""

    def __init__(self, cfg: dict, genome, seed: int):
        self.cfg = cfg
        self.seed = seed
        self.network = PolicyNetwork.from_config(cfg, genome)
        self.extractor = FeatureExtractor(obs_type_from_name(cfg['track']['obs']))
        self.obs = torch.from_numpy(self.extractor.buffer)
        self.title = f"Champion ({cfg['track']['mode']}, seed {seed})"
        self.reset()

    def reset(self):
        self.game = SnakeGame.from_config(self.cfg['env'], self.seed)

    def decide(self) -> Optional[int]:
        if not self.game.alive:
            return None
        self.extractor.extract(self.game)
        return self.network.forward(self.obs)

    def step(self) -> Optional[int]:
        action = self.decide()
        if action is not None:
            self.game.step(action)
        return action


class ReplayPilot:
    """Feeds a recorded action trace back into a fresh game."""

    def __init__(self, replay: Replay):
        self.replay = replay
        self.seed = replay.seed
        self.title = f"Replay (seed {replay.seed}, {len(replay.actions)} actions)"
        self.reset()

    def reset(self):
        self.game = self.replay.playback()

    def decide(self) -> Optional[int]:
        if not self.game.alive or self.game.tick >= len(self.replay.actions):
            return None
        return self.replay.actions[self.game.tick]

    def step(self) -> Optional[int]:
        action = self.decide()
        if action is not None:
            self.game.step(action)
        return action


# =============================================================================
# TEXT FRAMES
# =============================================================================
def render_text(game: SnakeGame, action: Optional[int] = None) -> str:
    """
    One frame of the board as text.

    The head shows the heading, the body is drawn with 'o' and fruit with '@'.
    The status line names the action about to be taken.
    """
    grid = [[EMPTY_CHAR] * game.width for _ in range(game.height)]

    if game.fruit is not None:
        fx, fy = game.fruit
        grid[fy][fx] = FRUIT_CHAR

    for i, (x, y) in enumerate(game.body):
        if game.in_bounds((x, y)):
            grid[y][x] = HEAD_CHARS[game.direction] if i == 0 else BODY_CHAR

    lines = ['+' + '-' * game.width + '+']
    lines.extend('|' + ''.join(row) + '|' for row in grid)
    lines.append('+' + '-' * game.width + '+')

    action_name = Action(action).name if action is not None else '---'
    lines.append(f"Tick: {game.tick:3d} | Fruits: {game.fruits_eaten} | "
                 f"Length: {game.length} | Action: {action_name}")
    if not game.alive:
        lines.append(f"DEAD: {game.death}")
    return '\n'.join(lines)


def print_final_stats(game: SnakeGame):
    stats = game.stats()
    print("\n" + "="*40)
    print(f"  Game Over! Death: {stats.death}")
    print(f"  Ticks: {stats.ticks}, Fruits: {stats.fruits}")
    print(f"  Progress: {stats.progress:.2f}")
    print("="*40)


def run_headless(pilot) -> SnakeGame:
    while pilot.step() is not None:
        pass
    return pilot.game


def run_text(pilot, delay_ms: int) -> SnakeGame:
    while True:
        action = pilot.decide()
        print("\033[H\033[J" + render_text(pilot.game, action))
        if action is None:
            break
        time.sleep(delay_ms / 1000.0)
        pilot.game.step(action)
    return pilot.game


# =============================================================================
# COMMAND LINE
# =============================================================================
def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Snake Neuroevolution - Playback')
    source = parser.add_mutually_exclusive_group()
    source.add_argument('--champion', type=str, default='artifacts/champion_final.pt',
                        help='Champion checkpoint (default: artifacts/champion_final.pt)')
    source.add_argument('--replay', type=str, default=None,
                        help='Replay JSON file (plays the recorded actions instead)')
    parser.add_argument('--track', '-t', type=str, default=None,
                        help='Track preset (default: the one stored in the champion)')
    parser.add_argument('--config', '-c', type=str, default=None,
                        help='YAML config file')
    parser.add_argument('--seed', '-s', type=int, default=12345,
                        help='Game seed (default: 12345)')
    parser.add_argument('--delay', '-d', type=int, default=100,
                        help='Delay between frames in milliseconds (default: 100)')
    parser.add_argument('--no-display', action='store_true',
                        help='Run without display and print the final stats')
    parser.add_argument('--no-timeout', action='store_true',
                        help='Disable the tick cap (play until death)')
    parser.add_argument('--no-stall', action='store_true',
                        help='Disable stall detection')
    parser.add_argument('--text', action='store_true',
                        help='Render frames in the terminal instead of a window')
    return parser.parse_args(argv)


def champion_config(args, record: dict) -> dict:
    """Config for a champion: file or track preset, with the champion's topology."""
    overrides = {'nn': {key: record[key] for key in ('hidden1', 'hidden2') if key in record}}
    if 'obs' in record:
        overrides['track'] = {'obs': record['obs']}
    if args.no_timeout:
        overrides['env'] = {'tick_cap': UNLIMITED}
    if args.no_stall:
        overrides.setdefault('env', {})['stall_window'] = UNLIMITED

    if args.config:
        return load_config(args.config, overrides)
    return make_config(args.track or record.get('track', 'wall'), overrides)


def build_pilot(args):
    if args.replay:
        replay = Replay.load(args.replay)
        if args.no_timeout:
            replay.config['tick_cap'] = UNLIMITED
        if args.no_stall:
            replay.config['stall_window'] = UNLIMITED
        print(f"Loaded replay {args.replay}: seed {replay.seed}, {len(replay.actions)} actions")
        return ReplayPilot(replay)

    record = load_champion(args.champion)
    cfg = champion_config(args, record)
    print(f"Loaded champion from gen {record.get('generation', 0)} "
          f"(fitness={record.get('fitness', 0.0):.1f}, ticks={record.get('ticks', 0)}, "
          f"fruits={record.get('fruits', 0)})")
    print(f"Track: {cfg['track']['mode']}, Seed: {args.seed}")
    return PolicyPilot(cfg, record['genome'], args.seed)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        pilot = build_pilot(args)
    except (OSError, ValueError, KeyError, RuntimeError, pickle.UnpicklingError) as e:
        print(f"[ERROR] {e}")
        return 1

    if args.no_display:
        game = run_headless(pilot)
    elif args.text:
        game = run_text(pilot, args.delay)
    else:
        from pygame_renderer import PyGameRenderer
        renderer = PyGameRenderer(pilot, delay_ms=args.delay)
        renderer.run()
        game = pilot.game

    print_final_stats(game)
    return 0


if __name__ == '__main__':
    sys.exit(main())
