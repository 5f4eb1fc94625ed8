"""
Snake Neuroevolution - training entry point

Evolves neural policies that play snake on one of four tracks:
- wall:  survive without hitting the border
- self:  survive with a long body in the way
- fruit: collect fruit before stalling
- multi: all of the above on a larger board

Usage:
    python main.py --track fruit --generations 500 --workers 8
    python main.py --config my_run.yaml --out runs/exp1 --plot
"""

import argparse
import os
import sys

from config import ConfigError, TRACKS, load_config, make_config, obs_dim, print_config
from evolution import Trainer
from metrics import plot_history

DEFAULT_GENERATIONS = 1000


# =============================================================================
# COMMAND LINE ARGUMENTS
# =============================================================================
def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Snake Neuroevolution - Genetic Training')
    parser.add_argument('--track', '-t', choices=sorted(TRACKS), default='wall',
                        help='Track preset (default: wall)')
    parser.add_argument('--config', '-c', type=str, default=None,
                        help='YAML config file (overrides the track preset)')
    parser.add_argument('--generations', '-g', type=int, default=DEFAULT_GENERATIONS,
                        help=f'Number of generations (default: {DEFAULT_GENERATIONS})')
    parser.add_argument('--workers', '-w', type=int, default=None,
                        help='Worker processes (0 = all CPUs)')
    parser.add_argument('--seed', '-s', type=int, default=None,
                        help='Master seed')
    parser.add_argument('--out', '-o', type=str, default='.',
                        help='Output directory for logs and artifacts (default: .)')
    parser.add_argument('--plot', action='store_true',
                        help='Write a training curve PNG after the run')
    return parser.parse_args(argv)


def build_config(args) -> dict:
    """Track preset or config file, with command line overrides on top."""
    overrides = {}
    if args.workers is not None:
        overrides['eval'] = {'workers': args.workers}
    if args.seed is not None:
        overrides['seed'] = args.seed

    if args.config:
        return load_config(args.config, overrides)
    return make_config(args.track, overrides)


# =============================================================================
# MAIN
# =============================================================================
def main(argv=None) -> int:
    args = parse_args(argv)
    if args.generations < 1:
        print(f"[ERROR] --generations must be positive, got {args.generations}")
        return 1

    try:
        cfg = build_config(args)
    except ConfigError as e:
        print(f"[ERROR] {e}")
        return 1

    print(f"Snake Neuroevolution - Track: {cfg['track']['mode']}")
    print(f"Obs: {cfg['track']['obs']} (dim={obs_dim(cfg)}), Hidden: {cfg['nn']['hidden1']}")
    print_config(cfg)

    with Trainer(cfg, out_dir=args.out) as trainer:
        print(f"Genome size: {trainer.genome_size} weights")
        print(f"Workers: {trainer.evaluator.workers}")
        print("---")
        try:
            trainer.run(args.generations)
        except KeyboardInterrupt:
            print(f"\nInterrupted at generation {trainer.generation}, saving champion...")
            trainer.save_final_champion()

    if args.plot:
        csv_path = os.path.join(args.out, cfg['logging']['csv_path'])
        png_path = os.path.splitext(csv_path)[0] + '.png'
        try:
            plot_history(csv_path, png_path)
            print(f"[SAVED] Training curves -> {png_path}")
        except (OSError, ValueError) as e:
            print(f"[WARN] Could not plot {csv_path}: {e}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
