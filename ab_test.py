#!/usr/bin/env python3
"""
A/B Testing Framework for Snake Neuroevolution

Compares two training configurations by evolving both for the same number
of generations and tracking comparative metrics. Each variant is a set of
overrides on top of a track preset.

Usage:
    python3 ab_test.py --track fruit --generations 200 --output results.json

Example configurations:
    A: High mutation (0.2), small tournaments (2)
    B: Low mutation (0.05), large tournaments (5)
"""

import argparse
import json
import os
import time
from typing import Dict, List, Tuple

from config import make_config
from evolution import Trainer

METRICS = ['best_fitness', 'mean_fitness', 'best_ticks', 'mean_ticks',
           'best_fruits', 'mean_fruits', 'robust_score']


class ABTestRunner:
    """
    Run two trainers side by side with different configurations and compare results.
    """

    def __init__(self, overrides_a: Dict, overrides_b: Dict, track: str = 'wall',
                 test_name: str = "A/B Test"):
        """
        Initialize A/B test runner.

        Args:
            overrides_a: Configuration overrides for variant A
            overrides_b: Configuration overrides for variant B
            track: Track preset both variants start from
            test_name: Name of the test for reporting
        """
        self.overrides_a = overrides_a
        self.overrides_b = overrides_b
        self.track = track
        self.test_name = test_name

        # Validated up front so a bad variant fails before any training
        self.config_a = make_config(track, overrides_a)
        self.config_b = make_config(track, overrides_b)

        print(f"\n{'='*70}")
        print(f"INITIALIZING A/B TEST: {test_name}")
        print(f"{'='*70}\n")

        self.metrics_a: List[Dict] = []
        self.metrics_b: List[Dict] = []

    @staticmethod
    def _collect_metrics(summary: Dict) -> Dict:
        """Reduce a generation summary to the compared metrics."""
        metrics = {'generation': summary['generation']}
        for key in METRICS:
            value = summary.get(key)
            metrics[key] = float(value) if value is not None else 0.0
        return metrics

    def run(self, generations: int = 100, report_interval: int = 10) -> Tuple[Dict, Dict]:
        """
        Run the A/B test for specified number of generations.

        Args:
            generations: Number of generations to run
            report_interval: Print progress every N generations
        """
        print("Variant A overrides:")
        for key, value in self.overrides_a.items():
            print(f"  {key}: {value}")

        print("\nVariant B overrides:")
        for key, value in self.overrides_b.items():
            print(f"  {key}: {value}")

        print(f"\nRunning {generations} generations on track '{self.track}'...\n")

        start_time = time.time()
        trainer_a = Trainer(self.config_a, log_files=False, save_artifacts=False, verbose=False)
        trainer_b = Trainer(self.config_b, log_files=False, save_artifacts=False, verbose=False)
        try:
            for gen in range(1, generations + 1):
                summary_a = trainer_a.step()
                summary_b = trainer_b.step()

                if gen % report_interval == 0 or gen == generations:
                    metrics_a = self._collect_metrics(summary_a)
                    metrics_b = self._collect_metrics(summary_b)
                    self.metrics_a.append(metrics_a)
                    self.metrics_b.append(metrics_b)

                    elapsed = time.time() - start_time
                    gens_per_sec = gen / elapsed if elapsed > 0 else 0

                    print(f"Gen {gen:4d} | "
                          f"A: Fit={metrics_a['best_fitness']:8.1f} Rob={metrics_a['robust_score']:8.1f} | "
                          f"B: Fit={metrics_b['best_fitness']:8.1f} Rob={metrics_b['robust_score']:8.1f} | "
                          f"{gens_per_sec:.2f} gen/s")
        finally:
            trainer_a.close()
            trainer_b.close()

        final_a = self.metrics_a[-1] if self.metrics_a else {}
        final_b = self.metrics_b[-1] if self.metrics_b else {}

        elapsed = time.time() - start_time
        print(f"\n{'='*70}")
        print(f"TEST COMPLETE - {elapsed:.1f}s total")
        print(f"{'='*70}\n")

        return final_a, final_b

    @staticmethod
    def winners(final_a: Dict, final_b: Dict) -> Dict[str, str]:
        """Per-metric winner: higher is better for every compared metric."""
        result = {}
        for metric in METRICS:
            val_a = final_a.get(metric, 0.0)
            val_b = final_b.get(metric, 0.0)
            result[metric] = "A" if val_a > val_b else "B" if val_b > val_a else "Tie"
        return result

    def print_results(self, final_a: Dict, final_b: Dict):
        """Print comparison results."""
        print(f"\nFINAL RESULTS ({self.test_name})")
        print(f"{'='*70}\n")

        print(f"{'Metric':<20} {'Variant A':>15} {'Variant B':>15} {'Winner':>10}")
        print(f"{'-'*70}")

        winners = self.winners(final_a, final_b)
        for metric in METRICS:
            print(f"{metric:<20} {final_a.get(metric, 0.0):>15.2f} "
                  f"{final_b.get(metric, 0.0):>15.2f} {winners[metric]:>10s}")

        print(f"\n{'='*70}\n")

    def save_results(self, filepath: str, final_a: Dict, final_b: Dict):
        """Save test results to JSON file."""
        results = {
            'test_name': self.test_name,
            'track': self.track,
            'config_a': self.overrides_a,
            'config_b': self.overrides_b,
            'final_metrics_a': final_a,
            'final_metrics_b': final_b,
            'winners': self.winners(final_a, final_b),
            'metrics_history_a': self.metrics_a,
            'metrics_history_b': self.metrics_b,
        }

        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(results, f, indent=2)

        print(f"Results saved to {filepath}")


def main(argv=None):
    """Main entry point for A/B testing."""
    parser = argparse.ArgumentParser(description='A/B Testing Framework for Snake Neuroevolution')
    parser.add_argument('--track', '-t', type=str, default='wall',
                        help='Track preset for both variants (default: wall)')
    parser.add_argument('--generations', '-g', type=int, default=100,
                        help='Number of generations to run (default: 100)')
    parser.add_argument('--report-interval', '-r', type=int, default=10,
                        help='Report progress every N generations (default: 10)')
    parser.add_argument('--output', '-o', type=str, default='ab_test_results.json',
                        help='Output file for results (default: ab_test_results.json)')
    parser.add_argument('--test-name', '-n', type=str, default='Mutation vs Selection Pressure',
                        help='Name of the test (default: "Mutation vs Selection Pressure")')

    args = parser.parse_args(argv)

    # Example configuration: mutation strength vs selection pressure
    overrides_a = {
        'ga': {'mutation_rate': 0.2, 'tournament_k': 2},   # Explore
    }

    overrides_b = {
        'ga': {'mutation_rate': 0.05, 'tournament_k': 5},  # Exploit
    }

    runner = ABTestRunner(overrides_a, overrides_b, args.track, args.test_name)
    final_a, final_b = runner.run(generations=args.generations, report_interval=args.report_interval)

    runner.print_results(final_a, final_b)
    runner.save_results(args.output, final_a, final_b)


if __name__ == '__main__':
    main()
