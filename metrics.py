"""
Run metrics: per-generation summaries, console lines, CSV/JSONL logs and plots.
"""

import csv
import json
import os
from typing import Dict, List

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from game import AggregatedStats, DeathCause
from genetics import Agent

CSV_HEADER = [
    'generation', 'best_fitness', 'mean_fitness', 'best_ticks', 'mean_ticks',
    'best_fruits', 'mean_fruits', 'deaths_wall', 'deaths_self', 'deaths_stall', 'deaths_timeout',
]

DEATH_KEYS = [str(c) for c in DeathCause if c != DeathCause.NONE]


def summarize_generation(generation: int, agents: List[Agent]) -> Dict:
    """
    Summary statistics of an evaluated population.

    Args:
        generation: Generation index
        agents: Agents with single-seed stats and fitness

    Returns:
        Dictionary with best/mean fitness, ticks, fruits and death counts
    """
    n = len(agents)
    best = max(agents, key=lambda a: a.fitness)
    death_counts = {key: 0 for key in DEATH_KEYS}
    for a in agents:
        key = str(a.stats.death)
        death_counts[key] = death_counts.get(key, 0) + 1

    return {
        'generation': generation,
        'best_fitness': best.fitness,
        'mean_fitness': sum(a.fitness for a in agents) / n,
        'best_ticks': best.stats.ticks,
        'mean_ticks': sum(a.stats.ticks for a in agents) / n,
        'best_fruits': best.stats.fruits,
        'mean_fruits': sum(a.stats.fruits for a in agents) / n,
        'death_counts': death_counts,
    }


def summarize_benchmark(generation: int, results: List[AggregatedStats]) -> Dict:
    """Average the benchmark aggregates of several agents."""
    n = max(len(results), 1)
    return {
        'generation': generation,
        'agents': len(results),
        'ticks_mean': sum(r.ticks_mean for r in results) / n,
        'fruits_mean': sum(r.fruits_mean for r in results) / n,
        'score_mean': sum(r.score_mean for r in results) / n,
    }


def format_generation(summary: Dict) -> str:
    d = summary['death_counts']
    return (f"Gen {summary['generation']:4d} | Best: {summary['best_fitness']:8.1f} | "
            f"Mean: {summary['mean_fitness']:8.1f} | Ticks: {summary['best_ticks']:4d} | "
            f"Fruits: {summary['best_fruits']} | Deaths: W={d['wall']} S={d['self']} "
            f"St={d['stall']} T={d['timeout']}")


class RunLogger:
    """Appends generation summaries to a CSV file and a JSON-lines file."""

    def __init__(self, csv_path: str, json_path: str, echo: bool = True):
        self.csv_path = csv_path
        self.json_path = json_path
        self.echo = echo

        for path in (csv_path, json_path):
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)

        self.csv_file = open(csv_path, 'w', newline='')
        self.csv_writer = csv.writer(self.csv_file)
        self.csv_writer.writerow(CSV_HEADER)
        self.csv_file.flush()
        self.json_file = open(json_path, 'w')

    def log_generation(self, summary: Dict):
        d = summary['death_counts']
        self.csv_writer.writerow([
            summary['generation'],
            f"{summary['best_fitness']:.2f}",
            f"{summary['mean_fitness']:.2f}",
            summary['best_ticks'],
            f"{summary['mean_ticks']:.2f}",
            summary['best_fruits'],
            f"{summary['mean_fruits']:.2f}",
            d['wall'], d['self'], d['stall'], d['timeout'],
        ])
        self.csv_file.flush()
        self._write_json(summary)

        if self.echo:
            print(format_generation(summary))

    def log_benchmark(self, benchmark: Dict):
        self._write_json({'benchmark': benchmark})
        if self.echo:
            print(f"  [BENCHMARK] Gen {benchmark['generation']}: Avg Ticks={benchmark['ticks_mean']:.1f}, "
                  f"Avg Fruits={benchmark['fruits_mean']:.2f}, Avg Score={benchmark['score_mean']:.1f}")

    def _write_json(self, record: Dict):
        self.json_file.write(json.dumps(record) + "\n")
        self.json_file.flush()

    def close(self):
        for f in (self.csv_file, self.json_file):
            if not f.closed:
                f.close()


def log_top_k(agents: List[Agent], k: int):
    """Print the leading agents of a sorted population."""
    k = min(k, len(agents))
    print(f"  Top {k} agents:")
    for i, a in enumerate(agents[:k]):
        print(f"    #{i + 1}: Fitness={a.fitness:.1f}, Ticks={a.stats.ticks}, "
              f"Fruits={a.stats.fruits}, Death={a.stats.death}")


def read_history(csv_path: str) -> Dict[str, List[float]]:
    history: Dict[str, List[float]] = {key: [] for key in CSV_HEADER}
    with open(csv_path, 'r', newline='') as f:
        for row in csv.DictReader(f):
            for key in CSV_HEADER:
                history[key].append(float(row[key]))
    return history


def plot_history(csv_path: str, png_path: str):
    """Plot fitness, ticks and death causes from a run CSV into a PNG file."""
    history = read_history(csv_path)
    gens = history['generation']

    fig, (ax_fit, ax_ticks, ax_death) = plt.subplots(3, 1, figsize=(10, 10), sharex=True)

    ax_fit.plot(gens, history['best_fitness'], label='Best', linewidth=1.5)
    ax_fit.plot(gens, history['mean_fitness'], label='Mean', linewidth=1.0)
    ax_fit.set_ylabel('Fitness')
    ax_fit.grid(True, alpha=0.3)
    ax_fit.legend()

    ax_ticks.plot(gens, history['best_ticks'], label='Best ticks', linewidth=1.5)
    ax_ticks.plot(gens, history['mean_ticks'], label='Mean ticks', linewidth=1.0)
    ax_ticks.plot(gens, history['mean_fruits'], 'k--', label='Mean fruits', linewidth=1.0)
    ax_ticks.set_ylabel('Ticks / Fruits')
    ax_ticks.grid(True, alpha=0.3)
    ax_ticks.legend()

    for key in DEATH_KEYS:
        ax_death.plot(gens, history[f'deaths_{key}'], label=key, linewidth=1.0)
    ax_death.set_xlabel('Generation')
    ax_death.set_ylabel('Deaths')
    ax_death.grid(True, alpha=0.3)
    ax_death.legend()

    fig.tight_layout()
    directory = os.path.dirname(png_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    fig.savefig(png_path, dpi=100)
    plt.close(fig)
