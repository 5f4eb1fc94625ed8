"""
Configuration file for Snake Neuroevolution.

All training parameters can be adjusted here. Each track (wall, self, fruit,
multi) starts from the defaults below and overrides the parameters it needs.
"""

import copy
import os

import yaml

# ==============================================================================
# RANDOMNESS
# ==============================================================================

SEED = 1337                     # Master seed; generation g is scored with SEED + g

# ==============================================================================
# ENVIRONMENT
# ==============================================================================

GRID_WIDTH = 10                 # Grid columns
GRID_HEIGHT = 10                # Grid rows
START_LENGTH = 1                # Initial body length
TICK_CAP = 200                  # Episode ends with "timeout" at this tick
STALL_WINDOW = 9999             # Ticks without fruit before "stall"
FRUIT_ENABLED = False           # Spawn fruit on the grid

# ==============================================================================
# NEURAL NETWORK ARCHITECTURE
# ==============================================================================

HIDDEN1 = 8                     # First hidden layer width (ReLU)
HIDDEN2 = 0                     # Second hidden layer width (0 = no second layer)
NUM_ACTIONS = 3                 # Straight, turn left, turn right

# Observation encodings and their vector lengths
OBS_DIMS = {
    'wall': 3,
    'self': 6,
    'fruit': 6,
    'multi': 10,
}

# ==============================================================================
# GENETIC ALGORITHM
# ==============================================================================

POPULATION = 200                # Agents per generation
ELITES = 4                      # Copied unchanged into the next generation
SELECTION_POOL = 80             # Top agents eligible as parents
TOURNAMENT_K = 3                # Tournament size
CROSSOVER_RATE = 0.7            # Probability of uniform crossover
MUTATION_RATE = 0.10            # Per-gene perturbation probability
MUTATION_SIGMA = 0.06           # Perturbation standard deviation
RESET_MUTATION_P = 0.01         # Per-gene reset probability
RESET_FRACTION = 0.10           # Share of the population re-randomised on reset
RESET_CHANCE = 0.10             # Per-generation probability of a fraction reset

# ==============================================================================
# EVALUATION
# ==============================================================================

TOPK_MULTISEED = 50             # Candidates scored on multiple seeds
MULTISEED_RUNS = 7              # Episodes per candidate
MULTISEED_BASE_SEED = 1000      # First multi-seed seed
ROBUSTNESS_LAMBDA = 0.25        # robust = mean - lambda * std
BENCHMARK_EVERY = 50            # Generations between benchmarks
BENCHMARK_TOP = 5               # Agents benchmarked
BENCHMARK_SEEDS = list(range(2000, 2010))
WORKERS = 0                     # Worker processes (0 = all CPUs)

# ==============================================================================
# FITNESS FUNCTION
# ==============================================================================

WALL_PENALTY = 500.0
SELF_PENALTY = 600.0
STALL_PENALTY = 100.0
SELF_WALL_SCALE = 0.33          # Wall penalty share on the self track
FRUIT_REWARD = 5000.0
SURVIVAL_CAP = 40
SURVIVAL_W = 2.0
PROGRESS_W = 10.0

# ==============================================================================
# LOGGING AND PERSISTENCE
# ==============================================================================

EVERY_GEN_SUMMARY = True        # Print and log a line per generation
TOPN_DEBUG = 5                  # Agents listed in the periodic debug dump
SAVE_CHAMPION_EVERY = 250       # Generations between champion checkpoints
REPLAY_EVERY = 500              # Generations between replay captures
CSV_PATH = os.path.join("runs", "run.csv")
JSON_PATH = os.path.join("runs", "run.jsonl")
ARTIFACTS_DIR = "artifacts"


class ConfigError(ValueError):
    """Raised for malformed or inconsistent training parameters."""


DEFAULTS = {
    'seed': SEED,
    'track': {'mode': 'wall', 'obs': 'wall'},
    'env': {
        'width': GRID_WIDTH,
        'height': GRID_HEIGHT,
        'start_length': START_LENGTH,
        'tick_cap': TICK_CAP,
        'stall_window': STALL_WINDOW,
        'fruit_enabled': FRUIT_ENABLED,
    },
    'nn': {'hidden1': HIDDEN1, 'hidden2': HIDDEN2},
    'ga': {
        'population': POPULATION,
        'elites': ELITES,
        'selection_pool': SELECTION_POOL,
        'tournament_k': TOURNAMENT_K,
        'crossover_rate': CROSSOVER_RATE,
        'mutation_rate': MUTATION_RATE,
        'mutation_sigma': MUTATION_SIGMA,
        'reset_mutation_p': RESET_MUTATION_P,
        'reset_fraction': RESET_FRACTION,
        'reset_chance': RESET_CHANCE,
    },
    'eval': {
        'topk_multiseed': TOPK_MULTISEED,
        'multiseed_runs': MULTISEED_RUNS,
        'multiseed_base_seed': MULTISEED_BASE_SEED,
        'robustness_lambda': ROBUSTNESS_LAMBDA,
        'benchmark_every': BENCHMARK_EVERY,
        'benchmark_top': BENCHMARK_TOP,
        'benchmark_seeds': BENCHMARK_SEEDS,
        'workers': WORKERS,
    },
    'fitness': {
        'mode': 'wall',
        'wall_penalty': WALL_PENALTY,
        'self_penalty': SELF_PENALTY,
        'stall_penalty': STALL_PENALTY,
        'self_wall_scale': SELF_WALL_SCALE,
        'fruit_reward': FRUIT_REWARD,
        'survival_cap': SURVIVAL_CAP,
        'survival_w': SURVIVAL_W,
        'progress_w': PROGRESS_W,
    },
    'logging': {
        'every_gen_summary': EVERY_GEN_SUMMARY,
        'topn_debug': TOPN_DEBUG,
        'save_champion_every': SAVE_CHAMPION_EVERY,
        'replay_every': REPLAY_EVERY,
        'csv_path': CSV_PATH,
        'json_path': JSON_PATH,
        'artifacts_dir': ARTIFACTS_DIR,
    },
}

# ==============================================================================
# TRACKS
# ==============================================================================

# Each track only lists what differs from DEFAULTS
TRACKS = {
    'wall': {
        'track': {'mode': 'wall', 'obs': 'wall'},
        'fitness': {'mode': 'wall'},
    },
    'self': {
        'track': {'mode': 'self', 'obs': 'self'},
        'env': {'width': 12, 'height': 12, 'start_length': 6, 'tick_cap': 300},
        'nn': {'hidden1': 10},
        'fitness': {'mode': 'self'},
    },
    'fruit': {
        'track': {'mode': 'fruit', 'obs': 'fruit'},
        'env': {'tick_cap': 400, 'stall_window': 100, 'fruit_enabled': True},
        'nn': {'hidden1': 12},
        'fitness': {'mode': 'fruit'},
    },
    'multi': {
        'track': {'mode': 'multi', 'obs': 'multi'},
        'env': {'width': 12, 'height': 12, 'start_length': 3, 'tick_cap': 1000,
                'stall_window': 150, 'fruit_enabled': True},
        'nn': {'hidden1': 16, 'hidden2': 8},
        'fitness': {'mode': 'multi'},
    },
}

# ==============================================================================
# HELPER FUNCTIONS
# ==============================================================================

_INT_FIELDS = {
    'env': ['width', 'height', 'start_length', 'tick_cap', 'stall_window'],
    'nn': ['hidden1', 'hidden2'],
    'ga': ['population', 'elites', 'selection_pool', 'tournament_k'],
    'eval': ['topk_multiseed', 'multiseed_runs', 'multiseed_base_seed',
             'benchmark_every', 'benchmark_top', 'workers'],
    'fitness': ['survival_cap'],
    'logging': ['topn_debug', 'save_champion_every', 'replay_every'],
}

_PROBABILITY_FIELDS = ['crossover_rate', 'mutation_rate', 'reset_mutation_p',
                       'reset_fraction', 'reset_chance']

# '_min' spellings are accepted as aliases
_OBS_NAMES = set(OBS_DIMS) | {name + '_min' for name in OBS_DIMS}


def _deep_merge(base: dict, overrides: dict) -> dict:
    """Return a copy of base with overrides applied section by section."""
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _require_int(cfg, section, key, minimum):
    value = cfg[section].get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{section}.{key} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigError(f"{section}.{key} must be >= {minimum}, got {value}")


def _require_number(cfg, section, key):
    value = cfg[section].get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{section}.{key} must be a number, got {value!r}")


def validate_config(cfg: dict) -> dict:
    """
    Check a training configuration before anything is built from it.

    Args:
        cfg: Nested configuration dictionary

    Returns:
        The same dictionary, for chaining

    Raises:
        ConfigError: On missing sections, wrong types or inconsistent values
    """
    for section in DEFAULTS:
        if section not in cfg:
            raise ConfigError(f"missing configuration section: {section}")

    if isinstance(cfg['seed'], bool) or not isinstance(cfg['seed'], int) or cfg['seed'] < 0:
        raise ConfigError(f"seed must be a non-negative integer, got {cfg['seed']!r}")

    minimums = {'width': 1, 'height': 1, 'start_length': 1, 'tick_cap': 1,
                'stall_window': 1, 'hidden1': 1, 'hidden2': 0, 'population': 1,
                'elites': 0, 'selection_pool': 1, 'tournament_k': 1,
                'topk_multiseed': 1, 'multiseed_runs': 1, 'multiseed_base_seed': 0,
                'benchmark_every': 0, 'benchmark_top': 1, 'workers': 0,
                'survival_cap': 0, 'topn_debug': 0, 'save_champion_every': 0,
                'replay_every': 0}
    for section, keys in _INT_FIELDS.items():
        for key in keys:
            _require_int(cfg, section, key, minimums[key])

    for key in ['wall_penalty', 'self_penalty', 'stall_penalty', 'self_wall_scale',
                'fruit_reward', 'survival_w', 'progress_w']:
        _require_number(cfg, 'fitness', key)
    _require_number(cfg, 'ga', 'mutation_sigma')
    _require_number(cfg, 'eval', 'robustness_lambda')

    for key in _PROBABILITY_FIELDS:
        _require_number(cfg, 'ga', key)
        if not 0.0 <= cfg['ga'][key] <= 1.0:
            raise ConfigError(f"ga.{key} must be within [0, 1], got {cfg['ga'][key]}")

    env = cfg['env']
    # Body is laid out leftwards from the centre cell
    if env['start_length'] > env['width'] // 2 + 1:
        raise ConfigError(
            f"env.start_length {env['start_length']} does not fit a grid of width {env['width']}")
    if env['width'] * env['height'] < 2 and env['fruit_enabled']:
        raise ConfigError("fruit needs at least two cells")

    ga = cfg['ga']
    if ga['elites'] > ga['population']:
        raise ConfigError("ga.elites cannot exceed ga.population")
    if ga['selection_pool'] > ga['population']:
        raise ConfigError("ga.selection_pool cannot exceed ga.population")

    seeds = cfg['eval']['benchmark_seeds']
    if not isinstance(seeds, list) or not all(
            isinstance(s, int) and not isinstance(s, bool) and s >= 0 for s in seeds):
        raise ConfigError("eval.benchmark_seeds must be a list of non-negative integers")

    if cfg['track'].get('obs') not in _OBS_NAMES:
        raise ConfigError(f"unknown observation encoding: {cfg['track'].get('obs')!r}")
    if cfg['fitness'].get('mode') not in TRACKS:
        raise ConfigError(f"unknown fitness mode: {cfg['fitness'].get('mode')!r}")

    return cfg


def make_config(track: str = 'wall', overrides: dict = None) -> dict:
    """Build a validated configuration for a track, with optional overrides."""
    if track not in TRACKS:
        raise ConfigError(f"unknown track: {track!r} (choose from {', '.join(TRACKS)})")
    cfg = _deep_merge(DEFAULTS, TRACKS[track])
    if overrides:
        cfg = _deep_merge(cfg, overrides)
    return validate_config(cfg)


def load_config(path: str, overrides: dict = None) -> dict:
    """
    Load a YAML configuration file.

    The file may name a base track under "track" (either a string or a
    section with "mode"); everything else overrides that track's preset.
    `overrides` are applied on top of the file.
    """
    try:
        with open(path, 'r') as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"config {path} must contain a mapping")

    track = raw.get('track', 'wall')
    if isinstance(track, dict):
        base = track.get('mode', 'wall')
    else:
        base = track
        raw = {k: v for k, v in raw.items() if k != 'track'}
    if overrides:
        raw = _deep_merge(raw, overrides)
    return make_config(base, raw)


def obs_dim(cfg: dict) -> int:
    """Observation vector length for the configured encoding."""
    name = cfg['track']['obs']
    if name.endswith('_min'):
        name = name[:-4]
    return OBS_DIMS.get(name, OBS_DIMS['wall'])


def print_config(cfg: dict = None):
    """Print current configuration."""
    if cfg is None:
        cfg = make_config()
    env, nn, ga, ev, fit = cfg['env'], cfg['nn'], cfg['ga'], cfg['eval'], cfg['fitness']

    print("\n" + "="*70)
    print("CONFIGURATION SUMMARY")
    print("="*70)

    print(f"\n[Track]")
    print(f"  Mode: {cfg['track']['mode']}, Observation: {cfg['track']['obs']} (dim={obs_dim(cfg)})")
    print(f"  Seed: {cfg['seed']}")

    print(f"\n[Environment]")
    print(f"  Grid: {env['width']}x{env['height']}, Start length: {env['start_length']}")
    print(f"  Tick cap: {env['tick_cap']}, Stall window: {env['stall_window']}")
    print(f"  Fruit: {'ON' if env['fruit_enabled'] else 'OFF'}")

    print(f"\n[Neural Network]")
    hidden = f"{nn['hidden1']}" + (f" -> {nn['hidden2']}" if nn['hidden2'] > 0 else "")
    print(f"  Layers: {obs_dim(cfg)} -> {hidden} -> {NUM_ACTIONS}")

    print(f"\n[Evolution]")
    print(f"  Population: {ga['population']}, Elites: {ga['elites']}, Pool: {ga['selection_pool']}")
    print(f"  Tournament K: {ga['tournament_k']}, Crossover: {ga['crossover_rate']}")
    print(f"  Mutation: rate {ga['mutation_rate']}, sigma {ga['mutation_sigma']}, reset {ga['reset_mutation_p']}")
    print(f"  Fraction reset: {ga['reset_fraction']*100:.0f}% with chance {ga['reset_chance']*100:.0f}%")

    print(f"\n[Evaluation]")
    print(f"  Multi-seed: top {ev['topk_multiseed']} x {ev['multiseed_runs']} runs from seed {ev['multiseed_base_seed']}")
    print(f"  Robustness lambda: {ev['robustness_lambda']}")
    print(f"  Benchmark: every {ev['benchmark_every']} gens on {len(ev['benchmark_seeds'])} seeds")
    print(f"  Workers: {ev['workers'] if ev['workers'] > 0 else os.cpu_count()}")

    print(f"\n[Fitness Function]")
    print(f"  Mode: {fit['mode']}")
    print(f"  Penalties: wall {fit['wall_penalty']}, self {fit['self_penalty']}, stall {fit['stall_penalty']}")
    print(f"  Fruit reward: {fit['fruit_reward']}, Survival: {fit['survival_w']} x min(ticks, {fit['survival_cap']})")
    print(f"  Progress weight: {fit['progress_w']}")

    print("="*70 + "\n")


if __name__ == "__main__":
    print_config()
