"""
Genetic algorithm: agents, population and variation operators.

All randomness comes from one numpy Generator owned by the training loop.
For every offspring slot the draws happen in a fixed order: first parent,
second parent, crossover, mutation.
"""

from typing import List, Optional, Tuple

import numpy as np

from game import AggregatedStats, EpisodeStats
from policy import clone_genome, random_genome

RESET_SIGMA = 0.5           # Std of freshly reset genes


# =============================================================================
# AGENT AND POPULATION
# =============================================================================
class Agent:
    """One individual: a genome plus the results of its latest evaluations."""

    def __init__(self, genome: np.ndarray):
        self.genome = genome
        self.fitness = 0.0
        self.stats: Optional[EpisodeStats] = None
        self.agg_stats: Optional[AggregatedStats] = None
        self.robust_score = 0.0

    def clone(self) -> "Agent":
        """Deep copy: the clone never shares genome storage with the original."""
        twin = Agent(clone_genome(self.genome))
        twin.fitness = self.fitness
        twin.stats = self.stats
        twin.agg_stats = self.agg_stats
        twin.robust_score = self.robust_score
        return twin

    def __repr__(self):
        return f"Agent(fitness={self.fitness:.1f}, robust={self.robust_score:.1f})"


class Population:
    """Fixed-size collection of agents, replaced wholesale each generation."""

    def __init__(self, agents: List[Agent], genome_size: int):
        self.agents = agents
        self.genome_size = genome_size

    @classmethod
    def random(cls, size: int, genome_size: int, rng: np.random.Generator) -> "Population":
        return cls([Agent(random_genome(genome_size, rng)) for _ in range(size)], genome_size)

    def __len__(self):
        return len(self.agents)

    def __iter__(self):
        return iter(self.agents)

    def sort_by_fitness(self):
        """Descending; equal fitness keeps the current order."""
        self.agents.sort(key=lambda a: a.fitness, reverse=True)

    def top_k(self, k: int) -> List[Agent]:
        self.sort_by_fitness()
        return self.agents[:k]

    def best(self) -> Optional[Agent]:
        """Highest fitness; the first one wins ties."""
        if not self.agents:
            return None
        return max(self.agents, key=lambda a: a.fitness)

    def best_by_robust(self) -> Optional[Agent]:
        if not self.agents:
            return None
        return max(self.agents, key=lambda a: a.robust_score)


# =============================================================================
# SELECTION
# =============================================================================

def selection_pool(population: Population, pool_size: int) -> List[Agent]:
    """Top agents by fitness eligible for reproduction."""
    population.sort_by_fitness()
    return population.agents[:pool_size]


def tournament_select(pool: List[Agent], k: int, rng: np.random.Generator) -> Optional[Agent]:
    """Best of k uniform draws with replacement; the earliest draw wins ties."""
    if not pool:
        return None
    k = min(k, len(pool))
    best = pool[int(rng.integers(len(pool)))]
    for _ in range(1, k):
        candidate = pool[int(rng.integers(len(pool)))]
        if candidate.fitness > best.fitness:
            best = candidate
    return best


def select_parents(pool: List[Agent], k: int, rng: np.random.Generator) -> Tuple[Agent, Agent]:
    p1 = tournament_select(pool, k, rng)
    p2 = tournament_select(pool, k, rng)
    return p1, p2


# =============================================================================
# CROSSOVER
# =============================================================================

def uniform_crossover(g1: np.ndarray, g2: np.ndarray, rate: float,
                      rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    """Swap each gene between the parents with probability `rate`."""
    swap = rng.random(g1.shape[0]) < rate
    c1 = np.where(swap, g2, g1).astype(np.float32)
    c2 = np.where(swap, g1, g2).astype(np.float32)
    return c1, c2


def single_point_crossover(g1: np.ndarray, g2: np.ndarray,
                           rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    point = int(rng.integers(g1.shape[0]))
    c1 = np.concatenate([g1[:point], g2[point:]]).astype(np.float32)
    c2 = np.concatenate([g2[:point], g1[point:]]).astype(np.float32)
    return c1, c2


def create_child(p1: Agent, p2: Agent, crossover_rate: float,
                 rng: np.random.Generator) -> Agent:
    """
    Single offspring from two parents.

    With probability `crossover_rate` the child is the first product of a
    50/50 uniform crossover; otherwise it is a copy of one parent chosen by a
    fair coin.
    """
    if rng.random() > crossover_rate:
        if rng.random() < 0.5:
            return Agent(clone_genome(p1.genome))
        return Agent(clone_genome(p2.genome))

    c1, _ = uniform_crossover(p1.genome, p2.genome, 0.5, rng)
    return Agent(c1)


# =============================================================================
# MUTATION
# =============================================================================

def mutate(genome: np.ndarray, rate: float, sigma: float, reset_p: float,
           rng: np.random.Generator):
    """
    Mutate a genome in place.

    Each gene is reset to N(0, 0.5^2) with probability `reset_p`; genes that
    were not reset get N(0, sigma^2) noise with probability `rate`.
    """
    n = genome.shape[0]
    reset = rng.random(n) < reset_p
    perturb = ~reset & (rng.random(n) < rate)

    genome[reset] = (rng.standard_normal(int(reset.sum())) * RESET_SIGMA).astype(np.float32)
    genome[perturb] += (rng.standard_normal(int(perturb.sum())) * sigma).astype(np.float32)


def reset_genome(genome: np.ndarray, rng: np.random.Generator):
    genome[:] = (rng.standard_normal(genome.shape[0]) * RESET_SIGMA).astype(np.float32)


def reset_fraction(agents: List[Agent], fraction: float, elites: int,
                   rng: np.random.Generator) -> int:
    """
    Re-randomise the trailing `fraction` of a ranked agent list.

    Agents at index < `elites` are never touched. Returns how many were reset.
    """
    num_reset = int(len(agents) * fraction)
    count = 0
    for i in range(max(len(agents) - num_reset, elites), len(agents)):
        reset_genome(agents[i].genome, rng)
        count += 1
    return count


# =============================================================================
# NEXT GENERATION
# =============================================================================

def next_generation(population: Population, ga_cfg: dict,
                    rng: np.random.Generator) -> List[Agent]:
    """
    Build the next generation from an evaluated population.

    Elites are deep-copied unchanged; every other slot is filled by tournament
    selection from the selection pool, crossover and mutation. With
    probability `reset_chance`, the last `reset_fraction` of the non-elite
    slots are then re-randomised to inject diversity.
    """
    size = ga_cfg['population']
    elites = min(ga_cfg['elites'], len(population))

    population.sort_by_fitness()
    new_agents = [population.agents[i].clone() for i in range(elites)]

    pool = selection_pool(population, ga_cfg['selection_pool'])
    while len(new_agents) < size:
        p1, p2 = select_parents(pool, ga_cfg['tournament_k'], rng)
        child = create_child(p1, p2, ga_cfg['crossover_rate'], rng)
        mutate(child.genome, ga_cfg['mutation_rate'], ga_cfg['mutation_sigma'],
               ga_cfg['reset_mutation_p'], rng)
        new_agents.append(child)

    if ga_cfg['reset_fraction'] > 0 and rng.random() < ga_cfg.get('reset_chance', 0.1):
        reset_fraction(new_agents, ga_cfg['reset_fraction'], elites, rng)

    return new_agents
