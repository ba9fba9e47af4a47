"""
Evolutionary strategy modelled on SPEA2 (Strength Pareto Evolutionary Algorithm).

Evaluated candidates accumulate in a bounded population. When it is full one
generation runs against population + archive:

1. Fitness assignment: a rank-based raw fitness (0 = best, ties share a
   rank) plus a density term ``1 / (d_k + 2)``, where ``d_k`` is the
   distance to the k-th nearest neighbour, ``k = round(sqrt(N))``.
   Lower fitness is better.
2. Environmental selection: every individual with fitness < 1 enters the
   new archive. An under-full archive is topped up in ascending fitness
   order. An over-full archive is truncated by repeatedly dropping the
   individual closest to its nearest neighbour.
3. Mating selection: binary tournaments over the scored pool.
4. Variation: uniform crossover of consecutive mates, then per-parameter
   uniform mutation. The children are proposed next.

Scores are scalar, so the distance between two individuals is the absolute
difference of their scores.
"""

from __future__ import annotations

import logging
import math
import random
from collections import Counter, deque
from dataclasses import dataclass
from typing import Any, Deque, List, Mapping, Optional, Sequence

from biopsy.core.domain import Candidate, ParameterSpace
from biopsy.core.errors import ConfigurationError
from biopsy.optimisers.base import SearchStrategy

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Individual:
    candidate: Candidate
    score: float
    raw_fitness: int = 0
    density: float = 0.0
    distance_to_kth_point: float = 0.0
    fitness: float = 0.0

    def distance_to(self, other: "Individual") -> float:
        return abs(self.score - other.score)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class FitnessAssignment:
    def run(self, individuals: List[Individual]) -> None:
        self.score_raw_fitness(individuals)
        self.score_density(individuals)
        for individual in individuals:
            individual.fitness = individual.raw_fitness + individual.density

    def score_raw_fitness(self, individuals: List[Individual]) -> None:
        """
        Rank by closeness to the ideal point (highest score first).

        The running counter is the rank; an individual that is not strictly
        worse than its predecessor shares the predecessor's rank.
        """
        ordered = sorted(individuals, key=lambda ind: ind.score, reverse=True)
        previous: Optional[Individual] = None
        for counter, individual in enumerate(ordered):
            if previous is not None and not previous.score > individual.score:
                individual.raw_fitness = previous.raw_fitness
            else:
                individual.raw_fitness = counter
            previous = individual

    def distance_matrix(self, individuals: Sequence[Individual]) -> List[List[float]]:
        n = len(individuals)
        matrix = [[0.0] * n for _ in range(n)]
        for i in range(n):
            for j in range(i + 1, n):
                d = individuals[i].distance_to(individuals[j])
                matrix[i][j] = d
                matrix[j][i] = d
        return matrix

    def score_density(self, individuals: List[Individual]) -> None:
        n = len(individuals)
        if n == 0:
            return
        k = max(1, _round_half_up(math.sqrt(n)))
        matrix = self.distance_matrix(individuals)
        for i, individual in enumerate(individuals):
            others = sorted(matrix[i][j] for j in range(n) if j != i)
            if others:
                individual.distance_to_kth_point = others[min(k, len(others)) - 1]
            else:
                individual.distance_to_kth_point = 0.0
            individual.density = 1.0 / (individual.distance_to_kth_point + 2.0)


class EnvironmentalSelection:
    """Builds the next archive from fitness-scored individuals."""

    def run(self, individuals: List[Individual], archive_size: int) -> List[Individual]:
        archive = [ind for ind in individuals if ind.fitness < 1]
        remaining = [ind for ind in individuals if ind.fitness >= 1]

        if len(archive) < archive_size:
            archive = self.further_archive_selection(archive, remaining, archive_size)
        elif len(archive) > archive_size:
            archive = self.archive_truncation(archive, archive_size)
        return archive

    def further_archive_selection(
        self, archive: List[Individual], remaining: List[Individual], archive_size: int
    ) -> List[Individual]:
        archive = list(archive)
        for individual in sorted(remaining, key=lambda ind: ind.fitness):
            if len(archive) >= archive_size:
                break
            archive.append(individual)
        return archive

    def archive_truncation(self, archive: List[Individual], archive_size: int) -> List[Individual]:
        """
        Drop the most crowded individual until the archive fits.

        The most crowded individual has the smallest distance to its nearest
        remaining neighbour; ties are broken by the next-nearest distance,
        and so on.
        """
        archive = list(archive)
        while len(archive) > archive_size:
            def neighbour_distances(ind: Individual) -> List[float]:
                return sorted(ind.distance_to(other) for other in archive if other is not ind)

            victim = min(archive, key=neighbour_distances)
            archive.remove(victim)
        return archive


class MatingSelection:
    def __init__(self, rng: random.Random):
        self.rng = rng

    def binary_tournament(self, pool: Sequence[Individual]) -> Individual:
        """Lower fitness wins; on a tie the first drawn wins."""
        if len(pool) == 1:
            return pool[0]
        first, second = self.rng.sample(list(pool), 2)
        if first.fitness > second.fitness:
            return second
        return first

    def run(self, pool: Sequence[Individual], size: int) -> List[Individual]:
        return [self.binary_tournament(pool) for _ in range(size)]


class Variation:
    def __init__(
        self,
        parameters: ParameterSpace,
        probability_of_cross: float,
        mutation_probability: float,
        rng: random.Random,
    ):
        self.parameters = parameters
        self.probability_of_cross = probability_of_cross
        self.mutation_probability = mutation_probability
        self.rng = rng

    def reproduce(self, mating_pool: Sequence[Individual]) -> List[Candidate]:
        """
        Pair consecutive mates; an odd final mate is paired with the first.

        A full pair yields two children (one per parent order), the odd
        final mate yields one, so the number of children equals the pool size.
        """
        children: List[Candidate] = []
        n = len(mating_pool)
        for i in range(0, n, 2):
            first = mating_pool[i]
            if i + 1 < n:
                second = mating_pool[i + 1]
                children.append(self.mate(first, second))
                children.append(self.mate(second, first))
            else:
                children.append(self.mate(first, mating_pool[0]))
        return children

    def mate(self, first: Individual, second: Individual) -> Candidate:
        return self.mutation(self.crossover(first, second))

    def crossover(self, first: Individual, second: Individual) -> Candidate:
        if self.rng.random() >= self.probability_of_cross:
            return first.candidate
        child = {}
        for name in self.parameters.names:
            if self.rng.random() < 0.5:
                child[name] = first.candidate[name]
            else:
                child[name] = second.candidate[name]
        return Candidate(child)

    def mutation(self, child: Candidate) -> Candidate:
        for name, values in self.parameters.items():
            if self.rng.random() < self.mutation_probability:
                child = child.replace(name, self.rng.choice(values))
        return child


class EvolutionaryStrategy(SearchStrategy):
    name = "spea2"

    def __init__(
        self,
        parameters: ParameterSpace,
        population_size: int = 20,
        archive_size: int = 5,
        probability_of_cross: float = 0.94,
        mutation_probability: float = 0.05,
        convergence_generations: int = 3,
        seed: Optional[int] = None,
    ):
        if population_size < 2:
            raise ConfigurationError(f"population_size must be at least 2, got {population_size}")
        if archive_size < 1:
            raise ConfigurationError(f"archive_size must be a positive integer, got {archive_size}")
        if convergence_generations < 1:
            raise ConfigurationError(
                f"convergence_generations must be a positive integer, got {convergence_generations}"
            )
        for label, probability in (
            ("probability_of_cross", probability_of_cross),
            ("mutation_probability", mutation_probability),
        ):
            if not 0.0 <= probability <= 1.0:
                raise ConfigurationError(f"{label} must be within [0, 1], got {probability}")

        super().__init__(parameters, seed=seed)
        self.population_size = population_size
        self.archive_size = archive_size
        self.convergence_generations = convergence_generations

        self.fitness_assignment = FitnessAssignment()
        self.environmental_selection = EnvironmentalSelection()
        self.mating_selection = MatingSelection(self.rng)
        self.variation = Variation(parameters, probability_of_cross, mutation_probability, self.rng)

        self.population: List[Individual] = []
        self.archive: List[Individual] = []
        self.offspring: Deque[Candidate] = deque()
        self.generation = 0
        self.stable_generations = 0

    def next(self, candidate: Mapping[str, Any], score: float) -> Candidate:
        candidate = Candidate(candidate)
        self.iterations += 1
        self.update_best(candidate, score)

        if math.isfinite(score):
            self.population.append(Individual(candidate, score))
        else:
            logger.debug(f"Not adding unscored candidate {candidate.to_dict()} to population")

        if len(self.population) >= self.population_size:
            self.run_generation()

        if self.offspring:
            return self.offspring.popleft()
        return self.random_candidate()

    def run_generation(self) -> None:
        pool = self.population + self.archive
        self.fitness_assignment.run(pool)
        new_archive = self.environmental_selection.run(pool, self.archive_size)

        old_members = Counter(ind.candidate for ind in self.archive)
        new_members = Counter(ind.candidate for ind in new_archive)
        if self.archive and old_members == new_members:
            self.stable_generations += 1
        else:
            self.stable_generations = 0
        self.archive = new_archive

        mating_pool = self.mating_selection.run(pool, self.population_size)
        self.offspring = deque(self.variation.reproduce(mating_pool))
        self.population = []
        self.generation += 1
        logger.debug(
            f"Generation {self.generation}: archive={len(self.archive)} "
            f"best_fitness={min((ind.fitness for ind in self.archive), default=math.nan):.3f} "
            f"stable_for={self.stable_generations}"
        )

    def is_finished(self) -> bool:
        return self.stable_generations >= self.convergence_generations
