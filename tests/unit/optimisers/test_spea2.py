import logging
import random

import pytest

from biopsy.core.domain import Candidate, ParameterSpace
from biopsy.core.errors import ConfigurationError
from biopsy.optimisers.spea2 import (
    EnvironmentalSelection,
    EvolutionaryStrategy,
    FitnessAssignment,
    Individual,
    MatingSelection,
    Variation,
)


def individuals(*scores):
    return [Individual(Candidate({"i": n}), score) for n, score in enumerate(scores)]


def score_of(candidate):
    return -sum(abs(candidate[name] - 4) for name in ("a", "b", "c"))


class TestFitnessAssignment:
    def test_raw_fitness_ranks_best_first_and_ties_share_rank(self):
        pop = individuals(18, 20, 15, 18, 10)
        FitnessAssignment().score_raw_fitness(pop)

        assert [ind.raw_fitness for ind in pop] == [1, 0, 3, 1, 4]

    def test_density_uses_kth_nearest_neighbour(self):
        pop = individuals(20, 18, 18, 15, 10)
        FitnessAssignment().score_density(pop)

        # k = round(sqrt(5)) = 2
        assert pop[0].distance_to_kth_point == 2
        assert pop[0].density == pytest.approx(0.25)
        assert pop[4].distance_to_kth_point == 8
        assert pop[4].density == pytest.approx(0.1)

    def test_density_is_bounded_and_never_zero(self):
        pop = individuals(1, 1, 1, 1)
        FitnessAssignment().score_density(pop)

        assert all(0 < ind.density <= 0.5 for ind in pop)

    def test_fitness_is_raw_plus_density(self):
        pop = individuals(20, 18, 18, 15, 10)
        FitnessAssignment().run(pop)

        for ind in pop:
            assert ind.fitness == pytest.approx(ind.raw_fitness + ind.density)
        assert pop[0].fitness < 1
        assert all(ind.fitness >= 1 for ind in pop[1:])

    def test_single_individual(self):
        pop = individuals(3)
        FitnessAssignment().run(pop)

        assert pop[0].raw_fitness == 0
        assert pop[0].density == pytest.approx(0.5)


class TestEnvironmentalSelection:
    def test_non_dominated_enter_and_archive_is_backfilled_by_fitness(self):
        pop = individuals(20, 18, 18, 15, 10)
        FitnessAssignment().run(pop)

        archive = EnvironmentalSelection().run(pop, archive_size=3)

        assert [ind.score for ind in archive] == [20, 18, 18]

    def test_backfill_stops_when_candidates_run_out(self):
        pop = individuals(5, 4)
        FitnessAssignment().run(pop)

        archive = EnvironmentalSelection().run(pop, archive_size=5)

        assert len(archive) == 2

    def test_truncation_removes_most_crowded_first(self):
        archive = individuals(1.0, 1.1, 5.0, 9.0)

        truncated = EnvironmentalSelection().archive_truncation(archive, 3)

        # 1.0 and 1.1 are equally close; 1.1 is nearer its second neighbour.
        assert [ind.score for ind in truncated] == [1.0, 5.0, 9.0]

    def test_overfull_archive_is_truncated_to_exact_size(self):
        pop = individuals(7, 7, 7, 7, 7, 7)
        FitnessAssignment().run(pop)

        archive = EnvironmentalSelection().run(pop, archive_size=4)

        assert len(archive) == 4


class TestMatingSelection:
    def test_lower_fitness_wins_tournament(self):
        good, bad = individuals(1, 2)
        good.fitness, bad.fitness = 0.2, 3.0
        selector = MatingSelection(random.Random(0))

        winners = selector.run([good, bad], 20)

        assert len(winners) == 20
        assert all(w is good for w in winners)

    def test_single_individual_pool(self):
        (only,) = individuals(1)
        assert MatingSelection(random.Random(0)).binary_tournament([only]) is only


class TestVariation:
    def test_without_cross_or_mutation_children_copy_first_parent(self):
        space = ParameterSpace({"i": range(10)})
        pool = individuals(1, 2, 3)
        variation = Variation(space, probability_of_cross=0.0, mutation_probability=0.0, rng=random.Random(0))

        children = variation.reproduce(pool)

        assert children == [pool[0].candidate, pool[1].candidate, pool[2].candidate]

    def test_crossover_takes_each_value_from_a_parent(self):
        space = ParameterSpace({"a": range(1, 6), "b": range(1, 6), "c": range(1, 6)})
        first = Individual(Candidate({"a": 1, "b": 1, "c": 1}), 0)
        second = Individual(Candidate({"a": 5, "b": 5, "c": 5}), 0)
        variation = Variation(space, probability_of_cross=1.0, mutation_probability=0.0, rng=random.Random(2))

        for _ in range(20):
            child = variation.crossover(first, second)
            assert all(child[name] in (1, 5) for name in ("a", "b", "c"))

    def test_mutation_draws_from_domain(self, space):
        variation = Variation(space, probability_of_cross=0.0, mutation_probability=1.0, rng=random.Random(4))
        for _ in range(20):
            assert space.contains(variation.mutation(Candidate({"a": 1, "b": 1, "c": 1})))

    def test_pool_size_equals_children_count(self):
        space = ParameterSpace({"i": range(10)})
        variation = Variation(space, 0.5, 0.1, random.Random(1))
        for n in range(1, 8):
            assert len(variation.reproduce(individuals(*range(n)))) == n


class TestEvolutionaryStrategy:
    def test_generation_runs_when_population_fills(self, space):
        strategy = EvolutionaryStrategy(space, population_size=4, archive_size=2, seed=0)
        current = strategy.select_starting_point()
        strategy.setup(current)

        for _ in range(3):
            current = strategy.next(current, score_of(current))
            assert len(strategy.population) <= 4
        assert strategy.generation == 0

        current = strategy.next(current, score_of(current))
        assert strategy.generation == 1
        assert strategy.population == []
        assert len(strategy.archive) == 2
        assert len(strategy.offspring) == 3  # one of four already proposed

    def test_proposals_stay_in_domain_across_generations(self, space):
        strategy = EvolutionaryStrategy(space, population_size=6, archive_size=3, seed=11)
        current = strategy.select_starting_point()
        for _ in range(60):
            current = strategy.next(current, score_of(current))
            assert space.contains(current)
            assert len(strategy.population) < 6
        assert strategy.generation == 10
        assert len(strategy.archive) == 3

    def test_best_is_monotonic(self, space):
        strategy = EvolutionaryStrategy(space, population_size=5, archive_size=2, seed=7)
        current = strategy.select_starting_point()
        history = []
        for _ in range(40):
            current = strategy.next(current, score_of(current))
            history.append(strategy.best.score)
        assert history == sorted(history)

    def test_unscored_candidates_are_not_added_to_population(self, space):
        strategy = EvolutionaryStrategy(space, population_size=4, seed=0)
        strategy.next(Candidate({"a": 1, "b": 1, "c": 1}), float("-inf"))

        assert strategy.population == []

    def test_finishes_once_archive_is_stable(self):
        space = ParameterSpace({"a": [1]})
        strategy = EvolutionaryStrategy(space, population_size=2, archive_size=1, convergence_generations=2, seed=0)
        current = strategy.select_starting_point()

        generations_seen = []
        while not strategy.is_finished():
            current = strategy.next(current, 1.0)
            generations_seen.append(strategy.generation)
            assert len(generations_seen) < 50

        assert strategy.generation == 3
        assert strategy.stable_generations == 2


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"population_size": 1}, "population_size"),
        ({"archive_size": 0}, "archive_size"),
        ({"convergence_generations": 0}, "convergence_generations"),
        ({"probability_of_cross": 1.5}, "probability_of_cross"),
        ({"mutation_probability": -0.1}, "mutation_probability"),
    ],
)
def test_invalid_configuration_is_rejected(space, kwargs, message):
    with pytest.raises(ConfigurationError, match=message):
        EvolutionaryStrategy(space, **kwargs)


def test_smallest_valid_configuration_runs_generations(space, caplog):
    caplog.set_level(logging.DEBUG, logger="biopsy")
    strategy = EvolutionaryStrategy(space, population_size=2, archive_size=1, seed=0)
    current = strategy.select_starting_point()

    for _ in range(6):
        current = strategy.next(current, score_of(current))

    assert strategy.generation == 3
    assert len(strategy.archive) == 1
    assert "best_fitness=" in caplog.text
