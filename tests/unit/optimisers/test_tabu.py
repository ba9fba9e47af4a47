import pytest

from biopsy.core.domain import Candidate, ParameterSpace
from biopsy.core.errors import ConfigurationError
from biopsy.optimisers.tabu import TabuSearch, TabuState


def score_of(candidate):
    return -sum(abs(candidate[name] - 4) for name in ("a", "b", "c"))


def drive(search, start, limit=500):
    """Run the propose/score loop the way the experiment does."""
    search.setup(start)
    current, score = start, score_of(start)
    proposals = [start]
    for _ in range(limit):
        if search.is_finished():
            break
        current = search.next(current, score)
        score = score_of(current)
        proposals.append(current)
    return proposals


def test_neighbours_differ_in_one_parameter_by_one_step(space):
    search = TabuSearch(space)
    centre = Candidate({"a": 1, "b": 3, "c": 5})

    neighbours = search.neighbours(centre)

    assert set(neighbours) == {
        Candidate({"a": 2, "b": 3, "c": 5}),
        Candidate({"a": 1, "b": 2, "c": 5}),
        Candidate({"a": 1, "b": 4, "c": 5}),
        Candidate({"a": 1, "b": 3, "c": 4}),
    }


def test_state_machine_transitions(space):
    search = TabuSearch(space, seed=1)
    assert search.state == TabuState.IDLE

    start = Candidate({"a": 1, "b": 1, "c": 1})
    search.setup(start)
    assert search.state == TabuState.SEEDED

    search.next(start, score_of(start))
    assert search.state == TabuState.EXPLORING


def test_random_starting_point_is_in_domain(space):
    search = TabuSearch(space, seed=3)
    for _ in range(50):
        assert space.contains(search.select_starting_point())


def test_climbs_to_optimum_from_corner(space):
    search = TabuSearch(space, tenure=3, stagnation_limit=3, seed=0)
    drive(search, Candidate({"a": 1, "b": 1, "c": 1}))

    assert search.is_finished()
    assert search.best.candidate == {"a": 4, "b": 4, "c": 4}
    assert search.best.score == 0


def test_starting_at_optimum_keeps_it_as_best(space):
    search = TabuSearch(space, stagnation_limit=2)
    start = Candidate({"a": 4, "b": 4, "c": 4})
    drive(search, start)

    assert search.best.candidate == start
    assert search.best.score == 0
    assert search.is_finished()


def test_proposals_stay_in_domain_and_never_repeat_while_exploring(space):
    search = TabuSearch(space, seed=5)
    proposals = drive(search, Candidate({"a": 5, "b": 1, "c": 3}))

    exploring = proposals[: len(proposals) - 1]
    assert len(exploring) == len(set(exploring))
    assert all(space.contains(p) for p in proposals)


def test_previous_centre_is_tabu_for_tenure_moves(space):
    search = TabuSearch(space, tenure=2, stagnation_limit=10)
    start = Candidate({"a": 1, "b": 1, "c": 1})
    search.setup(start)

    current, score = start, score_of(start)
    while search.moves == 0:
        current = search.next(current, score)
        score = score_of(current)

    assert search.is_tabu(start)
    assert search.tabu[start] == 1 + 2


def test_converges_when_no_neighbour_exists():
    space = ParameterSpace({"a": [1], "b": ["x"]})
    search = TabuSearch(space)
    start = Candidate({"a": 1, "b": "x"})
    search.setup(start)

    proposal = search.next(start, 1.0)

    assert search.is_finished()
    assert proposal == start


@pytest.mark.parametrize("stagnation_limit", [1, 2, 4])
def test_stagnation_limit_bounds_moves_without_improvement(space, stagnation_limit):
    search = TabuSearch(space, stagnation_limit=stagnation_limit)
    drive(search, Candidate({"a": 4, "b": 4, "c": 4}))

    assert search.moves == stagnation_limit


@pytest.fixture
def line():
    return ParameterSpace({"a": range(1, 6)})


def line_score(candidate):
    return -abs(candidate["a"] - 4)


def step_until_move(search, start):
    search.setup(start)
    current = start
    while search.moves == 0:
        current = search.next(current, line_score(current))
    return search.centre


def test_aspiration_admits_forbidden_neighbour_that_beats_best(line):
    search = TabuSearch(line)
    search.forbid({"a": 4})

    centre = step_until_move(search, Candidate({"a": 3}))

    assert centre == {"a": 4}
    assert search.best.score == 0


def test_forbidden_neighbour_without_improvement_is_skipped(line):
    search = TabuSearch(line)
    search.forbid({"a": 3})

    # a=3 and a=5 tie; a=3 would win the tie if it were not tabu.
    centre = step_until_move(search, Candidate({"a": 4}))

    assert centre == {"a": 5}


@pytest.mark.parametrize("best_at_open, expected", [(1.0, {"a": 2}), (6.0, {"a": 4})])
def test_move_applies_aspiration_against_best_at_open(line, best_at_open, expected):
    search = TabuSearch(line)
    centre = Candidate({"a": 3})
    search.setup(centre)
    search.update_best(centre, 1.0)
    search.state = TabuState.EXPLORING
    search.neighbourhood = [Candidate({"a": 2}), Candidate({"a": 4})]
    search.scores = {centre: 1.0, Candidate({"a": 2}): 5.0, Candidate({"a": 4}): 2.0}
    search.tabu = {Candidate({"a": 2}): 10}
    search._best_at_open = best_at_open

    search._move()

    assert search.centre == expected


def test_forbid_rejects_candidates_outside_the_space(line):
    with pytest.raises(ConfigurationError):
        TabuSearch(line).forbid({"a": 9})


def test_forbid_expires_after_tenure(line):
    search = TabuSearch(line, tenure=1)
    search.forbid({"a": 1})
    assert search.is_tabu(Candidate({"a": 1}))

    search.moves = 1
    assert not search.is_tabu(Candidate({"a": 1}))
