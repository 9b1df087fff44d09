import random
from collections import Counter

import pytest

from splitstats.core.errors import InvalidVariation
from splitstats.models.orm.experiment import ExperimentORM, VariationORM
from splitstats.models.orm.participant import ParticipantORM
from splitstats.services.assignment import VariationAssigner


def make_experiment(weights: dict) -> ExperimentORM:
    return ExperimentORM(
        name="colors",
        variations=[
            VariationORM(name=name, weight=weight, position=position)
            for position, (name, weight) in enumerate(weights.items())
        ],
    )


@pytest.fixture
def assigner():
    return VariationAssigner(random.Random(1234).random)


def test_existing_assignment_is_kept(assigner):
    experiment = make_experiment({"red": 1, "blue": 1})
    participant = ParticipantORM(experiment="colors", user="user1", variation="blue")

    for _ in range(20):
        assert assigner.assign(experiment, participant) == "blue"
    # Even a different requested variation does not move the user
    assert assigner.assign(experiment, participant, requested="red") == "blue"


def test_requested_variation(assigner):
    experiment = make_experiment({"red": 1, "blue": 1})
    assert assigner.assign(experiment, None, requested="blue") == "blue"

    with pytest.raises(InvalidVariation) as excinfo:
        assigner.assign(experiment, None, requested="purple")
    assert excinfo.value.variation == "purple"


def test_experiment_without_variations(assigner):
    with pytest.raises(InvalidVariation):
        assigner.assign(make_experiment({}), None)


def test_weighted_distribution(assigner):
    experiment = make_experiment({"red": 5, "green": 4, "blue": 1})

    draws = 100_000
    counts = Counter(assigner.assign(experiment, None) for _ in range(draws))

    assert counts["red"] / draws == pytest.approx(0.5, abs=0.01)
    assert counts["green"] / draws == pytest.approx(0.4, abs=0.01)
    assert counts["blue"] / draws == pytest.approx(0.1, abs=0.01)


def test_zero_weight_is_never_chosen(assigner):
    experiment = make_experiment({"red": 1, "green": 0, "blue": 1})
    counts = Counter(assigner.assign(experiment, None) for _ in range(2000))
    assert counts["green"] == 0
    assert counts["red"] > 0 and counts["blue"] > 0


def test_all_zero_weights_fall_back_to_uniform(assigner):
    experiment = make_experiment({"red": 0, "blue": 0})
    counts = Counter(assigner.assign(experiment, None) for _ in range(2000))
    assert set(counts) == {"red", "blue"}


def test_random_on_the_upper_edge():
    # A random value of almost 1 must still land on the last weighted variation
    experiment = make_experiment({"red": 1, "blue": 1, "green": 0})
    assigner = VariationAssigner(lambda: 0.9999999999999999)
    assert assigner.assign(experiment, None) == "blue"

    assigner = VariationAssigner(lambda: 0.0)
    assert assigner.assign(experiment, None) == "red"
