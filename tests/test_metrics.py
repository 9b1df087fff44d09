import math

import pytest

from splitstats.models.schemas.event import EventSpec
from splitstats.services.metrics import conversion_stats


def test_no_participants_has_no_interval():
    stats = conversion_stats(0, 0)
    assert stats.conversion_rate == 0
    assert stats.confidence_interval is None
    assert stats.confidence_interval_90 is None


@pytest.mark.parametrize("participants,conversions", [(1, 0), (1, 1), (10, 3), (1000, 70), (250, 125)])
def test_confidence_interval_formula(participants, conversions):
    stats = conversion_stats(participants, conversions)

    rate = conversions / participants
    standard_error = math.sqrt(rate * (1 - rate) / participants)
    assert stats.conversion_rate == pytest.approx(rate)
    assert stats.confidence_interval == pytest.approx(1.96 * standard_error)
    assert stats.confidence_interval_90 == pytest.approx(1.64 * standard_error)
    assert stats.confidence_interval >= 0
    assert stats.confidence_interval_90 <= stats.confidence_interval


def test_all_or_nothing_rates_have_zero_width():
    assert conversion_stats(5, 5).confidence_interval == 0
    assert conversion_stats(5, 0).confidence_interval == 0


class TestEventSpec:
    def test_plain_name(self):
        spec = EventSpec.parse("signup")
        assert spec.name == "signup"
        assert spec.min_occurrences is None
        assert spec.threshold == 1
        assert str(spec) == "signup"

    def test_name_with_count(self):
        spec = EventSpec.parse("signup:5")
        assert spec.name == "signup"
        assert spec.min_occurrences == 5
        assert str(spec) == "signup:5"

    def test_explicit_count_wins(self):
        assert EventSpec.parse("signup:5", event_count=2).min_occurrences == 2
        assert str(EventSpec.parse("signup", event_count=3)) == "signup:3"

    def test_count_of_one_is_plain(self):
        assert str(EventSpec.parse("signup:1")) == "signup"
        assert EventSpec.parse("signup", event_count=1).min_occurrences is None

    def test_colons_in_names(self):
        assert EventSpec.parse("page:view").name == "page:view"
        spec = EventSpec.parse("page:view:3")
        assert (spec.name, spec.min_occurrences) == ("page:view", 3)
