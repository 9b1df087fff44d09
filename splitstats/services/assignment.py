import logging
from typing import Callable, Optional, Sequence

from splitstats.core.errors import InvalidVariation
from splitstats.models.orm.experiment import ExperimentORM, VariationORM
from splitstats.models.orm.participant import ParticipantORM

log = logging.getLogger(__name__)


class VariationAssigner:
    def __init__(self, random: Callable[[], float]):
        """``random`` returns a float in [0, 1); inject a seeded one for reproducible tests."""
        self.random = random

    def assign(
        self,
        experiment: ExperimentORM,
        participant: Optional[ParticipantORM],
        requested: Optional[str] = None,
    ) -> str:
        """
        Picks the variation for a participant.

        1. An existing assignment is returned unchanged.
        2. A requested variation must belong to the experiment.
        3. Otherwise a weighted random pick.
        """
        if participant is not None and participant.variation:
            return participant.variation

        if requested is not None:
            if requested not in experiment.variation_names:
                raise InvalidVariation(experiment.name, requested)
            return requested

        if not experiment.variations:
            raise InvalidVariation(experiment.name, None)

        return self._weighted_choice(experiment.variations).name

    def _weighted_choice(self, variations: Sequence[VariationORM]) -> VariationORM:
        """Selects a variation with probability proportional to its weight."""
        weights = [variation.weight if variation.weight is not None else 1.0 for variation in variations]
        total_weight = sum(weights)
        if total_weight <= 0:
            # Nothing weighted, fall back to a uniform pick
            weights = [1.0] * len(variations)
            total_weight = float(len(variations))

        r = self.random() * total_weight

        cumulative_weight = 0.0
        for weight, variation in zip(weights, variations):
            cumulative_weight += weight
            if r < cumulative_weight:
                return variation

        # Floating point rounding can leave r on the upper edge
        return next(v for w, v in reversed(list(zip(weights, variations))) if w > 0)
