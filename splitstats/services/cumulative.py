"""
Cumulative conversions per (experiment, variation, event).

A checkpoint stores the participants and converted-user event counts of every
complete day in [start_date, end_date). Later requests with the same start day
resume from end_date instead of scanning the history again; only the days
since the checkpoint (and the still-changing current day) are aggregated.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from splitstats.core.utils import day_range, next_day, snap_to_day, to_naive_utc
from splitstats.models.orm.cache import CumulativeConversionORM
from splitstats.models.schemas.result import CumulativeStats
from splitstats.repositories.cache_repo import CumulativeConversionRepository
from splitstats.repositories.participant_repo import ParticipantRepository

from .day_buckets import EventUserDayCache, ParticipantDayCache, VariationKey
from .metrics import conversion_stats

log = logging.getLogger(__name__)


@dataclass
class ConversionWindow:
    """Participants and converted-user event counts accumulated so far."""

    participants: set = field(default_factory=set)
    converted: Counter = field(default_factory=Counter)

    @classmethod
    def from_checkpoint(cls, checkpoint: CumulativeConversionORM) -> "ConversionWindow":
        return cls(set(checkpoint.participants), Counter(checkpoint.converted_users))

    def add_day(self, participants: list[str], event_users: list[dict]) -> None:
        self.participants.update(participants)
        for item in event_users:
            # Only events of users who already participated count
            if item["user"] in self.participants:
                self.converted[item["user"]] += item["count"]

    def converted_users(self, event_count: Optional[int] = None) -> dict[str, int]:
        threshold = event_count if event_count and event_count > 1 else 1
        return {user: count for user, count in self.converted.items() if count >= threshold}


class CumulativeWindowAggregator:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime],
        participant_days: ParticipantDayCache,
        event_days: EventUserDayCache,
    ):
        self.clock = clock
        self.participant_days = participant_days
        self.event_days = event_days
        self.checkpoints = CumulativeConversionRepository(db)
        self.participant_repo = ParticipantRepository(db)

    def cumulative_conversion_rate_over_range(
        self,
        experiment: str,
        variation: str,
        event: str,
        start_day: datetime,
        end_day: Optional[datetime] = None,
        event_count: Optional[int] = None,
    ) -> CumulativeStats:
        now = self.clock()
        end_day = to_naive_utc(end_day) if end_day is not None else now
        start = snap_to_day(start_day)
        cacheable_end = snap_to_day(min(end_day, now))
        key = VariationKey(experiment, variation)

        window = ConversionWindow()
        position = start
        checkpoint = self.checkpoints.get(experiment, variation, event)
        reusable = (
            checkpoint is not None
            and checkpoint.start_date == start
            and checkpoint.end_date <= cacheable_end
        )
        if reusable:
            log.debug("Resuming from %r", checkpoint)
            window = ConversionWindow.from_checkpoint(checkpoint)
            position = checkpoint.end_date

        if position < cacheable_end:
            self._extend(window, key, event, position, cacheable_end)
            position = cacheable_end
            if checkpoint is None or checkpoint.start_date != start or reusable:
                self._save_checkpoint(checkpoint, key, event, start, cacheable_end, window)

        # The rest of the range (today) is volatile and never stored
        self._extend(window, key, event, max(position, cacheable_end), min(end_day, next_day(now)))

        # Opt-outs apply retroactively, including to checkpointed participants
        opted_out = self.participant_repo.opted_out_users(experiment, window.participants)
        participants = window.participants - opted_out
        converted = {
            user: count
            for user, count in window.converted_users(event_count).items()
            if user not in opted_out
        }

        stats = conversion_stats(len(participants), len(converted))
        return CumulativeStats(
            participants=len(participants),
            conversions=len(converted),
            events=sum(converted.values()),
            **stats.model_dump(),
        )

    def _extend(self, window: ConversionWindow, key: VariationKey, event: str,
                start: datetime, end: datetime) -> None:
        # Days must be added in increasing order
        for day in day_range(start, end):
            window.add_day(
                self.participant_days.get_users(key, day),
                self.event_days.get_users(event, day),
            )

    def _save_checkpoint(self, checkpoint, key, event, start, end, window) -> None:
        participants = sorted(window.participants)
        converted_users = dict(window.converted)

        if checkpoint is None:
            stored = self.checkpoints.create(
                key.experiment, key.variation, event, start, end, participants, converted_users
            )
        else:
            stored = self.checkpoints.advance(
                checkpoint.id, checkpoint.end_date, start, end, participants, converted_users
            )

        if stored:
            log.debug("Checkpoint %s/%s/%s now ends at %s", key.experiment, key.variation, event, end.date())
        else:
            log.warning(
                "Checkpoint %s/%s/%s was moved by another writer, keeping theirs",
                key.experiment, key.variation, event,
            )
