"""
Per-day aggregates of the participant and event logs.

Records of a past UTC day never change, so the aggregate for any day before
today is computed once, stored, and read back from then on. Today's aggregate
is always computed live and never stored.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Generic, Hashable, Iterable, NamedTuple, Optional, TypeVar

from sqlalchemy.orm import Session

from splitstats.core.utils import snap_to_day
from splitstats.models.schemas.event import EventStatsModel
from splitstats.repositories.cache_repo import (
    DayEventUserListRepository,
    DayParticipantListRepository,
)
from splitstats.repositories.event_repo import EventRepository
from splitstats.repositories.participant_repo import ParticipantRepository

log = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class DayBucketCache(ABC, Generic[K, V]):
    def __init__(self, clock: Callable[[], datetime]):
        self.clock = clock

    def get_users(self, key: K, day: datetime) -> V:
        day = snap_to_day(day)

        if day >= snap_to_day(self.clock()):
            return self._aggregate(key, day)

        cached = self._load(key, day)
        if cached is not None:
            log.debug("Day bucket hit: %r %s", key, day.date())
            return cached

        log.debug("Day bucket miss: %r %s", key, day.date())
        value = self._aggregate(key, day)
        if not self._store(key, day, value):
            log.warning("Day bucket %r %s was stored concurrently", key, day.date())
        return value

    @abstractmethod
    def _aggregate(self, key: K, day: datetime) -> V:
        """Computes the bucket from the underlying log for [day, day + 1)."""

    @abstractmethod
    def _load(self, key: K, day: datetime) -> Optional[V]:
        pass

    @abstractmethod
    def _store(self, key: K, day: datetime, value: V) -> bool:
        pass


class EventUserDayCache(DayBucketCache[str, list]):
    """Per event name: ``[{"user": ..., "count": ...}]`` of one day."""

    def __init__(self, db: Session, clock: Callable[[], datetime]):
        super().__init__(clock)
        self.event_repo = EventRepository(db)
        self.bucket_repo = DayEventUserListRepository(db)

    def _aggregate(self, event, day):
        return self.event_repo.count_users_by_day(event, day)

    def _load(self, event, day):
        bucket = self.bucket_repo.get(event, day)
        return bucket.users if bucket is not None else None

    def _store(self, event, day, users):
        return self.bucket_repo.create(event, day, users)

    def get_stats(self, event: str, day: datetime) -> EventStatsModel:
        users = self.get_users(event, day)

        unique = len(users)
        over10 = sum(1 for item in users if item["count"] > 10)
        return EventStatsModel(
            event=event,
            day=snap_to_day(day),
            total=sum(item["count"] for item in users),
            unique=unique,
            over10=over10,
            over10_conversion_rate=over10 / unique if unique else 0.0,
        )


class VariationKey(NamedTuple):
    experiment: str
    variation: str


class ParticipantDayCache(DayBucketCache[VariationKey, list]):
    """
    Per experiment variation: users who participated that day.

    Excluded IPs and the first-user-per-IP rule are applied when the bucket is
    computed, so they are baked into stored buckets. Opt-outs are filtered on
    every read, so an opted out user disappears from past days as well.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime], excluded_ips: Iterable[str] = ()):
        super().__init__(clock)
        self.excluded_ips = list(excluded_ips)
        self.participant_repo = ParticipantRepository(db)
        self.bucket_repo = DayParticipantListRepository(db)

    def get_users(self, key: VariationKey, day: datetime) -> list[str]:
        users = super().get_users(key, day)
        if not users:
            return users
        opted_out = self.participant_repo.opted_out_users(key.experiment, users)
        return [user for user in users if user not in opted_out]

    def _aggregate(self, key, day):
        participants = self.participant_repo.find_for_day(
            key.experiment, key.variation, day, self.excluded_ips
        )
        return first_per_ip(participants)

    def _load(self, key, day):
        bucket = self.bucket_repo.get(key.experiment, key.variation, day)
        return bucket.users if bucket is not None else None

    def _store(self, key, day, users):
        return self.bucket_repo.create(key.experiment, key.variation, day, users)


def first_per_ip(participants: Iterable[tuple[str, Optional[str]]]) -> list[str]:
    """
    Users from (user, ip) pairs in creation order, keeping only the first user
    seen per IP address. Users without an IP are always kept.
    """
    seen_ips = set()
    users = []
    for user, ip in participants:
        if ip:
            if ip in seen_ips:
                continue
            seen_ips.add(ip)
        users.append(user)
    return users
