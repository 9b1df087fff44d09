import logging
import random
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Iterator, Optional, Union

from sqlalchemy.orm import Session, sessionmaker

from splitstats.core.errors import DuplicateExperiment, ExperimentNotFound
from splitstats.core.settings import Settings
from splitstats.core.utils import day_range, next_day, snap_to_day, utcnow
from splitstats.models.orm.experiment import ExperimentORM
from splitstats.models.schemas.event import EventSpec, EventStatsModel
from splitstats.models.schemas.experiment import (
    ExperimentInitModel,
    ExperimentModel,
    VariationConfig,
)
from splitstats.models.schemas.result import (
    DailyResultModel,
    DailyResultsModel,
    ResultModel,
    VariationResultModel,
)
from splitstats.repositories.event_repo import EventRepository
from splitstats.repositories.experiment_repo import ExperimentRepository
from splitstats.repositories.participant_repo import ParticipantRepository

from .assignment import VariationAssigner
from .cumulative import ConversionWindow, CumulativeWindowAggregator
from .day_buckets import EventUserDayCache, ParticipantDayCache, VariationKey
from .metrics import conversion_stats
from .result_service import ResultService

log = logging.getLogger(__name__)

VariationSpec = Union[str, dict, VariationConfig]


@dataclass
class EngineConfig:
    """Operator configuration. Set before serving requests; read-only afterwards."""

    excluded_ips: list[str] = field(default_factory=list)
    random: Callable[[], float] = random.random
    lookup_concurrency: int = 5
    cache_expiry_time: float = 3600.0
    clock: Callable[[], datetime] = utcnow

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        return cls(
            excluded_ips=list(settings.excluded_ips),
            lookup_concurrency=settings.lookup_concurrency,
            cache_expiry_time=settings.result_cache_expiry_seconds,
        )


class ExperimentEngine:
    """
    Public entry point: experiments, participation, event tracking and results.

    Every call runs in its own database session taken from ``session_factory``.
    """

    def __init__(self, session_factory: sessionmaker, config: Optional[EngineConfig] = None):
        self.session_factory = session_factory
        self.config = config or EngineConfig()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self.session_factory() as db:
            yield db

    # --- Configuration ---

    def exclude_ips(self, ips: Iterable[str]) -> None:
        """Leave participants from these IP addresses out of all later results."""
        self.config.excluded_ips = list(ips)

    def set_random_function(self, fn: Callable[[], float]) -> None:
        self.config.random = fn

    # --- Experiments ---

    def init_experiment(
        self,
        name: str,
        variations: list[VariationSpec],
        events: Optional[list[str]] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> ExperimentModel:
        """Creates the experiment, or updates it if it exists already."""
        experiment_data = ExperimentInitModel(
            variations=variations, events=events, start_date=start_date, end_date=end_date
        )
        with self._session() as db:
            db_experiment = ExperimentRepository(db).upsert(
                name, experiment_data, created_at=self.config.clock()
            )
            return ExperimentModel.model_validate(db_experiment)

    def create_experiment(self, name: str, variations: list[VariationSpec]) -> ExperimentModel:
        """Strict create: raises DuplicateExperiment if the name is taken."""
        experiment_data = ExperimentInitModel(variations=variations)
        with self._session() as db:
            experiments = ExperimentRepository(db)
            if experiments.get_by_name(name) is not None:
                raise DuplicateExperiment(name)
            db_experiment = experiments.create(name, experiment_data, created_at=self.config.clock())
            return ExperimentModel.model_validate(db_experiment)

    def list_experiments(self) -> list[ExperimentModel]:
        with self._session() as db:
            return [ExperimentModel.model_validate(e) for e in ExperimentRepository(db).list_all()]

    def get_experiment(self, name: str) -> ExperimentModel:
        with self._session() as db:
            return ExperimentModel.model_validate(self._require_experiment(db, name))

    # --- Participation and events ---

    def get_variation(self, experiment: str, user: str) -> Optional[str]:
        """The user's variation, or None if the user never participated."""
        with self._session() as db:
            participant = ParticipantRepository(db).get(experiment, user)
            return participant.variation if participant is not None else None

    def participate(
        self,
        experiment: str,
        user: str,
        ip: Optional[str] = None,
        variation: Optional[str] = None,
    ) -> str:
        """
        Enrolls the user and returns their variation. Repeated calls return
        the variation chosen the first time.
        """
        with self._session() as db:
            db_experiment = self._require_experiment(db, experiment)
            participants = ParticipantRepository(db)

            participant = participants.get(experiment, user)
            chosen = VariationAssigner(self.config.random).assign(db_experiment, participant, variation)

            if participant is None:
                participant, created = participants.create_if_absent(
                    experiment, user, ip, chosen, created_at=self.config.clock()
                )
                if created:
                    log.info("Assigned %s to %s/%s", user, experiment, chosen)
                    return chosen

            if participant.variation:
                return participant.variation

            if not participants.set_variation(participant, chosen):
                # Another writer assigned one first
                return participants.get(experiment, user).variation

            log.info("Assigned %s to %s/%s", user, experiment, chosen)
            return chosen

    def track_event(self, event: str, user: str, ip: Optional[str] = None) -> None:
        with self._session() as db:
            EventRepository(db).create(event, user, ip, created_at=self.config.clock())

    def opt_out(self, user: str) -> int:
        """
        Excludes the user from all results of every experiment, e.g. when a
        logged-in user turns out to be an existing user. Returns the number of
        participations affected.
        """
        with self._session() as db:
            count = ParticipantRepository(db).opt_out_user(user)
        log.info("Opted out %s from %d experiment(s)", user, count)
        return count

    # --- Results ---

    def get_result(
        self,
        experiment: str,
        event: str,
        cache_expiry_time: Optional[float] = None,
        event_count: Optional[int] = None,
    ) -> ResultModel:
        """
        Conversion result of every participant since the experiment started.

        ``event`` is an event name, or ``"name:N"`` to require N events. A stored
        result younger than ``cache_expiry_time`` seconds is returned as is.
        """
        spec = EventSpec.parse(event, event_count)
        if cache_expiry_time is None:
            cache_expiry_time = self.config.cache_expiry_time

        with self._session() as db:
            db_experiment = self._require_experiment(db, experiment)
            service = ResultService(
                db,
                self.session_factory,
                clock=self.config.clock,
                excluded_ips=self.config.excluded_ips,
                lookup_concurrency=self.config.lookup_concurrency,
            )
            return service.get_result(db_experiment, spec, cache_expiry_time)

    def get_results(
        self, experiment: str, event: str, event_count: Optional[int] = None
    ) -> ResultModel:
        """Cumulative results using the per-variation checkpoints."""
        spec = EventSpec.parse(event, event_count)

        with self._session() as db:
            db_experiment = self._require_experiment(db, experiment)
            aggregator = CumulativeWindowAggregator(
                db, self.config.clock, self._participant_days(db), self._event_days(db)
            )

            variations = []
            for name in db_experiment.variation_names:
                stats = aggregator.cumulative_conversion_rate_over_range(
                    experiment,
                    name,
                    spec.name,
                    db_experiment.window_start(),
                    db_experiment.end_date,
                    spec.min_occurrences,
                )
                variations.append(VariationResultModel(name=name, **stats.model_dump()))

        return _result(experiment, str(spec), variations, self.config.clock())

    def get_daily_results(
        self,
        experiment: str,
        event: str,
        cumulative: bool = False,
        event_count: Optional[int] = None,
    ) -> DailyResultsModel:
        """
        One row per UTC day since the experiment started. Each row holds either
        that day's participants and conversions, or with ``cumulative`` the
        running totals up to and including that day.
        """
        spec = EventSpec.parse(event, event_count)
        now = self.config.clock()

        with self._session() as db:
            db_experiment = self._require_experiment(db, experiment)
            participant_days = self._participant_days(db)
            event_days = self._event_days(db)

            start = snap_to_day(db_experiment.window_start())
            end = min(db_experiment.end_date or now, next_day(now))
            names = db_experiment.variation_names
            windows = {name: ConversionWindow() for name in names}

            days = []
            for day in day_range(start, end):
                event_users = event_days.get_users(spec.name, day)
                rows = []
                for name in names:
                    day_participants = participant_days.get_users(VariationKey(experiment, name), day)
                    window = windows[name] if cumulative else ConversionWindow()
                    window.add_day(day_participants, event_users)
                    converted = window.converted_users(spec.min_occurrences)
                    rows.append(_variation_row(name, len(window.participants), converted))
                days.append(
                    DailyResultModel(
                        day=day,
                        variations=rows,
                        total_participants=sum(r.participants for r in rows),
                        total_conversions=sum(r.conversions for r in rows),
                    )
                )

        return DailyResultsModel(experiment=experiment, event=str(spec), cumulative=cumulative, days=days)

    def get_event_stats(self, event: str, day: datetime) -> EventStatsModel:
        """Totals, unique users and heavy users (more than 10 events) of one day."""
        with self._session() as db:
            return self._event_days(db).get_stats(event, day)

    # --- Helpers ---

    def _require_experiment(self, db: Session, name: str) -> ExperimentORM:
        db_experiment = ExperimentRepository(db).get_by_name(name)
        if db_experiment is None:
            raise ExperimentNotFound(name)
        return db_experiment

    def _participant_days(self, db: Session) -> ParticipantDayCache:
        return ParticipantDayCache(db, self.config.clock, self.config.excluded_ips)

    def _event_days(self, db: Session) -> EventUserDayCache:
        return EventUserDayCache(db, self.config.clock)


def _variation_row(name: str, participants: int, converted: dict[str, int]) -> VariationResultModel:
    return VariationResultModel(
        name=name,
        participants=participants,
        conversions=len(converted),
        events=sum(converted.values()),
        **conversion_stats(participants, len(converted)).model_dump(),
    )


def _result(experiment: str, event: str, variations: list[VariationResultModel],
            calculated: datetime) -> ResultModel:
    total_participants = sum(v.participants for v in variations)
    total_conversions = sum(v.conversions for v in variations)
    return ResultModel(
        experiment=experiment,
        event=event,
        variations=variations,
        total_participants=total_participants,
        total_conversions=total_conversions,
        total_conversion_rate=conversion_stats(total_participants, total_conversions).conversion_rate,
        last_calculated=calculated,
    )
