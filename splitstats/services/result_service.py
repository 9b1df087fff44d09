import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Callable, Iterable

from sqlalchemy.orm import Session, sessionmaker

from splitstats.models.orm.experiment import ExperimentORM
from splitstats.models.orm.participant import ParticipantORM
from splitstats.models.orm.result import ResultORM
from splitstats.models.schemas.event import EventSpec
from splitstats.models.schemas.result import ResultModel, VariationResultModel
from splitstats.repositories.event_repo import EventRepository
from splitstats.repositories.participant_repo import ParticipantRepository
from splitstats.repositories.result_repo import ResultRepository

from .day_buckets import first_per_ip
from .metrics import conversion_stats

log = logging.getLogger(__name__)


class ResultService:
    """
    Single-pass experiment results, stored and reused until they are older
    than the requested expiry time.
    """

    def __init__(
        self,
        db: Session,
        session_factory: sessionmaker,
        clock: Callable[[], datetime],
        excluded_ips: Iterable[str] = (),
        lookup_concurrency: int = 5,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.excluded_ips = list(excluded_ips)
        self.lookup_concurrency = lookup_concurrency
        self.result_repo = ResultRepository(db)
        self.participant_repo = ParticipantRepository(db)

    def get_result(
        self, experiment: ExperimentORM, spec: EventSpec, cache_expiry_time: float
    ) -> ResultModel:
        db_result = self.result_repo.get_or_create(experiment.name, str(spec))

        now = self.clock()
        if (
            db_result.last_calculated is not None
            and now - db_result.last_calculated < timedelta(seconds=cache_expiry_time)
        ):
            log.debug("Using cached result for %s/%s", experiment.name, spec)
            return result_model(db_result)

        log.info("Calculating result for %s/%s", experiment.name, spec)
        participants = self.participant_repo.find_for_result(
            experiment.name, experiment.window_start(), self.excluded_ips
        )
        kept = set(first_per_ip((p.user, p.ip) for p in participants))
        participants = [p for p in participants if p.user in kept]
        converted = self._converted_users(participants, spec)

        # Reset all variation data
        counts = {name: [0, 0] for name in experiment.variation_names}
        for participant in participants:
            if participant.variation not in counts:
                log.debug("Ignoring participant %s of removed variation %s",
                          participant.user, participant.variation)
                continue
            counts[participant.variation][0] += 1
            if participant.user in converted:
                counts[participant.variation][1] += 1

        variations = [
            VariationResultModel(
                name=name,
                participants=n_participants,
                conversions=n_conversions,
                **conversion_stats(n_participants, n_conversions).model_dump(),
            )
            for name, (n_participants, n_conversions) in counts.items()
        ]

        db_result.variations = [v.model_dump(exclude_none=True) for v in variations]
        db_result.total_participants = sum(v.participants for v in variations)
        db_result.total_conversions = sum(v.conversions for v in variations)
        db_result.last_calculated = now
        return result_model(self.result_repo.save(db_result))

    def _converted_users(self, participants: list[ParticipantORM], spec: EventSpec) -> set[str]:
        """Users with enough matching events after they started participating."""
        lookups = [(p.user, p.id) for p in participants]

        def is_converted(lookup):
            user, participant_id = lookup
            # Ids order by second, then by a per-process counter. An event written
            # in the participation second by another process may sort before the
            # participant id and is then not counted.
            # Each worker thread needs a session of its own
            with self.session_factory() as db:
                count = EventRepository(db).count_for_user_since(
                    spec.name, user, participant_id, limit=spec.threshold
                )
            return count >= spec.threshold

        # map() re-raises the first failed lookup
        with ThreadPoolExecutor(max_workers=self.lookup_concurrency) as pool:
            flags = list(pool.map(is_converted, lookups))

        return {user for (user, _), flag in zip(lookups, flags) if flag}


def result_model(db_result: ResultORM) -> ResultModel:
    return ResultModel(
        experiment=db_result.experiment,
        event=db_result.event,
        variations=db_result.variations,
        total_participants=db_result.total_participants,
        total_conversions=db_result.total_conversions,
        total_conversion_rate=conversion_stats(
            db_result.total_participants, db_result.total_conversions
        ).conversion_rate,
        last_calculated=db_result.last_calculated,
    )
