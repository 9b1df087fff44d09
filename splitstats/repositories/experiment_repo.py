from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from splitstats.core.errors import DuplicateExperiment
from splitstats.core.utils import utcnow
from splitstats.models.orm.experiment import ExperimentORM, VariationORM
from splitstats.models.schemas.experiment import ExperimentInitModel

from .base import BaseRepository


class ExperimentRepository(BaseRepository):
    def get_by_name(self, name: str) -> Optional[ExperimentORM]:
        """Fetches a single experiment together with its variations."""
        with self.storage_errors("fetching experiment"):
            stmt = select(ExperimentORM).where(ExperimentORM.name == name)
            return self.db.scalars(stmt).one_or_none()

    def list_all(self) -> list[ExperimentORM]:
        with self.storage_errors("listing experiments"):
            return list(self.db.scalars(select(ExperimentORM).order_by(ExperimentORM.name)))

    def create(
        self,
        name: str,
        experiment_data: ExperimentInitModel,
        created_at: Optional[datetime] = None,
    ) -> ExperimentORM:
        """
        Creates a new experiment and its variations.

        Raises DuplicateExperiment if the name is taken.
        """
        with self.storage_errors("creating experiment"):
            db_experiment = ExperimentORM(name=name, created_at=created_at or utcnow())
            self._apply(db_experiment, experiment_data)
            self.db.add(db_experiment)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                raise DuplicateExperiment(name)
            return db_experiment

    def upsert(
        self,
        name: str,
        experiment_data: ExperimentInitModel,
        created_at: Optional[datetime] = None,
    ) -> ExperimentORM:
        """
        Creates the experiment, or updates the existing one with the same name.

        Variations are replaced; events and dates are only changed when given.
        """
        db_experiment = self.get_by_name(name)
        if db_experiment is None:
            try:
                return self.create(name, experiment_data, created_at)
            except DuplicateExperiment:
                # Created concurrently, fall through to update it
                db_experiment = self.get_by_name(name)

        with self.storage_errors("updating experiment"):
            self._apply(db_experiment, experiment_data)
            self.db.commit()
            return db_experiment

    def _apply(self, db_experiment: ExperimentORM, experiment_data: ExperimentInitModel) -> None:
        existing = {variation.name: variation for variation in db_experiment.variations}
        variations = []
        for position, config in enumerate(experiment_data.variations):
            variation = existing.get(config.name) or VariationORM(name=config.name)
            variation.weight = config.weight
            variation.position = position
            variations.append(variation)
        db_experiment.variations = variations

        if experiment_data.events is not None:
            db_experiment.events = list(experiment_data.events)
        if experiment_data.start_date is not None:
            db_experiment.start_date = experiment_data.start_date
        if experiment_data.end_date is not None:
            db_experiment.end_date = experiment_data.end_date
