import logging
from contextlib import asynccontextmanager
from datetime import datetime

import uvicorn
from fastapi import Depends, FastAPI, Path, Query, Request
from fastapi.responses import JSONResponse
from starlette import status

from splitstats.core.auth import require_auth_token
from splitstats.core.db import init_db, make_engine, make_session_factory
from splitstats.core.errors import (
    DuplicateExperiment,
    ExperimentNotFound,
    InvalidVariation,
    StorageFailure,
)
from splitstats.core.log_config import configure_logging
from splitstats.core.settings import get_settings
from splitstats.models.schemas.event import EventCreateModel, EventStatsModel
from splitstats.models.schemas.experiment import ExperimentInitModel, ExperimentModel
from splitstats.models.schemas.participant import AssignmentModel, ParticipateModel
from splitstats.models.schemas.result import DailyResultsModel, ResultModel
from splitstats.services.engine import EngineConfig, ExperimentEngine

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)

    db_engine = make_engine(settings.database_url, echo=settings.database_echo)
    init_db(db_engine)
    app.state.engine = ExperimentEngine(
        make_session_factory(db_engine), EngineConfig.from_settings(settings)
    )
    log.info("Experiment engine ready")
    yield
    db_engine.dispose()


app = FastAPI(
    title="splitstats",
    description="Split testing: variation assignment and conversion statistics",
    version="0.1.0",
    dependencies=[Depends(require_auth_token)],
    lifespan=lifespan,
)


def get_engine(request: Request) -> ExperimentEngine:
    return request.app.state.engine


# --- Error mapping ---

ERROR_STATUS = {
    ExperimentNotFound: status.HTTP_404_NOT_FOUND,
    InvalidVariation: status.HTTP_400_BAD_REQUEST,
    DuplicateExperiment: status.HTTP_409_CONFLICT,
    StorageFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _error_response(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=ERROR_STATUS[type(exc)], content={"detail": str(exc)})


for error_class in ERROR_STATUS:
    app.add_exception_handler(error_class, _error_response)


# --- Experiments ---

@app.get("/experiments", response_model=list[ExperimentModel])
def list_experiments(engine: ExperimentEngine = Depends(get_engine)):
    return engine.list_experiments()


@app.put(
    "/experiments/{name}",
    response_model=ExperimentModel,
    summary="Create or update an experiment",
)
def init_experiment(
    experiment_data: ExperimentInitModel,
    name: str = Path(..., description="Unique name of the experiment."),
    engine: ExperimentEngine = Depends(get_engine),
):
    return engine.init_experiment(
        name,
        experiment_data.variations,
        events=experiment_data.events,
        start_date=experiment_data.start_date,
        end_date=experiment_data.end_date,
    )


@app.get("/experiments/{name}", response_model=ExperimentModel)
def get_experiment(name: str, engine: ExperimentEngine = Depends(get_engine)):
    return engine.get_experiment(name)


# --- Participation and events ---

@app.post(
    "/experiments/{name}/participants",
    response_model=AssignmentModel,
    summary="Enroll a user and get their variation",
)
def participate(
    participation: ParticipateModel,
    name: str,
    engine: ExperimentEngine = Depends(get_engine),
):
    """
    Returns the user's variation. A first call picks one (weighted random, or
    the requested variation); later calls return the same one.
    """
    variation = engine.participate(
        name, participation.user, ip=participation.ip, variation=participation.variation
    )
    return AssignmentModel(experiment=name, user=participation.user, variation=variation)


@app.get("/experiments/{name}/participants/{user}", response_model=AssignmentModel)
def get_variation(name: str, user: str, engine: ExperimentEngine = Depends(get_engine)):
    return AssignmentModel(experiment=name, user=user, variation=engine.get_variation(name, user))


@app.post("/events", status_code=status.HTTP_201_CREATED, summary="Record a new user event.")
def track_event(event_data: EventCreateModel, engine: ExperimentEngine = Depends(get_engine)):
    engine.track_event(event_data.event, event_data.user, ip=event_data.ip)
    return {"status": "recorded"}


@app.post("/users/{user}/opt-out")
def opt_out(user: str, engine: ExperimentEngine = Depends(get_engine)):
    return {"user": user, "participations": engine.opt_out(user)}


# --- Results ---

@app.get("/experiments/{name}/result/{event}", response_model=ResultModel)
def get_result(
    name: str,
    event: str = Path(..., description="Event name, or 'name:N' to require N events."),
    cache_expiry_time: float | None = Query(None, ge=0, description="Maximum result age in seconds."),
    event_count: int | None = Query(None, ge=1),
    engine: ExperimentEngine = Depends(get_engine),
):
    return engine.get_result(name, event, cache_expiry_time=cache_expiry_time, event_count=event_count)


@app.get("/experiments/{name}/results/{event}", response_model=ResultModel)
def get_results(
    name: str,
    event: str,
    event_count: int | None = Query(None, ge=1),
    engine: ExperimentEngine = Depends(get_engine),
):
    return engine.get_results(name, event, event_count=event_count)


@app.get("/experiments/{name}/daily-results/{event}", response_model=DailyResultsModel)
def get_daily_results(
    name: str,
    event: str,
    cumulative: bool = Query(False),
    engine: ExperimentEngine = Depends(get_engine),
):
    return engine.get_daily_results(name, event, cumulative=cumulative)


@app.get("/events/{event}/stats/{day}", response_model=EventStatsModel)
def get_event_stats(event: str, day: datetime, engine: ExperimentEngine = Depends(get_engine)):
    return engine.get_event_stats(event, day)


def main():
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run("splitstats.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
