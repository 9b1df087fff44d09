class SplitStatsError(Exception):
    """Base class for errors raised by the experiment engine."""


class DuplicateExperiment(SplitStatsError):
    def __init__(self, name: str):
        super().__init__(f"Experiment already exists with this name: {name}")
        self.name = name


class ExperimentNotFound(SplitStatsError):
    def __init__(self, name: str):
        super().__init__(f"No matching experiment found, please create one first: {name}")
        self.name = name


class InvalidVariation(SplitStatsError):
    def __init__(self, experiment: str, variation: str | None):
        super().__init__(f"Variation not valid for experiment {experiment}: {variation}")
        self.experiment = experiment
        self.variation = variation


class StorageFailure(SplitStatsError):
    """An error reported by the database. The original error is chained as ``__cause__``."""
