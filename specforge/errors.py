"""Error taxonomy for the transformation pipeline."""


class TransformationError(Exception):
    """Base class for every error raised by the pipeline."""


class ValidationError(TransformationError):
    """Questionnaire is missing or has malformed required identity fields."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("Invalid questionnaire: " + "; ".join(self.problems))


class PipelineStageError(TransformationError):
    """A pipeline stage raised; the run is aborted and nothing is kept."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"Transformation pipeline failed at stage: {stage} ({cause})")


class TransformationCancelledError(TransformationError):
    def __init__(self, stage: str) -> None:
        self.stage = stage
        super().__init__(f"Transformation cancelled after stage: {stage}")


class CacheConsistencyError(TransformationError):
    """Tier bookkeeping in the assessment cache no longer agrees with itself."""
