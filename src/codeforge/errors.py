"""Exception taxonomy for the generation pipeline."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline failures; ``stage`` names where it happened."""

    stage = "pipeline"
    fatal = True

    def __init__(self, message: str, *, stage: str | None = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class PrepareError(PipelineError):
    """The request is empty or malformed."""

    stage = "prepare"


class GenerationError(PipelineError):
    """Every synthesis path was exhausted."""

    stage = "generate"


class ExtractionDegraded(PipelineError):
    """No marker strategy matched and the terminal fallback was used."""

    stage = "generate"
    fatal = False


class ValidationFailure(PipelineError):
    """An artifact failed integrity rules; fatal only in strict mode."""

    stage = "validate"
    fatal = False


class OptimizationFailure(PipelineError):
    """A quality or optimization collaborator failed."""

    stage = "optimize"
    fatal = False


class DuplicateResultError(RuntimeError):
    """A result was already stored under the same generation id."""
