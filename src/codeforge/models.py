"""Pydantic models shared across analysis, generation, validation, and results."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ScopeType(str, Enum):
    SINGLE_COMPONENT = "single_component"
    PAGE = "page"
    FEATURE = "feature"
    BACKEND = "backend"
    FULLSTACK = "fullstack"
    LANDING_PAGE = "landing_page"


class Complexity(str, Enum):
    MINIMAL = "minimal"
    MODERATE = "moderate"
    COMPLEX = "complex"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class PipelineStage(str, Enum):
    PREPARE = "prepare"
    GENERATE = "generate"
    VALIDATE = "validate"
    OPTIMIZE = "optimize"
    DONE = "done"


class GenerationContext(BaseModel):
    """Optional style and domain hints attached to a request."""

    model_config = ConfigDict(frozen=True)

    domain: str | None = None
    complexity: str | None = None
    style_preferences: dict[str, Any] = Field(default_factory=dict)
    color_palette: list[str] = Field(default_factory=list)
    personality: str | None = None


class GenerationRequest(BaseModel):
    """A single generation request; immutable and consumed once."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    framework: str | None = None
    language: Literal["typescript", "javascript"] | None = None
    context: GenerationContext | None = None
    options: dict[str, Any] = Field(default_factory=dict)
    generation_id: str | None = None


class FileCountRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: int = Field(gt=0)
    max: int = Field(gt=0)

    @model_validator(mode="after")
    def _check_order(self) -> FileCountRange:
        if self.min > self.max:
            raise ValueError(f"file count min {self.min} exceeds max {self.max}")
        return self


class ScopeDecision(BaseModel):
    """How much software a prompt implies, computed once per request."""

    model_config = ConfigDict(frozen=True)

    type: ScopeType
    complexity: Complexity
    confidence: float = Field(ge=0.0, le=1.0)
    expected_file_count: FileCountRange
    include_frontend: bool
    include_backend: bool
    include_database: bool
    matched_keywords: tuple[str, ...] = ()
    entity: str = "Component"


class ArtifactMetadata(BaseModel):
    lines_of_code: int = 0
    complexity: int = Field(default=1, ge=1)
    validated: bool = False
    score: float = Field(default=0.0, ge=0.0, le=100.0)
    optimized: bool = False
    degraded: bool = False
    strategy: str = ""
    repairs: list[str] = Field(default_factory=list)
    optimizations: list[str] = Field(default_factory=list)
    quality_score: float | None = None
    quality_metrics: dict[str, float] = Field(default_factory=dict)


class Artifact(BaseModel):
    """One generated file: path, content, and the metadata later stages attach."""

    name: str
    type: str = "component"
    path: str
    content: str
    language: str = "typescript"
    dependencies: list[str] = Field(default_factory=list)
    metadata: ArtifactMetadata = Field(default_factory=ArtifactMetadata)

    @field_validator("path")
    @classmethod
    def _path_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Artifact path must be a non-empty string.")
        return value


class ValidationIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    severity: Severity
    message: str
    rule: str
    fixable: bool = False


class ValidationOutcome(BaseModel):
    passed: bool
    score: float = Field(ge=0.0, le=100.0)
    issues: list[ValidationIssue] = Field(default_factory=list)

    def count(self, severity: Severity) -> int:
        return sum(1 for issue in self.issues if issue.severity == severity)

    def fixable_rules(self) -> set[str]:
        return {issue.rule for issue in self.issues if issue.fixable}


class ExtractionResult(BaseModel):
    """Artifacts split out of a raw response plus the strategy that produced them."""

    artifacts: list[Artifact] = Field(default_factory=list)
    strategy: str
    degraded: bool = False
    discarded: int = 0


class QualityReport(BaseModel):
    score: float = Field(ge=0.0, le=100.0)
    metrics: dict[str, float] = Field(default_factory=dict)


class OptimizationPatch(BaseModel):
    """Rewritten code from an optimization collaborator plus what it changed."""

    code: str
    changes: list[str] = Field(default_factory=list)


class OptimizationResult(BaseModel):
    ok: bool
    artifact: Artifact
    applied: list[str] = Field(default_factory=list)
    quality_score: float | None = None
    error: str | None = None


class GeneratedFile(BaseModel):
    """A file emitted directly by a structured generator."""

    path: str
    content: str


class SynthesisResult(BaseModel):
    raw_text: str
    provenance: Literal["specialized", "generic", "fallback"]
    source: str = ""


class ProgressEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    generation_id: str
    stage: PipelineStage
    percentage: int = Field(ge=0, le=100)
    message: str


class PipelineResult(BaseModel):
    """Final product of one pipeline run; ownership passes to the caller."""

    model_config = ConfigDict(frozen=True)

    success: bool
    generation_id: str
    scope: ScopeDecision | None = None
    components: tuple[Artifact, ...] = ()
    quality_score: float = 0.0
    dependencies: tuple[str, ...] = ()
    package_manifest: str = ""
    readme: str = ""
    warnings: tuple[str, ...] = ()
    provenance: str | None = None
    error: str | None = None
    error_kind: str | None = None
