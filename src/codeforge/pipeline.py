"""Pipeline orchestrator: prepare, generate, validate, optimize, done.

Every stage runs through :meth:`Orchestrator._run_stage`, which consults the
``STAGE_POLICIES`` table to decide whether a failure aborts the run or is
recorded as a warning while the pipeline carries on.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, TypeVar

from codeforge.config import PipelineConfig
from codeforge.errors import (
    ExtractionDegraded,
    GenerationError,
    OptimizationFailure,
    PipelineError,
    PrepareError,
    ValidationFailure,
)
from codeforge.extractor import ArtifactExtractor
from codeforge.generator import GeminiGenerator, LocalScaffoldGenerator, SynthesisInvoker, TextProvider
from codeforge.models import (
    Artifact,
    GenerationRequest,
    PipelineResult,
    PipelineStage,
    ProgressEvent,
    ScopeDecision,
    ScopeType,
    SynthesisResult,
)
from codeforge.optimizer import Optimizer
from codeforge.prompting import PromptSynthesizer
from codeforge.repair import AutoRepair
from codeforge.scope import ScopeAnalyzer
from codeforge.store import ResultStore
from codeforge.templates import TemplateProjectGenerator
from codeforge.validator import Validator

logger = logging.getLogger(__name__)

T = TypeVar("T")
ProgressObserver = Callable[[ProgressEvent], None]


@dataclass(frozen=True)
class StagePolicy:
    """How the orchestrator treats a failure in one stage."""

    blocking: bool
    fallback: str | None = None
    error: type[PipelineError] = PipelineError


STAGE_POLICIES: dict[PipelineStage, StagePolicy] = {
    PipelineStage.PREPARE: StagePolicy(blocking=True, error=PrepareError),
    PipelineStage.GENERATE: StagePolicy(blocking=True, fallback="generic-provider", error=GenerationError),
    PipelineStage.VALIDATE: StagePolicy(blocking=False, fallback="keep-degraded", error=ValidationFailure),
    PipelineStage.OPTIMIZE: StagePolicy(blocking=False, fallback="keep-original", error=OptimizationFailure),
}

STAGE_PROGRESS: dict[PipelineStage, int] = {
    PipelineStage.PREPARE: 10,
    PipelineStage.GENERATE: 40,
    PipelineStage.VALIDATE: 70,
    PipelineStage.OPTIMIZE: 90,
    PipelineStage.DONE: 100,
}

FRONTEND_SCRIPTS = {"dev": "vite", "build": "tsc && vite build", "preview": "vite preview"}
BACKEND_SCRIPTS = {"dev": "ts-node-dev src/server.ts", "build": "tsc", "start": "node dist/server.js"}
FULLSTACK_SCRIPTS = {
    "dev:backend": "npm --prefix backend run dev",
    "dev:frontend": "npm --prefix frontend run dev",
    "build": "npm --prefix backend run build && npm --prefix frontend run build",
}


@dataclass
class _Run:
    """Request-scoped state for one pipeline execution."""

    generation_id: str
    request: GenerationRequest
    warnings: list[str] = field(default_factory=list)
    last_percentage: int = 0
    scope: ScopeDecision | None = None
    instruction: str = ""
    synthesis: SynthesisResult | None = None
    artifacts: list[Artifact] = field(default_factory=list)


class Orchestrator:
    """Drives one request through every stage; collaborators are injected."""

    def __init__(
        self,
        config: PipelineConfig | None = None,
        analyzer: ScopeAnalyzer | None = None,
        synthesizer: PromptSynthesizer | None = None,
        invoker: SynthesisInvoker | None = None,
        extractor: ArtifactExtractor | None = None,
        validator: Validator | None = None,
        repairer: AutoRepair | None = None,
        optimizer: Optimizer | None = None,
        observer: ProgressObserver | None = None,
        store: ResultStore | None = None,
    ):
        self.config = config or PipelineConfig()
        self.analyzer = analyzer or ScopeAnalyzer()
        self.synthesizer = synthesizer or PromptSynthesizer()
        self.invoker = invoker or SynthesisInvoker(
            provider=LocalScaffoldGenerator(),
            structured=TemplateProjectGenerator(),
            config=self.config,
        )
        self.extractor = extractor or ArtifactExtractor(viability_threshold=self.config.viability_threshold)
        self.validator = validator or Validator(
            pass_threshold=self.config.pass_threshold,
            sandbox_packages=self.config.sandbox_packages,
        )
        self.repairer = repairer or AutoRepair(
            self.validator,
            config=self.config.repair,
            viability_threshold=self.config.viability_threshold,
        )
        self.optimizer = optimizer or Optimizer(categories=self.config.optimization_categories)
        self.observer = observer
        self.store = store

    def policy_for(self, stage: PipelineStage) -> StagePolicy:
        policy = STAGE_POLICIES[stage]
        if stage == PipelineStage.VALIDATE and self.config.strict:
            return StagePolicy(blocking=True, fallback=None, error=policy.error)
        return policy

    def execute(self, request: GenerationRequest) -> PipelineResult:
        """Run the full pipeline for one request and return an owned, immutable result."""
        run = _Run(generation_id=request.generation_id or uuid.uuid4().hex[:12], request=request)
        logger.info("Generation %s started", run.generation_id)
        try:
            self._run_stage(run, PipelineStage.PREPARE, "Analyzing request scope", self._prepare)
            self._run_stage(run, PipelineStage.GENERATE, "Generating artifacts", self._generate)
            if self.config.enable_validation:
                self._run_stage(run, PipelineStage.VALIDATE, "Validating artifacts", self._validate)
            else:
                self._emit(run, PipelineStage.VALIDATE, "Validation disabled")
            if self.config.enable_optimization:
                self._run_stage(run, PipelineStage.OPTIMIZE, "Optimizing artifacts", self._optimize)
            else:
                self._emit(run, PipelineStage.OPTIMIZE, "Optimization disabled")
        except PipelineError as exc:
            logger.error("Generation %s failed in %s: %s", run.generation_id, exc.stage, exc, exc_info=True)
            self._emit(run, PipelineStage.DONE, f"Generation failed: {exc}")
            result = PipelineResult(
                success=False,
                generation_id=run.generation_id,
                scope=run.scope,
                warnings=tuple(run.warnings),
                provenance=run.synthesis.provenance if run.synthesis else None,
                error=str(exc),
                error_kind=type(exc).__name__,
            )
            self._store(result)
            return result

        result = self._aggregate(run)
        self._emit(run, PipelineStage.DONE, f"Generated {len(result.components)} artifact(s)")
        logger.info(
            "Generation %s finished: artifacts=%d quality=%.1f warnings=%d",
            run.generation_id,
            len(result.components),
            result.quality_score,
            len(result.warnings),
        )
        self._store(result)
        return result

    def execute_many(self, requests: Sequence[GenerationRequest], max_workers: int = 4) -> list[PipelineResult]:
        """Run independent requests concurrently; results keep the input order."""
        if not requests:
            return []
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(requests)))) as pool:
            return list(pool.map(self.execute, requests))

    # ------------------------------------------------------------------
    # Stage plumbing.
    # ------------------------------------------------------------------

    def _run_stage(self, run: _Run, stage: PipelineStage, message: str, action: Callable[[_Run], T]) -> T | None:
        self._emit(run, stage, message)
        policy = self.policy_for(stage)
        try:
            return action(run)
        except Exception as exc:
            if policy.blocking:
                if isinstance(exc, PipelineError):
                    raise
                raise policy.error(str(exc) or type(exc).__name__, stage=stage.value) from exc
            logger.warning("Stage %s failed, continuing with %s: %s", stage.value, policy.fallback, exc)
            run.warnings.append(f"{type(exc).__name__}: {exc}")
            return None

    def _emit(self, run: _Run, stage: PipelineStage, message: str) -> None:
        percentage = STAGE_PROGRESS[stage]
        if percentage <= run.last_percentage:
            return
        run.last_percentage = percentage
        logger.info("[%s] %s %d%% %s", run.generation_id, stage.value, percentage, message)
        if self.observer is None:
            return
        event = ProgressEvent(generation_id=run.generation_id, stage=stage, percentage=percentage, message=message)
        try:
            self.observer(event)
        except Exception as exc:
            logger.warning("Progress observer raised on %s: %s", stage.value, exc)

    def _store(self, result: PipelineResult) -> None:
        if self.store is not None:
            self.store.save(result)

    # ------------------------------------------------------------------
    # Stages.
    # ------------------------------------------------------------------

    def _prepare(self, run: _Run) -> None:
        prompt = run.request.prompt
        if not isinstance(prompt, str) or not prompt.strip():
            raise PrepareError("Prompt must be a non-empty string.")
        run.scope = self.analyzer.analyze(prompt)
        run.instruction = self.synthesizer.build(prompt, run.scope, run.request)

    def _generate(self, run: _Run) -> None:
        scope = run.scope
        run.synthesis = self.invoker.invoke(scope, run.instruction, run.request)
        extraction = self.extractor.split(run.synthesis.raw_text, scope)
        if not extraction.artifacts:
            raise GenerationError("The response contained no extractable artifacts.")

        if extraction.degraded:
            degraded = ExtractionDegraded(
                f"No file markers matched; the whole response became {len(extraction.artifacts)} artifact(s)."
            )
            run.warnings.append(f"{type(degraded).__name__}: {degraded}")
            for artifact in extraction.artifacts:
                artifact.metadata.degraded = True
        if extraction.discarded:
            run.warnings.append(f"Discarded {extraction.discarded} block(s) below the viability threshold.")

        count = len(extraction.artifacts)
        expected = scope.expected_file_count
        if count < expected.min:
            run.warnings.append(
                f"Under-generation: {count} artifact(s) produced, expected at least {expected.min} "
                f"for scope {scope.type.value}."
            )
        elif count > expected.max:
            run.warnings.append(
                f"Over-generation: {count} artifact(s) produced, expected at most {expected.max} "
                f"for scope {scope.type.value}."
            )
        run.artifacts = extraction.artifacts

    def _validate(self, run: _Run) -> None:
        failing: list[str] = []
        for artifact in run.artifacts:
            outcome = self.validator.validate(artifact)
            _, final = self.repairer.run(artifact, outcome)
            if not final.passed:
                failing.append(artifact.path)
        if failing:
            raise ValidationFailure(
                f"{len(failing)} artifact(s) failed integrity checks: {', '.join(failing)}"
            )

    def _optimize(self, run: _Run) -> None:
        failed: list[str] = []
        for artifact in run.artifacts:
            result = self.optimizer.optimize(artifact)
            if not result.ok:
                failed.append(f"{artifact.path} ({result.error})")
        if failed:
            raise OptimizationFailure(f"Optimization kept original content for: {', '.join(failed)}")

    # ------------------------------------------------------------------
    # Aggregation.
    # ------------------------------------------------------------------

    def _aggregate(self, run: _Run) -> PipelineResult:
        artifacts = run.artifacts
        scores = [artifact.metadata.score for artifact in artifacts]
        quality_score = round(sum(scores) / len(scores), 2) if scores else 0.0
        dependencies = sorted({dependency for artifact in artifacts for dependency in artifact.dependencies})
        return PipelineResult(
            success=True,
            generation_id=run.generation_id,
            scope=run.scope,
            components=tuple(artifact.model_copy(deep=True) for artifact in artifacts),
            quality_score=quality_score,
            dependencies=tuple(dependencies),
            package_manifest=build_package_manifest(run.scope, dependencies),
            readme=build_readme(run.request.prompt, run.scope, artifacts),
            warnings=tuple(run.warnings),
            provenance=run.synthesis.provenance if run.synthesis else None,
        )


def _slug(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug or "generated-project"


def build_package_manifest(scope: ScopeDecision, dependencies: Sequence[str]) -> str:
    """Render ``package.json`` text listing every external dependency at ``latest``."""
    if scope.type == ScopeType.FULLSTACK:
        scripts = FULLSTACK_SCRIPTS
    elif scope.type == ScopeType.BACKEND:
        scripts = BACKEND_SCRIPTS
    else:
        scripts = FRONTEND_SCRIPTS
    manifest: dict[str, Any] = {
        "name": _slug(f"{scope.entity}-{scope.type.value}"),
        "version": "0.1.0",
        "private": True,
        "scripts": scripts,
        "dependencies": {dependency: "latest" for dependency in dependencies},
    }
    return json.dumps(manifest, indent=2)


def build_readme(prompt: str, scope: ScopeDecision, artifacts: Sequence[Artifact]) -> str:
    title = scope.entity if scope.type == ScopeType.SINGLE_COMPONENT else f"{scope.entity} {scope.type.value.replace('_', ' ')}"
    lines = [
        f"# {title.title()}",
        "",
        prompt.strip(),
        "",
        "## Overview",
        "",
        f"- Scope: `{scope.type.value}` ({scope.complexity.value})",
        f"- Files: {len(artifacts)}",
        "",
        "## Files",
        "",
    ]
    lines.extend(f"- `{artifact.path}` ({artifact.type})" for artifact in artifacts)
    lines.extend(["", "## Getting Started", "", "```bash", "npm install", "npm run dev", "```", ""])
    return "\n".join(lines)


def build_orchestrator(
    config: PipelineConfig | None = None,
    *,
    local_only: bool = False,
    provider: TextProvider | None = None,
    observer: ProgressObserver | None = None,
    store: ResultStore | None = None,
) -> Orchestrator:
    """Wire the default collaborators: Gemini (or the offline scaffold) plus the template generator."""
    config = config or PipelineConfig()
    if provider is None:
        provider = (
            LocalScaffoldGenerator()
            if local_only
            else GeminiGenerator(model_name=config.model_name, timeout_seconds=config.timeout_seconds)
        )
    invoker = SynthesisInvoker(provider=provider, structured=TemplateProjectGenerator(), config=config)
    return Orchestrator(config=config, invoker=invoker, observer=observer, store=store)
