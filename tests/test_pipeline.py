from __future__ import annotations

import json

import pytest

from codeforge.config import PipelineConfig
from codeforge.errors import DuplicateResultError
from codeforge.generator import GeminiGenerator, LocalScaffoldGenerator, SynthesisInvoker
from codeforge.models import GenerationRequest, PipelineStage
from codeforge.optimizer import Optimizer
from codeforge.pipeline import Orchestrator, build_orchestrator, build_package_manifest, build_readme
from codeforge.renderer import render_bundle
from codeforge.store import ResultStore

UNMARKED_CARD = (
    "Here is the component you asked for.\n\n"
    "```tsx\n"
    "export default function Card() {\n"
    "  return <div className=\"card\">Card</div>;\n"
    "}\n"
    "```\n"
)

UNRESOLVED_CARD = (
    "```tsx:src/components/Card.tsx\n"
    "export const Card = () => <Layout>card</Layout>;\n"
    "\n"
    "export default Card;\n"
    "```"
)


class FailingAnalyzer:
    def analyze(self, code: str, language: str):
        raise RuntimeError("quality service unavailable")


def _static_orchestrator(provider, **kwargs) -> Orchestrator:
    config = kwargs.pop("config", None) or PipelineConfig()
    return Orchestrator(config=config, invoker=SynthesisInvoker(provider, config=config), **kwargs)


def test_execute_given_simple_card_prompt_when_run_offline_then_a_small_frontend_bundle_is_returned() -> None:
    # Given
    events = []
    orchestrator = Orchestrator(observer=events.append)

    # When
    result = orchestrator.execute(GenerationRequest(prompt="create a simple card component"))

    # Then
    assert result.success is True
    assert result.provenance == "generic"
    assert [artifact.path for artifact in result.components] == [
        "src/components/Card.tsx",
        "src/types/Card.types.ts",
        "src/mocks/Card.mock.ts",
    ]
    assert not any(artifact.path.startswith(("backend/", "frontend/")) for artifact in result.components)
    assert result.quality_score == 100.0
    assert result.dependencies == ("react",)
    assert json.loads(result.package_manifest)["dependencies"] == {"react": "latest"}
    assert result.warnings == ()
    assert [event.percentage for event in events] == [10, 40, 70, 90, 100]
    assert events[-1].stage == PipelineStage.DONE


def test_execute_given_fullstack_prompt_when_run_then_specialized_generator_fills_both_roots() -> None:
    # Given
    orchestrator = Orchestrator()

    # When
    result = orchestrator.execute(GenerationRequest(prompt="build a complete fullstack app with a database"))

    # Then
    assert result.success is True
    assert result.provenance == "specialized"
    assert len(result.components) == 26
    assert all(artifact.path.startswith(("backend/", "frontend/")) for artifact in result.components)
    assert all(artifact.metadata.validated for artifact in result.components)
    assert all(not artifact.metadata.degraded for artifact in result.components)
    assert "express" in result.dependencies
    assert result.warnings == ()


def test_execute_given_single_unmarked_fence_when_run_then_one_artifact_and_under_generation_warning(
    provider_factory,
) -> None:
    # Given
    orchestrator = _static_orchestrator(provider_factory(response=UNMARKED_CARD))

    # When
    result = orchestrator.execute(GenerationRequest(prompt="create a simple card component"))

    # Then
    assert result.success is True
    assert len(result.components) == 1
    assert "```" not in result.components[0].content
    assert result.components[0].path == "src/components/Card.tsx"
    assert any(warning.startswith("Under-generation:") for warning in result.warnings)


def test_execute_given_response_without_markers_when_run_then_extraction_degraded_warning_is_recorded(
    provider_factory,
) -> None:
    # Given
    orchestrator = _static_orchestrator(provider_factory(response="const greeting = 'hello from a bare response';"))

    # When
    result = orchestrator.execute(GenerationRequest(prompt="create a simple card component"))

    # Then
    assert result.success is True
    assert any(warning.startswith("ExtractionDegraded:") for warning in result.warnings)
    assert result.components[0].metadata.degraded is True


@pytest.mark.parametrize("prompt", ["", "   \n\t"])
def test_execute_given_blank_prompt_when_run_then_prepare_error_result_is_returned(prompt: str) -> None:
    # Given
    events = []
    orchestrator = Orchestrator(observer=events.append)

    # When
    result = orchestrator.execute(GenerationRequest(prompt=prompt, generation_id="blank"))

    # Then
    assert result.success is False
    assert result.error_kind == "PrepareError"
    assert result.components == ()
    assert result.generation_id == "blank"
    assert [event.stage for event in events] == [PipelineStage.PREPARE, PipelineStage.DONE]


def test_execute_given_provider_error_when_run_then_generation_error_result_is_returned(provider_factory) -> None:
    # Given
    orchestrator = _static_orchestrator(provider_factory(error=RuntimeError("quota exceeded")))

    # When
    result = orchestrator.execute(GenerationRequest(prompt="create a simple card component"))

    # Then
    assert result.success is False
    assert result.error_kind == "GenerationError"
    assert "quota exceeded" in result.error
    assert result.scope is not None


def test_execute_given_failing_quality_analyzer_when_run_then_optimization_failure_is_only_a_warning() -> None:
    # Given
    orchestrator = Orchestrator(optimizer=Optimizer(quality_analyzer=FailingAnalyzer()))
    baseline = Orchestrator(config=PipelineConfig(enable_optimization=False)).execute(
        GenerationRequest(prompt="create a simple card component")
    )

    # When
    result = orchestrator.execute(GenerationRequest(prompt="create a simple card component"))

    # Then
    assert result.success is True
    assert any(warning.startswith("OptimizationFailure:") for warning in result.warnings)
    assert [artifact.content for artifact in result.components] == [
        artifact.content for artifact in baseline.components
    ]
    assert all(not artifact.metadata.optimized for artifact in result.components)


def test_execute_given_observer_that_raises_when_run_then_pipeline_still_completes() -> None:
    # Given
    def broken_observer(event) -> None:
        raise RuntimeError("ui disconnected")

    orchestrator = Orchestrator(observer=broken_observer)

    # When
    result = orchestrator.execute(GenerationRequest(prompt="create a simple card component"))

    # Then
    assert result.success is True


def test_execute_given_unresolved_symbol_when_not_strict_then_artifact_is_kept_as_degraded(provider_factory) -> None:
    # Given
    orchestrator = _static_orchestrator(provider_factory(response=UNRESOLVED_CARD))

    # When
    result = orchestrator.execute(GenerationRequest(prompt="create a simple card component"))

    # Then
    assert result.success is True
    assert any(warning.startswith("ValidationFailure:") for warning in result.warnings)
    assert result.components[0].metadata.degraded is True


def test_execute_given_unresolved_symbol_when_strict_then_validation_failure_aborts_the_run(provider_factory) -> None:
    # Given
    orchestrator = _static_orchestrator(
        provider_factory(response=UNRESOLVED_CARD),
        config=PipelineConfig(strict=True),
    )

    # When
    result = orchestrator.execute(GenerationRequest(prompt="create a simple card component"))

    # Then
    assert result.success is False
    assert result.error_kind == "ValidationFailure"
    assert "src/components/Card.tsx" in result.error
    assert result.components == ()


def test_execute_given_validation_disabled_when_run_then_progress_is_still_complete_and_scores_stay_zero() -> None:
    # Given
    events = []
    orchestrator = Orchestrator(config=PipelineConfig(enable_validation=False), observer=events.append)

    # When
    result = orchestrator.execute(GenerationRequest(prompt="create a simple card component"))

    # Then
    assert result.success is True
    assert result.quality_score == 0.0
    assert [event.percentage for event in events] == [10, 40, 70, 90, 100]


def test_execute_many_given_several_requests_when_run_concurrently_then_results_keep_input_order() -> None:
    # Given
    requests = [
        GenerationRequest(prompt="create a simple card component", generation_id="first"),
        GenerationRequest(prompt="an analytics dashboard with charts", generation_id="second"),
        GenerationRequest(prompt="", generation_id="third"),
    ]

    # When
    results = Orchestrator().execute_many(requests, max_workers=3)

    # Then
    assert [result.generation_id for result in results] == ["first", "second", "third"]
    assert [result.success for result in results] == [True, True, False]
    assert Orchestrator().execute_many([]) == []


def test_execute_given_store_when_run_then_result_is_saved_once_per_generation_id(tmp_path) -> None:
    # Given
    store = ResultStore(tmp_path / "results.db")
    store.init_db()
    orchestrator = Orchestrator(store=store)
    request = GenerationRequest(prompt="create a simple card component", generation_id="gen-1")

    # When
    result = orchestrator.execute(request)

    # Then
    assert store.get("gen-1") == result
    with pytest.raises(DuplicateResultError):
        orchestrator.execute(request)


def test_build_package_manifest_given_backend_scope_when_built_then_backend_scripts_are_used(backend_scope) -> None:
    # Given
    dependencies = ["cors", "express"]

    # When
    manifest = json.loads(build_package_manifest(backend_scope, dependencies))

    # Then
    assert manifest["scripts"]["start"] == "node dist/server.js"
    assert manifest["dependencies"] == {"cors": "latest", "express": "latest"}
    assert manifest["name"] == "user-backend"


def test_build_readme_given_artifacts_when_built_then_prompt_and_file_list_are_included(
    card_scope, make_artifact, card_component
) -> None:
    # Given
    artifacts = [make_artifact("src/components/Card.tsx", card_component)]

    # When
    readme = build_readme("  create a simple card component  ", card_scope, artifacts)

    # Then
    assert readme.startswith("# Card\n")
    assert "create a simple card component" in readme
    assert "- `src/components/Card.tsx` (component)" in readme
    assert "npm run dev" in readme


def test_build_orchestrator_given_local_only_when_built_then_offline_scaffold_is_the_provider() -> None:
    # Given
    config = PipelineConfig(model_name="gemini-test", timeout_seconds=5)

    # When
    offline = build_orchestrator(config, local_only=True)
    online = build_orchestrator(config)

    # Then
    assert isinstance(offline.invoker.provider, LocalScaffoldGenerator)
    assert isinstance(online.invoker.provider, GeminiGenerator)
    assert online.invoker.provider.model_name == "gemini-test"
    assert online.invoker.provider.timeout_seconds == 5
    assert online.config is config


def test_execute_given_marker_with_parent_directories_when_rendered_then_files_stay_inside_the_bundle(
    provider_factory, tmp_path
) -> None:
    # Given
    response = (
        "```tsx:../../../escape/Card.tsx\n"
        "export const Card = () => <div className=\"card\">Card</div>;\n"
        "\n"
        "export default Card;\n"
        "```"
    )
    orchestrator = _static_orchestrator(provider_factory(response=response))

    # When
    result = orchestrator.execute(GenerationRequest(prompt="create a simple card component", generation_id="dotdot"))
    target_dir = render_bundle(result, output_root=tmp_path / "generated")

    # Then
    assert result.success is True
    assert [artifact.path for artifact in result.components] == ["src/escape/Card.tsx"]
    assert (target_dir / "src/escape/Card.tsx").exists()
    assert not (tmp_path / "escape").exists()
