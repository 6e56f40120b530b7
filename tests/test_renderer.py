from __future__ import annotations

import json

import pytest

from codeforge.models import PipelineResult
from codeforge.renderer import render_bundle, render_summary


def test_render_bundle_given_successful_result_when_rendered_then_writes_expected_outputs(
    tmp_path, card_scope, make_artifact, card_component
) -> None:
    # Given
    artifact = make_artifact("src/components/Card.tsx", card_component)
    artifact.metadata.score = 100.0
    artifact.metadata.repairs = ["missing-default-export"]
    result = PipelineResult(
        success=True,
        generation_id="gen123abc",
        scope=card_scope,
        components=(artifact,),
        quality_score=100.0,
        dependencies=("react",),
        package_manifest='{"name": "card-single-component"}',
        readme="# Card\n",
        warnings=("Under-generation: 1 artifact(s) produced, expected at least 2 for scope single_component.",),
        provenance="generic",
    )
    output_root = tmp_path / "generated"

    # When
    target_dir = render_bundle(result, output_root=output_root)

    # Then
    assert target_dir == output_root / "gen123abc"
    assert (target_dir / "src/components/Card.tsx").read_text(encoding="utf-8") == card_component + "\n"
    assert json.loads((target_dir / "package.json").read_text(encoding="utf-8"))["name"] == "card-single-component"
    assert (target_dir / "README.md").read_text(encoding="utf-8") == "# Card\n"

    payload = json.loads((target_dir / "result.json").read_text(encoding="utf-8"))
    assert payload["generation_id"] == "gen123abc"
    assert payload["components"][0]["path"] == "src/components/Card.tsx"

    summary = (target_dir / "SUMMARY.md").read_text(encoding="utf-8")
    assert "# Generation gen123abc" in summary
    assert "| `src/components/Card.tsx` | component | 100 | missing-default-export | no |" in summary
    assert "- `react`" in summary
    assert "## Warnings" in summary


def test_render_bundle_given_generated_manifest_artifact_when_rendered_then_it_is_not_overwritten(
    tmp_path, card_scope, make_artifact
) -> None:
    # Given
    manifest = make_artifact("package.json", '{\n  "name": "from-the-model"\n}')
    result = PipelineResult(
        success=True,
        generation_id="gen-manifest",
        scope=card_scope,
        components=(manifest,),
        package_manifest='{"name": "aggregated"}',
    )

    # When
    target_dir = render_bundle(result, output_root=tmp_path)

    # Then
    assert json.loads((target_dir / "package.json").read_text(encoding="utf-8"))["name"] == "from-the-model"


def test_render_bundle_given_failed_result_when_rendered_then_only_metadata_files_are_written(tmp_path) -> None:
    # Given
    result = PipelineResult(
        success=False,
        generation_id="gen-failed",
        error="Prompt must be a non-empty string.",
        error_kind="PrepareError",
    )

    # When
    target_dir = render_bundle(result, output_root=tmp_path)

    # Then
    assert sorted(path.name for path in target_dir.iterdir()) == ["SUMMARY.md", "result.json"]
    summary = (target_dir / "SUMMARY.md").read_text(encoding="utf-8")
    assert "- Status: `failed`" in summary
    assert "- Error: `PrepareError` Prompt must be a non-empty string." in summary


def test_render_bundle_given_path_outside_bundle_when_rendered_then_value_error_is_raised(
    tmp_path, make_artifact
) -> None:
    # Given
    result = PipelineResult(
        success=True,
        generation_id="gen-escape",
        components=(make_artifact("../../escape.ts", "export const escaped = true;"),),
    )

    # When
    with pytest.raises(ValueError) as excinfo:
        render_bundle(result, output_root=tmp_path / "generated")

    # Then
    assert "escapes the bundle directory" in str(excinfo.value)
    assert not (tmp_path / "escape.ts").exists()


def test_render_summary_given_result_without_scope_when_rendered_then_optional_sections_are_omitted() -> None:
    # Given
    result = PipelineResult(success=True, generation_id="bare")

    # When
    summary = render_summary(result)

    # Then
    assert "- Provenance: `n/a`" in summary
    assert "- Quality score: `0.0`" in summary
    assert "## Artifacts" not in summary
    assert "## Dependencies" not in summary
