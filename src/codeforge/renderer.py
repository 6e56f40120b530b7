"""Write finished pipeline results to disk as a browsable project bundle."""

from __future__ import annotations

import json
from pathlib import Path

from codeforge.models import PipelineResult


def render_bundle(result: PipelineResult, output_root: Path) -> Path:
    """Write a result's artifacts plus ``result.json`` and ``SUMMARY.md``; return the bundle directory.

    Args:
        result: Finished pipeline result, successful or not.
        output_root: Root directory where per-generation folders are created.

    Returns:
        The generation-specific directory containing rendered files.

    Raises:
        ValueError: If an artifact path would escape the bundle directory.
    """
    target_dir = output_root / result.generation_id
    target_dir.mkdir(parents=True, exist_ok=True)
    root = target_dir.resolve()

    written: set[str] = set()
    for artifact in result.components:
        destination = (target_dir / artifact.path).resolve()
        if root not in destination.parents:
            raise ValueError(f"Artifact path escapes the bundle directory: {artifact.path}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(_with_newline(artifact.content), encoding="utf-8")
        written.add(artifact.path)

    if result.success:
        if "package.json" not in written and result.package_manifest:
            (target_dir / "package.json").write_text(_with_newline(result.package_manifest), encoding="utf-8")
        if "README.md" not in written and result.readme:
            (target_dir / "README.md").write_text(_with_newline(result.readme), encoding="utf-8")

    (target_dir / "result.json").write_text(
        json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    (target_dir / "SUMMARY.md").write_text(render_summary(result), encoding="utf-8")
    return target_dir


def _with_newline(text: str) -> str:
    return text if text.endswith("\n") else text + "\n"


def render_summary(result: PipelineResult) -> str:
    """Render a human-readable Markdown summary of a result."""
    status = "success" if result.success else "failed"
    lines = [
        f"# Generation {result.generation_id}",
        "",
        f"- Status: `{status}`",
        f"- Provenance: `{result.provenance or 'n/a'}`",
        f"- Quality score: `{result.quality_score:.1f}`",
    ]
    if result.scope is not None:
        lines.append(
            f"- Scope: `{result.scope.type.value}` ({result.scope.complexity.value}, "
            f"{result.scope.expected_file_count.min}-{result.scope.expected_file_count.max} files expected)"
        )
    if result.error:
        lines.append(f"- Error: `{result.error_kind}` {result.error}")
    lines.append("")

    if result.components:
        lines.extend(["## Artifacts", "", "| Path | Type | Score | Repairs | Degraded |", "| --- | --- | --- | --- | --- |"])
        for artifact in result.components:
            meta = artifact.metadata
            lines.append(
                f"| `{artifact.path}` | {artifact.type} | {meta.score:.0f} | "
                f"{', '.join(meta.repairs) or '-'} | {'yes' if meta.degraded else 'no'} |"
            )
        lines.append("")

    if result.dependencies:
        lines.extend(["## Dependencies", ""])
        lines.extend(f"- `{dependency}`" for dependency in result.dependencies)
        lines.append("")

    if result.warnings:
        lines.extend(["## Warnings", ""])
        lines.extend(f"- {warning}" for warning in result.warnings)
        lines.append("")

    return "\n".join(lines)
