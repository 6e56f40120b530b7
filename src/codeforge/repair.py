"""Deterministic rewrites for the fixable integrity issues, followed by one re-validation."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from pathlib import PurePosixPath

from codeforge.config import DEFAULT_SANDBOX_PACKAGES, RepairConfig
from codeforge.extractor import extract_dependencies
from codeforge.models import Artifact, ValidationOutcome
from codeforge.validator import (
    COMPONENT_SUFFIXES,
    DIAGNOSTIC_RE,
    EMBEDDED_MARKER_RE,
    FENCE_IN_CONTENT_RE,
    NETWORK_CALL_RE,
    RUNTIME_GENERIC_RE,
    Validator,
    embedded_split_points,
    find_closing,
    has_default_export,
    mask_code,
    primary_symbol,
)

logger = logging.getLogger(__name__)

IMPORT_STATEMENT_RE = re.compile(
    r"^[ \t]*import\b(?P<clause>[^;'\"]*?)['\"](?P<source>[^'\"]+)['\"][ \t]*;?[ \t]*(?:\n|$)",
    re.MULTILINE,
)
SIMPLE_EXPRESSION_RE = re.compile(r"[\w$.]+(?:\([^()]*\))?")

Fixer = Callable[[str, str], str]


def _closing_angle(masked: str, start: int) -> int:
    depth = 0
    for index in range(start, len(masked)):
        char = masked[index]
        if char == "<":
            depth += 1
        elif char == ">" and masked[index - 1] != "=":
            depth -= 1
            if depth == 0:
                return index
        elif char == ";":
            return -1
    return -1


def _apply_edits(content: str, edits: list[tuple[int, int, str]]) -> str:
    for start, end, replacement in sorted(edits, reverse=True):
        content = content[:start] + replacement + content[end:]
    return content


def strip_runtime_generics(content: str, path: str = "") -> str:
    """``useState<User[]>([])`` becomes ``useState([])``."""
    masked = mask_code(content)
    edits = []
    for match in RUNTIME_GENERIC_RE.finditer(masked):
        open_index = match.end() - 1
        close_index = _closing_angle(masked, open_index)
        if close_index != -1:
            edits.append((open_index, close_index + 1, ""))
    return _apply_edits(content, edits)


def remove_diagnostics(content: str, path: str = "") -> str:
    """Drop standalone console statements; inline calls become ``undefined``."""
    masked = mask_code(content)
    edits: list[tuple[int, int, str]] = []
    last_end = -1
    for match in DIAGNOSTIC_RE.finditer(masked):
        if match.start() < last_end:
            continue
        close = find_closing(masked, match.end() - 1, "(", ")")
        if close == -1:
            continue
        end = close + 1
        cursor = end
        while cursor < len(masked) and masked[cursor] in " \t":
            cursor += 1
        statement_end = cursor + 1 if cursor < len(masked) and masked[cursor] == ";" else end

        line_start = content.rfind("\n", 0, match.start()) + 1
        line_end = content.find("\n", statement_end)
        if line_end == -1:
            line_end = len(content)
        standalone = not content[line_start : match.start()].strip() and not content[statement_end:line_end].strip()
        if standalone:
            edits.append((line_start, min(line_end + 1, len(content)), ""))
        else:
            edits.append((match.start(), end, "undefined"))
        last_end = statement_end
    return _apply_edits(content, edits)


def synthesize_default_export(content: str, path: str) -> str:
    if PurePosixPath(path).suffix.lower() not in COMPONENT_SUFFIXES:
        return content
    if has_default_export(mask_code(content)):
        return content
    name = primary_symbol(content, path)
    if not name:
        return content
    return f"{content.rstrip()}\n\nexport default {name};\n"


def _quote(text: str) -> str:
    escaped = text.replace("\\`", "`").replace("\\$", "$").replace("'", "\\'").replace("\n", "\\n")
    return f"'{escaped}'"


def concatenate_template(body: str) -> str | None:
    """Turn the body of a template literal into a ``'a' + b`` expression."""
    parts: list[tuple[str, str]] = []
    text: list[str] = []
    index = 0
    while index < len(body):
        if body.startswith("${", index):
            close = find_closing(body, index + 1, "{", "}")
            if close == -1:
                return None
            if text:
                parts.append(("text", "".join(text)))
                text = []
            parts.append(("expr", body[index + 2 : close].strip()))
            index = close + 1
        elif body[index] == "\\" and index + 1 < len(body):
            text.append(body[index : index + 2])
            index += 2
        else:
            text.append(body[index])
            index += 1
    if text:
        parts.append(("text", "".join(text)))

    rendered = []
    for kind, value in parts:
        if kind == "text":
            rendered.append(_quote(value))
        elif SIMPLE_EXPRESSION_RE.fullmatch(value):
            rendered.append(value)
        else:
            rendered.append(f"({value})")
    if parts and parts[0][0] == "expr" and (len(parts) == 1 or parts[1][0] == "expr"):
        rendered.insert(0, "''")
    return " + ".join(rendered)


def safe_interpolation(content: str, path: str = "") -> str:
    masked = mask_code(content)
    edits = []
    for match in NETWORK_CALL_RE.finditer(masked):
        start = match.end() - 1
        end = masked.find("`", start + 1)
        if end == -1:
            continue
        body = content[start + 1 : end]
        if "${" not in body:
            continue
        replacement = concatenate_template(body)
        if replacement is not None:
            edits.append((start, end + 1, replacement))
    return _apply_edits(content, edits)


def strip_sandbox_imports(content: str, path: str = "", allowed: Iterable[str] = DEFAULT_SANDBOX_PACKAGES) -> str:
    allowed_packages = set(allowed)
    searchable = mask_code(content, strings=False)
    edits = []
    for match in IMPORT_STATEMENT_RE.finditer(searchable):
        if match.group("clause").strip().startswith("type "):
            continue
        source = match.group("source")
        parts = source.split("/")
        package = "/".join(parts[:2]) if source.startswith("@") else parts[0]
        if source.startswith(".") or package not in allowed_packages:
            edits.append((match.start(), match.end(), ""))
    return _apply_edits(content, edits)


def dedupe_embedded(content: str, path: str = "", viability_threshold: int = 20) -> str:
    """Keep the first coherent file when several were merged into one artifact."""
    points = embedded_split_points(content)
    if not points:
        return content
    lines = content.splitlines()
    bounds = [0, *points, len(lines)]
    for start, end in zip(bounds, bounds[1:]):
        segment = [
            line
            for position, line in enumerate(lines[start:end])
            if not FENCE_IN_CONTENT_RE.match(line) and not (position == 0 and EMBEDDED_MARKER_RE.match(line))
        ]
        candidate = "\n".join(segment).strip()
        if len(candidate) >= viability_threshold:
            return candidate
    return content


class AutoRepair:
    """Applies the enabled fixers a validation outcome calls for, then re-validates once."""

    def __init__(
        self,
        validator: Validator,
        config: RepairConfig | None = None,
        viability_threshold: int = 20,
    ):
        self.validator = validator
        self.config = config or RepairConfig()
        self.viability_threshold = viability_threshold

    def _fixers(self) -> list[tuple[str, bool, Fixer]]:
        config = self.config
        return [
            (
                "embedded-artifacts",
                config.dedupe_embedded,
                lambda content, path: dedupe_embedded(content, path, self.viability_threshold),
            ),
            ("runtime-generic", config.strip_runtime_generics, strip_runtime_generics),
            ("diagnostic-statement", config.remove_diagnostics, remove_diagnostics),
            ("unsafe-interpolation", config.safe_interpolation, safe_interpolation),
            (
                "sandbox-import",
                config.strip_sandbox_imports,
                lambda content, path: strip_sandbox_imports(content, path, self.validator.sandbox_packages),
            ),
            ("missing-default-export", config.synthesize_default_export, synthesize_default_export),
        ]

    def repair(self, artifact: Artifact, outcome: ValidationOutcome | None = None) -> Artifact:
        """Repair ``artifact`` in place and return it."""
        repaired, _ = self.run(artifact, outcome)
        return repaired

    def run(self, artifact: Artifact, outcome: ValidationOutcome | None = None) -> tuple[Artifact, ValidationOutcome]:
        """Repair ``artifact`` in place; return it with the outcome that now describes it."""
        if outcome is None:
            outcome = self.validator.validate(artifact)

        rules = outcome.fixable_rules()
        content = artifact.content
        applied: list[str] = []
        for rule, enabled, fixer in self._fixers():
            if not enabled or rule not in rules:
                continue
            try:
                rewritten = fixer(content, artifact.path)
            except Exception as exc:
                logger.warning("Repair %s failed on %s: %s", rule, artifact.path, exc)
                continue
            if rewritten == content or not rewritten.strip():
                continue
            content = rewritten
            applied.append(rule)
            if rule == "embedded-artifacts":
                # The kept segment may need fixes the merged text did not.
                trimmed = artifact.model_copy(update={"content": content})
                rules = {issue.rule for issue in self.validator.issues_for(trimmed) if issue.fixable}

        final = outcome
        if applied:
            artifact.content = content
            artifact.dependencies = extract_dependencies(content)
            artifact.metadata.lines_of_code = len(content.splitlines())
            artifact.metadata.repairs.extend(rule for rule in applied if rule not in artifact.metadata.repairs)
            final = self.validator.validate(artifact)
            logger.info("Repaired %s with %s; score %.0f -> %.0f", artifact.path, ",".join(applied), outcome.score, final.score)

        artifact.metadata.validated = True
        artifact.metadata.score = final.score
        if not final.passed:
            artifact.metadata.degraded = True
            logger.warning("Artifact %s still fails integrity checks (score %.0f)", artifact.path, final.score)
        return artifact, final
