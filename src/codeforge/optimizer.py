"""Complexity measurement, quality scoring and rule-based rewrites for generated code."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from typing import Protocol

from codeforge.extractor import extract_dependencies
from codeforge.models import Artifact, OptimizationPatch, OptimizationResult, QualityReport
from codeforge.validator import is_code, mask_code

logger = logging.getLogger(__name__)

BRANCH_KEYWORD_RE = re.compile(r"\b(?:if|else|for|while|switch|case|catch)\b")
BRANCH_OPERATOR_RE = re.compile(r"&&|\|\||\?\?")
TOKEN_RE = re.compile(r"[A-Za-z_$][\w$]*|\d+(?:\.\d+)?|[^\s\w]")
ANY_RE = re.compile(r"(?::|\bas)[ \t]*any\b")
SECURITY_PATTERNS = (
    re.compile(r"\beval[ \t]*\("),
    re.compile(r"\bnew[ \t]+Function[ \t]*\("),
    re.compile(r"\.innerHTML[ \t]*="),
    re.compile(r"\bdangerouslySetInnerHTML\b"),
    re.compile(r"\bdocument\.write[ \t]*\("),
)
LONG_LINE = 120

NAMED_IMPORT_RE = re.compile(
    r"^import[ \t]+(?:(?P<default>[\w$]+)[ \t]*,[ \t]*)?\{(?P<names>[^}]*)\}[ \t]*from[ \t]*"
    r"(?P<source>'[^']+'|\"[^\"]+\")[ \t]*;?[ \t]*$",
    re.MULTILINE,
)
VAR_RE = re.compile(r"(?<![\w$.])var(?=[ \t]+[\w$\[{])")
LOOSE_EQUALITY_RE = re.compile(r"(?<![=!<>])(?:==|!=)(?!=)")


class QualityAnalyzer(Protocol):
    def analyze(self, code: str, language: str) -> QualityReport:
        """Score ``code`` from 0 to 100 and report the metrics behind the score."""


class CodeOptimizer(Protocol):
    def optimize(self, code: str, categories: Sequence[str]) -> OptimizationPatch:
        """Return rewritten code for the requested categories and a list of changes."""


def compute_complexity(code: str) -> int:
    """1 plus every branching keyword and short-circuit operator outside strings and comments."""
    masked = mask_code(code)
    return 1 + len(BRANCH_KEYWORD_RE.findall(masked)) + len(BRANCH_OPERATOR_RE.findall(masked))


def _clamp(value: float) -> float:
    return round(max(0.0, min(100.0, value)), 1)


class HeuristicQualityAnalyzer:
    """Offline quality scoring: maintainability index, security, readability and type coverage."""

    def analyze(self, code: str, language: str) -> QualityReport:
        masked = mask_code(code)
        lines = [line for line in code.splitlines() if line.strip()]
        loc = max(len(lines), 1)
        complexity = compute_complexity(code)

        tokens = TOKEN_RE.findall(masked)
        vocabulary = max(len(set(tokens)), 2)
        volume = max(len(tokens), 1) * math.log2(vocabulary)
        maintainability = _clamp(
            (171 - 5.2 * math.log(max(volume, 1.0)) - 0.23 * complexity - 16.2 * math.log(loc)) * 100 / 171
        )

        findings = sum(len(pattern.findall(masked)) for pattern in SECURITY_PATTERNS)
        security = _clamp(100 - 25 * findings)
        long_lines = sum(1 for line in lines if len(line) > LONG_LINE)
        readability = _clamp(100 * (1 - long_lines / loc))

        metrics = {
            "maintainability": maintainability,
            "security": security,
            "readability": readability,
            "complexity": float(complexity),
            "lines_of_code": float(loc),
        }
        scored = [maintainability, security, readability]
        if language == "typescript":
            type_coverage = _clamp(100 - 10 * len(ANY_RE.findall(masked)))
            metrics["type_coverage"] = type_coverage
            scored.append(type_coverage)
        return QualityReport(score=_clamp(sum(scored) / len(scored)), metrics=metrics)


def drop_unused_imports(code: str) -> tuple[str, list[str]]:
    masked = mask_code(code, interpolations=True)
    edits: list[tuple[int, int, str]] = []
    removed: list[str] = []
    for match in NAMED_IMPORT_RE.finditer(mask_code(code, strings=False)):
        rest = masked[: match.start()] + masked[match.end() :]
        specifiers = [item.strip() for item in match.group("names").split(",") if item.strip()]
        kept = []
        for specifier in specifiers:
            local = specifier.split(" as ")[-1].strip()
            if local.startswith("type "):
                local = local[5:].strip()
            if re.search(rf"(?<![\w$.]){re.escape(local)}(?![\w$])", rest):
                kept.append(specifier)
            else:
                removed.append(local)
        if len(kept) == len(specifiers):
            continue

        default = match.group("default")
        source = match.group("source")
        if kept:
            prefix = f"{default}, " if default else ""
            replacement = f"import {prefix}{{ {', '.join(kept)} }} from {source};"
        elif default:
            replacement = f"import {default} from {source};"
        else:
            end = match.end() + 1 if code[match.end() : match.end() + 1] == "\n" else match.end()
            edits.append((match.start(), end, ""))
            continue
        edits.append((match.start(), match.end(), replacement))

    for start, end, replacement in sorted(edits, reverse=True):
        code = code[:start] + replacement + code[end:]
    changes = [f"removed unused import(s): {', '.join(removed)}"] if removed else []
    return code, changes


def prefer_block_scope(code: str) -> tuple[str, list[str]]:
    masked = mask_code(code)
    positions = [match.start() for match in VAR_RE.finditer(masked)]
    for start in reversed(positions):
        code = code[:start] + "let" + code[start + 3 :]
    return code, [f"replaced {len(positions)} var declaration(s) with let"] if positions else []


def prefer_strict_equality(code: str) -> tuple[str, list[str]]:
    """Turn ``==``/``!=`` into ``===``/``!==`` except for the ``== null`` idiom."""
    masked = mask_code(code)
    positions = []
    for match in LOOSE_EQUALITY_RE.finditer(masked):
        if masked[match.end() :].lstrip().startswith("null") or masked[: match.start()].rstrip().endswith("null"):
            continue
        positions.append(match.end())
    for end in reversed(positions):
        code = code[:end] + "=" + code[end:]
    return code, [f"tightened {len(positions)} loose equality check(s)"] if positions else []


class RuleBasedOptimizer:
    """Applies text-level rewrites grouped by optimization category."""

    RULES = {
        "performance": (drop_unused_imports,),
        "best-practice": (prefer_block_scope, prefer_strict_equality),
    }

    def optimize(self, code: str, categories: Sequence[str]) -> OptimizationPatch:
        changes: list[str] = []
        for category in categories:
            for rule in self.RULES.get(category, ()):
                code, applied = rule(code)
                changes.extend(applied)
        return OptimizationPatch(code=code, changes=changes)


class Optimizer:
    """Measures and improves an artifact; collaborator failures leave the content untouched."""

    def __init__(
        self,
        quality_analyzer: QualityAnalyzer | None = None,
        code_optimizer: CodeOptimizer | None = None,
        categories: Sequence[str] = ("performance", "best-practice"),
    ):
        self.quality_analyzer = quality_analyzer or HeuristicQualityAnalyzer()
        self.code_optimizer = code_optimizer or RuleBasedOptimizer()
        self.categories = tuple(categories)

    def optimize(self, artifact: Artifact) -> OptimizationResult:
        if not is_code(artifact):
            return OptimizationResult(ok=True, artifact=artifact)

        original = artifact.content
        try:
            complexity = compute_complexity(original)
            report = self.quality_analyzer.analyze(original, artifact.language)
            patch = self.code_optimizer.optimize(original, self.categories) if self.categories else None
        except Exception as exc:
            logger.warning("Optimization of %s failed, keeping original content: %s", artifact.path, exc)
            artifact.metadata.optimized = False
            return OptimizationResult(ok=False, artifact=artifact, error=str(exc))

        artifact.metadata.complexity = complexity
        artifact.metadata.quality_score = report.score
        artifact.metadata.quality_metrics = dict(report.metrics)
        applied: list[str] = []
        if patch is not None and patch.code.strip() and patch.code != original:
            artifact.content = patch.code
            artifact.dependencies = extract_dependencies(patch.code)
            artifact.metadata.lines_of_code = len(patch.code.splitlines())
            applied = list(patch.changes)
        artifact.metadata.optimizations = list(self.categories)
        artifact.metadata.optimized = True
        logger.debug("Optimized %s: quality=%.1f complexity=%d changes=%d", artifact.path, report.score, complexity, len(applied))
        return OptimizationResult(ok=True, artifact=artifact, applied=applied, quality_score=report.score)
