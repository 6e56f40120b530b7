"""Compiler-integrity rules applied to generated artifacts before they are trusted.

All checks are text heuristics over TypeScript/JavaScript source. String
literals and comments are masked to blanks of the same length first, so
offsets found in the masked text are valid in the original content.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import PurePosixPath

from codeforge.config import DEFAULT_SANDBOX_PACKAGES
from codeforge.extractor import IMPORT_SOURCE_RE, NAMED_SYMBOL_RE
from codeforge.models import Artifact, Severity, ValidationIssue, ValidationOutcome

logger = logging.getLogger(__name__)

CODE_LANGUAGES = {"typescript", "javascript"}
COMPONENT_SUFFIXES = {".tsx", ".jsx"}
JSX_SUFFIXES = {".tsx", ".jsx", ".js"}
BRACKET_PAIRS: dict[str, tuple[tuple[str, str], ...]] = {
    "css": (("{", "}"), ("(", ")")),
    "scss": (("{", "}"), ("(", ")")),
    "json": (("{", "}"), ("[", "]")),
    "prisma": (("{", "}"),),
}
CODE_PAIRS = (("{", "}"), ("(", ")"), ("[", "]"))

RUNTIME_GENERIC_HOOKS = (
    "useState",
    "useReducer",
    "useRef",
    "useMemo",
    "useCallback",
    "useContext",
    "createContext",
)

KNOWN_GLOBALS = {
    "AbortController",
    "Array",
    "ArrayBuffer",
    "Awaited",
    "Audio",
    "Blob",
    "Boolean",
    "CustomEvent",
    "Date",
    "Error",
    "Event",
    "EventTarget",
    "Exclude",
    "Extract",
    "File",
    "FileReader",
    "FormData",
    "Function",
    "Headers",
    "Image",
    "IntersectionObserver",
    "Intl",
    "JSON",
    "Map",
    "Math",
    "MutationObserver",
    "NonNullable",
    "Number",
    "Object",
    "Omit",
    "Parameters",
    "Partial",
    "Pick",
    "Promise",
    "Proxy",
    "RangeError",
    "Readonly",
    "Record",
    "RegExp",
    "Request",
    "ResizeObserver",
    "Required",
    "Response",
    "ReturnType",
    "Set",
    "String",
    "Symbol",
    "SyntaxError",
    "TextDecoder",
    "TextEncoder",
    "TypeError",
    "Uint8Array",
    "URL",
    "URLSearchParams",
    "WeakMap",
    "WeakSet",
    "WebSocket",
    "Worker",
}

MASK_RE = re.compile(
    r"""(?P<string>'(?:\\.|[^'\\\n])*'|"(?:\\.|[^"\\\n])*"|`(?:\\.|[^`\\])*`)"""
    r"|(?P<comment>//[^\n]*|/\*.*?\*/)",
    re.DOTALL,
)

IMPORT_BINDINGS_RE = re.compile(
    r"^[ \t]*import[ \t]+(?:type[ \t]+)?(?P<clause>[^'\";]*?)[ \t]*from\b",
    re.MULTILINE | re.DOTALL,
)
DECLARED_NAME_RE = re.compile(r"\b(?:function|class|const|let|var|interface|type|enum)[ \t]+([A-Za-z_$][\w$]*)")
DESTRUCTURED_RE = re.compile(r"\b(?:const|let|var)[ \t]*[{\[]([^}\]=]*)[}\]]")
RENAMED_BINDING_RE = re.compile(r"\b\w+[ \t]*:[ \t]*([A-Z]\w*)\b(?=[ \t]*[,}=])")
JSX_TAG_RE = re.compile(r"<([A-Z]\w*)(?=[\s/>.])")
EXTENDS_RE = re.compile(r"\b(?:extends|new)[ \t]+([A-Z]\w*)")
IMPLEMENTS_RE = re.compile(r"\bimplements[ \t]+([A-Z]\w*(?:[ \t]*,[ \t]*[A-Z]\w*)*)")

TOP_LEVEL_DECL_RE = re.compile(
    r"^(?P<export>export[ \t]+(?:default[ \t]+)?)?(?:declare[ \t]+)?(?:async[ \t]+)?"
    r"(?:function|class|const|let|interface|type|enum)[ \t]+(?P<name>[A-Z]\w*)",
    re.MULTILINE,
)
EXPORT_LIST_RE = re.compile(r"\bexport[ \t]*\{([^}]*)\}")
DEFAULT_EXPORT_RE = re.compile(r"\bexport[ \t]+default\b|\bas[ \t]+default\b")
COMPONENT_DECL_RE = re.compile(
    r"^(?:export[ \t]+)?(?:default[ \t]+)?(?:function|class|const)[ \t]+(?P<name>[A-Z]\w*)",
    re.MULTILINE,
)

RUNTIME_GENERIC_RE = re.compile(r"\b(?:" + "|".join(RUNTIME_GENERIC_HOOKS) + r")[ \t]*<")
DIAGNOSTIC_RE = re.compile(r"\bconsole[ \t]*\.[ \t]*(?:log|debug|info|trace)[ \t]*\(")
NETWORK_CALL_RE = re.compile(
    r"\b(?:fetch|axios(?:[ \t]*\.[ \t]*(?:get|post|put|patch|delete|head|options|request))?)[ \t]*\([ \t\n]*`"
)

EMBEDDED_MARKER_RE = re.compile(
    r"^[ \t]*(?://+|/\*+|<!--)[ \t]*(?:file(?:name)?[ \t]*:[ \t]*)?"
    r"(?P<path>[\w@.\-]+(?:/[\w@.\-\[\]]+)*\.(?:tsx?|jsx?|css|scss|json|md|prisma))"
    r"[ \t]*(?:\*/|-->)?[ \t]*$",
    re.MULTILINE | re.IGNORECASE,
)
FENCE_IN_CONTENT_RE = re.compile(r"^[ \t]*```", re.MULTILINE)
CODE_START_RE = re.compile(r"^(?:export|const|let|var|function|class|interface|type[ \t]|enum|async|declare)\b")
REEXPORT_RE = re.compile(r"^export[ \t]+(?:\*|\{[^}]*\}|type[ \t]+\{[^}]*\})[ \t]*from\b")
TOP_LEVEL_IMPORT_RE = re.compile(r"^import(?:[ \t]|\{)")


def mask_code(text: str, *, strings: bool = True, interpolations: bool = False) -> str:
    """Blank out comments (and string literal bodies) keeping offsets and newlines.

    With ``interpolations=True`` the ``${...}`` bodies of template literals stay
    visible (themselves masked) so usage scans see the code they hold.
    """
    if strings and interpolations:
        return _mask_keeping_interpolations(text)

    def _blank(match: re.Match[str]) -> str:
        value = match.group(0)
        if match.group("string") is not None:
            if not strings:
                return value
            return value[0] + re.sub(r"[^\n]", " ", value[1:-1]) + value[-1]
        return re.sub(r"[^\n]", " ", value)

    return MASK_RE.sub(_blank, text)


def _mask_keeping_interpolations(text: str) -> str:
    chars = list(text)
    size = len(text)

    def _blank(start: int, end: int) -> None:
        for index in range(start, min(end, size)):
            if chars[index] != "\n":
                chars[index] = " "

    # Each frame is a template literal (None) or a code region with its open-brace depth.
    frames: list[int | None] = [0]
    index = 0
    while index < size:
        char = text[index]
        if frames[-1] is None:
            if char == "\\":
                _blank(index, index + 2)
                index += 2
            elif char == "`":
                frames.pop()
                index += 1
            elif text.startswith("${", index):
                frames.append(0)
                index += 2
            else:
                _blank(index, index + 1)
                index += 1
            continue

        if text.startswith("//", index):
            end = text.find("\n", index)
            end = size if end == -1 else end
            _blank(index, end)
            index = end
        elif text.startswith("/*", index):
            end = text.find("*/", index + 2)
            end = size if end == -1 else end + 2
            _blank(index, end)
            index = end
        elif char in "'\"":
            end = index + 1
            while end < size and text[end] not in (char, "\n"):
                end += 2 if text[end] == "\\" else 1
            if end < size and text[end] == char:
                _blank(index + 1, end)
                index = end + 1
            else:
                # An unterminated quote (JSX text like "Don't") is plain text.
                index += 1
        elif char == "`":
            frames.append(None)
            index += 1
        elif char == "}" and len(frames) > 1 and frames[-1] == 0:
            frames.pop()
            index += 1
        else:
            if char == "{":
                frames[-1] += 1
            elif char == "}" and frames[-1]:
                frames[-1] -= 1
            index += 1
    return "".join(chars)


def find_closing(text: str, start: int, opener: str, closer: str) -> int:
    """Return the index of the delimiter closing ``text[start]``, or ``-1``."""
    depth = 0
    for index in range(start, len(text)):
        char = text[index]
        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return index
    return -1


def declared_names(masked: str) -> set[str]:
    names: set[str] = set()
    for match in IMPORT_BINDINGS_RE.finditer(masked):
        clause = match.group("clause")
        for token in re.split(r"[,{}\s]+", clause.replace("* as", " ")):
            if token and token not in {"type", "as"}:
                names.add(token)
    names.update(DECLARED_NAME_RE.findall(masked))
    for group in DESTRUCTURED_RE.findall(masked):
        for token in re.split(r"[,\s:]+", group):
            if token and token != "...":
                names.add(token.lstrip("."))
    names.update(RENAMED_BINDING_RE.findall(masked))
    return names


def is_code(artifact: Artifact) -> bool:
    return artifact.language in CODE_LANGUAGES or PurePosixPath(artifact.path).suffix.lower() in {
        ".ts",
        ".tsx",
        ".js",
        ".jsx",
        ".mjs",
        ".cjs",
    }


def has_default_export(masked: str) -> bool:
    return DEFAULT_EXPORT_RE.search(masked) is not None


def embedded_split_points(content: str) -> list[int]:
    """Line indexes where a second, unmarked file appears to start inside ``content``."""
    masked = mask_code(content)
    lines = content.splitlines()
    masked_lines = masked.splitlines()
    points: list[int] = []
    code_started = False
    for index, line in enumerate(lines):
        if not line.strip():
            continue
        if code_started and (EMBEDDED_MARKER_RE.match(line) or FENCE_IN_CONTENT_RE.match(line)):
            points.append(index)
            code_started = False
            continue
        masked_line = masked_lines[index] if index < len(masked_lines) else line
        if code_started and TOP_LEVEL_IMPORT_RE.match(masked_line):
            points.append(index)
            code_started = False
            continue
        if CODE_START_RE.match(masked_line) and not REEXPORT_RE.match(masked_line):
            code_started = True
    return points


class Validator:
    """Scores an artifact against the integrity rules; never raises on bad input."""

    def __init__(
        self,
        pass_threshold: float = 70.0,
        sandbox_packages: Iterable[str] = DEFAULT_SANDBOX_PACKAGES,
    ):
        self.pass_threshold = pass_threshold
        self.sandbox_packages = set(sandbox_packages)

    def validate(self, artifact: Artifact) -> ValidationOutcome:
        content = getattr(artifact, "content", None)
        if not isinstance(content, str) or not content.strip() or "\x00" in content:
            logger.warning("Artifact %s is unparseable", getattr(artifact, "path", "<unknown>"))
            return ValidationOutcome(
                passed=False,
                score=0.0,
                issues=[
                    ValidationIssue(
                        severity=Severity.ERROR,
                        message="Content is empty, binary or not text.",
                        rule="unparseable",
                    )
                ],
            )

        issues = self.issues_for(artifact)
        errors = sum(1 for issue in issues if issue.severity == Severity.ERROR)
        warnings = sum(1 for issue in issues if issue.severity == Severity.WARNING)
        score = max(0.0, 100.0 - 10.0 * errors - 2.0 * warnings)
        unresolved = any(issue.rule == "unresolved-symbol" for issue in issues)
        outcome = ValidationOutcome(
            passed=score >= self.pass_threshold and not unresolved,
            score=score,
            issues=issues,
        )
        logger.debug(
            "Validated %s: score=%.0f errors=%d warnings=%d passed=%s",
            artifact.path,
            score,
            errors,
            warnings,
            outcome.passed,
        )
        return outcome

    def issues_for(self, artifact: Artifact) -> list[ValidationIssue]:
        """Run every rule that applies to the artifact's kind and collect the findings."""
        content = artifact.content
        suffix = PurePosixPath(artifact.path).suffix.lower()
        if not is_code(artifact):
            pairs = BRACKET_PAIRS.get(artifact.language) or BRACKET_PAIRS.get(suffix.lstrip("."))
            if not pairs:
                return []
            return self._check_brackets(mask_code(content), pairs)

        masked = mask_code(content)
        issues = self._check_brackets(masked, CODE_PAIRS)
        issues.extend(self._check_symbols(mask_code(content, interpolations=True), jsx=suffix in JSX_SUFFIXES))
        issues.extend(self._check_exports(masked, suffix))
        issues.extend(self._check_runtime_generics(masked))
        issues.extend(self._check_diagnostics(masked))
        issues.extend(self._check_interpolation(content, masked))
        if suffix in COMPONENT_SUFFIXES:
            issues.extend(self._check_sandbox_imports(content))
        issues.extend(self._check_embedded(content))
        return issues

    @staticmethod
    def _check_brackets(text: str, pairs: Iterable[tuple[str, str]]) -> list[ValidationIssue]:
        issues = []
        for opener, closer in pairs:
            opened = text.count(opener)
            closed = text.count(closer)
            if opened != closed:
                issues.append(
                    ValidationIssue(
                        severity=Severity.ERROR,
                        message=f"Unbalanced '{opener}{closer}': {opened} opened, {closed} closed.",
                        rule="unclosed-block",
                    )
                )
        return issues

    @staticmethod
    def _check_symbols(masked: str, *, jsx: bool) -> list[ValidationIssue]:
        known = declared_names(masked) | KNOWN_GLOBALS
        referenced: list[str] = []
        if jsx:
            for match in JSX_TAG_RE.finditer(masked):
                before = masked[: match.start()].rstrip()[-1:]
                if before and (before.isalnum() or before in "_$)]"):
                    continue
                referenced.append(match.group(1))
        referenced.extend(EXTENDS_RE.findall(masked))
        for group in IMPLEMENTS_RE.findall(masked):
            referenced.extend(name.strip() for name in group.split(","))

        missing = [name for name in dict.fromkeys(referenced) if name not in known]
        return [
            ValidationIssue(
                severity=Severity.ERROR,
                message=f"'{name}' is used but never declared or imported.",
                rule="unresolved-symbol",
            )
            for name in missing
        ]

    @staticmethod
    def _check_exports(masked: str, suffix: str) -> list[ValidationIssue]:
        issues = []
        listed: set[str] = set()
        for group in EXPORT_LIST_RE.findall(masked):
            for item in group.split(","):
                listed.add(item.strip().split(" ")[0])
        default_names = set(re.findall(r"\bexport[ \t]+default[ \t]+([A-Z]\w*)", masked))

        for match in TOP_LEVEL_DECL_RE.finditer(masked):
            name = match.group("name")
            if match.group("export") or name in listed or name in default_names or name.upper() == name:
                continue
            issues.append(
                ValidationIssue(
                    severity=Severity.WARNING,
                    message=f"Top-level declaration '{name}' is not exported.",
                    rule="export-convention",
                )
            )

        if suffix in COMPONENT_SUFFIXES and not has_default_export(masked) and COMPONENT_DECL_RE.search(masked):
            issues.append(
                ValidationIssue(
                    severity=Severity.WARNING,
                    message="Component file has no default export.",
                    rule="missing-default-export",
                    fixable=True,
                )
            )
        return issues

    @staticmethod
    def _check_runtime_generics(masked: str) -> list[ValidationIssue]:
        count = len(RUNTIME_GENERIC_RE.findall(masked))
        if not count:
            return []
        return [
            ValidationIssue(
                severity=Severity.ERROR,
                message=f"{count} hook call(s) pass generic type arguments.",
                rule="runtime-generic",
                fixable=True,
            )
        ]

    @staticmethod
    def _check_diagnostics(masked: str) -> list[ValidationIssue]:
        count = len(DIAGNOSTIC_RE.findall(masked))
        if not count:
            return []
        return [
            ValidationIssue(
                severity=Severity.WARNING,
                message=f"{count} console diagnostic statement(s) left in the output.",
                rule="diagnostic-statement",
                fixable=True,
            )
        ]

    @staticmethod
    def _check_interpolation(content: str, masked: str) -> list[ValidationIssue]:
        count = 0
        for match in NETWORK_CALL_RE.finditer(masked):
            literal_start = match.end() - 1
            literal_end = content.find("`", literal_start + 1)
            if literal_end != -1 and "${" in content[literal_start:literal_end]:
                count += 1
        if not count:
            return []
        return [
            ValidationIssue(
                severity=Severity.WARNING,
                message=f"{count} network call(s) build their URL with template interpolation.",
                rule="unsafe-interpolation",
                fixable=True,
            )
        ]

    def _check_sandbox_imports(self, content: str) -> list[ValidationIssue]:
        without_comments = mask_code(content, strings=False)
        unsupported: list[str] = []
        for match in IMPORT_SOURCE_RE.finditer(without_comments):
            statement = match.group(0).strip()
            if statement.startswith("import type"):
                continue
            source = match.group(1) or match.group(2) or ""
            if source.startswith("."):
                unsupported.append(source)
                continue
            parts = source.split("/")
            package = "/".join(parts[:2]) if source.startswith("@") else parts[0]
            if package not in self.sandbox_packages:
                unsupported.append(source)
        if not unsupported:
            return []
        return [
            ValidationIssue(
                severity=Severity.INFO,
                message=f"Imports unavailable in the preview sandbox: {', '.join(dict.fromkeys(unsupported))}.",
                rule="sandbox-import",
                fixable=True,
            )
        ]

    @staticmethod
    def _check_embedded(content: str) -> list[ValidationIssue]:
        points = embedded_split_points(content)
        masked = mask_code(content)
        defaults = len(re.findall(r"\bexport[ \t]+default\b", masked))
        if not points and defaults < 2:
            return []
        return [
            ValidationIssue(
                severity=Severity.WARNING,
                message=f"Content looks like {max(len(points) + 1, defaults)} files merged into one.",
                rule="embedded-artifacts",
                fixable=True,
            )
        ]


def primary_symbol(content: str, path: str) -> str | None:
    """Pick the symbol a default export should name: the file stem if declared, else the first component."""
    masked = mask_code(content)
    names = [match.group("name") for match in COMPONENT_DECL_RE.finditer(masked)]
    if not names:
        names = NAMED_SYMBOL_RE.findall(masked)
    if not names:
        return None
    stem = PurePosixPath(path).name.split(".")[0]
    return stem if stem in names else names[0]
