"""Split a raw model response into named file artifacts.

The extractor tries an ordered list of pure strategy functions and stops at
the first one that produces at least one viable file. The file-boundary marker
grammar requested by :mod:`codeforge.prompting` is defined here so the two
sides of that contract live together.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import PurePosixPath

from codeforge.models import Artifact, ArtifactMetadata, ExtractionResult, ScopeDecision, ScopeType

logger = logging.getLogger(__name__)

FILE_MARKER_EXAMPLE = "```tsx:src/components/Card.tsx"

FENCE_OPEN_RE = re.compile(r"^[ \t]*(`{3,}|~{3,})[ \t]*([^`\n]*?)[ \t]*$")
FENCE_LINE_RE = re.compile(r"^[ \t]*(?:`{3,}|~{3,})[^\n]*$", re.MULTILINE)

PATH_TOKEN = r"[\w@.\-]+(?:/[\w@.\-\[\]]+)*\.[A-Za-z][A-Za-z0-9]{0,9}"
PATH_TOKEN_RE = re.compile(rf"^{PATH_TOKEN}$")
PATH_COMMENT_RE = re.compile(
    r"^[ \t]*(?://+|#{1,6}|--|/\*+|<!--)?[ \t]*(?:\*\*)?[ \t]*"
    r"(?:(?:file(?:name)?|path)[ \t]*:?[ \t]*)?"
    rf"`?(?P<path>{PATH_TOKEN})`?"
    r"[ \t]*:?[ \t]*(?:\*\*)?[ \t]*(?:\*/|-->)?[ \t]*$",
    re.IGNORECASE,
)
DECLARATION_RE = re.compile(
    r"^(?:export[ \t]+(?:default[ \t]+)?(?:async[ \t]+)?(?:function|class)[ \t]+(?P<fn>[A-Z]\w*)"
    r"|(?:export[ \t]+)?const[ \t]+(?P<fc>[A-Z]\w*)[ \t]*:[ \t]*React\.FC)",
    re.MULTILINE,
)
NAMED_SYMBOL_RE = re.compile(
    r"^(?:export[ \t]+)?(?:default[ \t]+)?(?:async[ \t]+)?"
    r"(?:function|class|const|interface|type|enum)[ \t]+([A-Z]\w*)",
    re.MULTILINE,
)
IMPORT_SOURCE_RE = re.compile(
    r"""(?:^|\n)[ \t]*(?:import[^'"\n;]*?from[ \t]*|import[ \t]+|export[^'"\n;]*?from[ \t]*)['"]([^'"]+)['"]"""
    r"""|\brequire\(\s*['"]([^'"]+)['"]\s*\)"""
)

EXTENSION_LANGUAGE = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".css": "css",
    ".scss": "scss",
    ".json": "json",
    ".md": "markdown",
    ".html": "html",
    ".prisma": "prisma",
    ".sql": "sql",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".env": "dotenv",
}
LANGUAGE_EXTENSION = {
    "tsx": ".tsx",
    "typescript": ".tsx",
    "ts": ".ts",
    "jsx": ".jsx",
    "javascript": ".jsx",
    "js": ".js",
    "css": ".css",
    "scss": ".scss",
    "json": ".json",
    "markdown": ".md",
    "md": ".md",
    "html": ".html",
    "prisma": ".prisma",
    "sql": ".sql",
}
FENCE_LANGUAGE = {
    ".ts": "ts",
    ".tsx": "tsx",
    ".js": "js",
    ".jsx": "jsx",
    ".md": "markdown",
}

ROOT_FILES = {
    "package.json",
    "tsconfig.json",
    "README.md",
    ".env.example",
    "vite.config.ts",
    "tailwind.config.js",
    "tailwind.config.ts",
    "postcss.config.js",
    "index.html",
    "docker-compose.yml",
}

SCOPE_ROOTS: dict[ScopeType, tuple[str, ...]] = {
    ScopeType.SINGLE_COMPONENT: ("src/",),
    ScopeType.PAGE: ("src/",),
    ScopeType.FEATURE: ("src/",),
    ScopeType.LANDING_PAGE: ("src/",),
    ScopeType.BACKEND: ("src/", "prisma/"),
    ScopeType.FULLSTACK: ("frontend/", "backend/", "src/", "prisma/"),
}

NODE_BUILTINS = {"fs", "path", "os", "http", "https", "crypto", "url", "util", "events", "stream", "child_process"}


@dataclass
class RawFile:
    """A candidate file produced by one extraction strategy."""

    path: str
    content: str
    language: str | None = None


@dataclass
class FencedBlock:
    info: str
    body: str
    closed: bool


Strategy = Callable[[str, ScopeDecision], "list[RawFile] | None"]


def format_file_block(path: str, content: str, language: str | None = None) -> str:
    """Render one file in the marker convention the extractor reads first."""
    tag = language or FENCE_LANGUAGE.get(PurePosixPath(path).suffix, PurePosixPath(path).suffix.lstrip(".") or "text")
    return f"```{tag}:{path}\n{content.rstrip()}\n```"


def parse_fenced_blocks(text: str) -> list[FencedBlock]:
    """Return fenced blocks in order; an unterminated last block runs to the end."""
    blocks: list[FencedBlock] = []
    fence: str | None = None
    info = ""
    body: list[str] = []
    for line in text.splitlines():
        if fence is None:
            opened = FENCE_OPEN_RE.match(line)
            if opened:
                fence, info, body = opened.group(1), opened.group(2), []
            continue
        stripped = line.strip()
        if stripped and stripped[0] == fence[0] and set(stripped) == {fence[0]} and len(stripped) >= len(fence):
            blocks.append(FencedBlock(info=info, body="\n".join(body), closed=True))
            fence = None
            continue
        body.append(line)
    if fence is not None:
        blocks.append(FencedBlock(info=info, body="\n".join(body), closed=False))
    return blocks


def strip_fence_lines(text: str) -> str:
    return FENCE_LINE_RE.sub("", text).strip()


def parse_info_string(info: str) -> tuple[str | None, str | None]:
    """Split a fence info string into ``(language, path)``.

    Accepted shapes: ``tsx:src/App.tsx``, ``tsx src/App.tsx``,
    ``tsx path=src/App.tsx``, ``tsx title="src/App.tsx"`` and a bare path.
    """
    info = info.strip()
    if not info:
        return None, None

    keyed = re.search(r"""(?:path|file|title)\s*=\s*["']?([^"'\s]+)["']?""", info, re.IGNORECASE)
    if keyed:
        language = info.split()[0] if not info.split()[0].lower().startswith(("path", "file", "title")) else None
        return language, keyed.group(1)

    for separator in (":", " "):
        if separator in info:
            head, _, tail = info.partition(separator)
            tail = tail.strip()
            if PATH_TOKEN_RE.match(tail):
                return head.strip() or None, tail

    if PATH_TOKEN_RE.match(info) and ("/" in info or info in ROOT_FILES):
        return None, info
    return info.split()[0], None


def first_line_path(body: str) -> tuple[str | None, str]:
    """Return a path announced by the first non-blank line of ``body`` and the rest."""
    lines = body.splitlines()
    for index, line in enumerate(lines):
        if not line.strip():
            continue
        match = PATH_COMMENT_RE.match(line)
        if match and _looks_like_file_path(match.group("path")):
            return match.group("path"), "\n".join(lines[index + 1 :])
        break
    return None, body


def _looks_like_file_path(candidate: str) -> bool:
    return "/" in candidate or candidate in ROOT_FILES or PurePosixPath(candidate).suffix in EXTENSION_LANGUAGE


def declaration_names(code: str) -> list[str]:
    return [match.group("fn") or match.group("fc") for match in DECLARATION_RE.finditer(code)]


def default_path(scope: ScopeDecision, index: int = 0, language: str | None = None) -> str:
    """Synthesize a path for content that carries no usable marker."""
    suffix = "" if index == 0 else str(index + 1)
    if scope.type == ScopeType.BACKEND:
        return f"src/server{suffix}.ts"
    extension = LANGUAGE_EXTENSION.get((language or "").lower(), ".tsx")
    if extension == ".css":
        return f"src/styles/{scope.entity}{suffix}.css"
    return f"src/{scope.entity}{suffix}{extension}"


def infer_path(body: str, scope: ScopeDecision, index: int, language: str | None) -> str:
    names = declaration_names(body)
    if names:
        extension = ".ts" if scope.type == ScopeType.BACKEND else ".tsx"
        directory = "src" if scope.type == ScopeType.BACKEND else "src/components"
        return f"{directory}/{names[0]}{extension}"

    symbols = NAMED_SYMBOL_RE.findall(body)
    if symbols and re.search(r"^(?:export[ \t]+)?(?:interface|type)[ \t]", body, re.MULTILINE) and not re.search(
        r"\bfunction\b|=>", body
    ):
        return f"src/types/{symbols[0]}.types.ts"
    return default_path(scope, index, language)


# ---------------------------------------------------------------------------
# Strategies, in the order they are tried.
# ---------------------------------------------------------------------------


def fenced_path_marker(text: str, scope: ScopeDecision) -> list[RawFile] | None:
    files = []
    for block in parse_fenced_blocks(text):
        language, path = parse_info_string(block.info)
        if path:
            files.append(RawFile(path=path, content=block.body.strip(), language=language))
    return files or None


def path_comment_marker(text: str, scope: ScopeDecision) -> list[RawFile] | None:
    lines = text.splitlines()
    markers: list[tuple[int, str]] = []
    for index, line in enumerate(lines):
        match = PATH_COMMENT_RE.match(line)
        if match and _looks_like_file_path(match.group("path")) and not FENCE_OPEN_RE.match(line):
            markers.append((index, match.group("path")))
    if not markers:
        return None

    files = []
    for position, (line_index, path) in enumerate(markers):
        end = markers[position + 1][0] if position + 1 < len(markers) else len(lines)
        section = "\n".join(lines[line_index + 1 : end])
        files.append(RawFile(path=path, content=_section_body(section)))
    return files


def _section_body(section: str) -> str:
    lines = section.splitlines()
    first = next((line for line in lines if line.strip()), "")
    if FENCE_OPEN_RE.match(first):
        blocks = parse_fenced_blocks(section)
        return blocks[0].body.strip() if blocks else ""
    # The marker sat inside a fence: the section ends at the closing delimiter.
    kept: list[str] = []
    for line in lines:
        if FENCE_LINE_RE.match(line):
            break
        kept.append(line)
    return "\n".join(kept).strip()


def fenced_inferred(text: str, scope: ScopeDecision) -> list[RawFile] | None:
    blocks = [block for block in parse_fenced_blocks(text) if block.body.strip()]
    if not blocks:
        return None
    if len(blocks) == 1 and len(declaration_names(blocks[0].body)) > 1:
        return None

    files = []
    for index, block in enumerate(blocks):
        language, _ = parse_info_string(block.info)
        path, body = first_line_path(block.body)
        files.append(
            RawFile(
                path=path or infer_path(body, scope, index, language),
                content=body.strip(),
                language=language,
            )
        )
    return files


def declaration_split(text: str, scope: ScopeDecision) -> list[RawFile] | None:
    blocks = [block for block in parse_fenced_blocks(text) if block.body.strip()]
    if len(blocks) != 1:
        return None
    body = blocks[0].body
    matches = list(DECLARATION_RE.finditer(body))
    if len(matches) < 2:
        return None

    extension = ".ts" if scope.type == ScopeType.BACKEND else ".tsx"
    directory = "src" if scope.type == ScopeType.BACKEND else "src/components"
    files = []
    for position, match in enumerate(matches):
        start = 0 if position == 0 else match.start()
        end = matches[position + 1].start() if position + 1 < len(matches) else len(body)
        name = match.group("fn") or match.group("fc")
        files.append(RawFile(path=f"{directory}/{name}{extension}", content=body[start:end].strip()))
    return files


def whole_response(text: str, scope: ScopeDecision) -> list[RawFile] | None:
    content = text.strip()
    if FENCE_LINE_RE.search(content):
        content = strip_fence_lines(content)
    if not content:
        return None
    return [RawFile(path=default_path(scope), content=content)]


STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("fenced_path_marker", fenced_path_marker),
    ("path_comment_marker", path_comment_marker),
    ("fenced_inferred", fenced_inferred),
    ("declaration_split", declaration_split),
)
TERMINAL_STRATEGY: tuple[str, Strategy] = ("whole_response", whole_response)


# ---------------------------------------------------------------------------
# Path and artifact helpers.
# ---------------------------------------------------------------------------


def normalize_path(path: str, scope: ScopeDecision) -> str:
    """Clean a marker path and inject the scope's root when it is missing."""
    cleaned = path.strip().strip("`'\"").replace("\\", "/")
    # Relative segments never survive, so every path stays inside the bundle.
    cleaned = "/".join(part for part in cleaned.split("/") if part not in ("", ".", ".."))
    if not cleaned:
        return default_path(scope)
    if cleaned in ROOT_FILES:
        return cleaned
    roots = SCOPE_ROOTS.get(scope.type, ("src/",))
    if cleaned.startswith(roots):
        return cleaned
    return roots[0] + cleaned


def language_for(path: str, hint: str | None = None) -> str:
    suffix = PurePosixPath(path).suffix.lower()
    if suffix in EXTENSION_LANGUAGE:
        return EXTENSION_LANGUAGE[suffix]
    if hint:
        return {"ts": "typescript", "tsx": "typescript", "js": "javascript", "jsx": "javascript"}.get(
            hint.lower(), hint.lower()
        )
    return "text"


def artifact_type_for(path: str) -> str:
    lowered = path.lower()
    suffix = PurePosixPath(lowered).suffix
    if ".test." in lowered or ".spec." in lowered or "__tests__/" in lowered:
        return "test"
    if ".types." in lowered or "/types/" in lowered:
        return "types"
    if suffix in {".css", ".scss"}:
        return "style"
    if suffix == ".md":
        return "doc"
    if suffix == ".prisma" or "/models/" in lowered:
        return "model"
    if suffix in {".json", ".yml", ".yaml", ".env"} or "/config/" in lowered:
        return "config"
    if "/pages/" in lowered:
        return "page"
    if "/routes/" in lowered or "/controllers/" in lowered:
        return "api"
    if "/services/" in lowered or "/middleware/" in lowered:
        return "service"
    return "component"


def artifact_name_for(path: str) -> str:
    name = PurePosixPath(path).name
    return name.rsplit(".", 1)[0] if "." in name.strip(".") else name


def extract_dependencies(code: str) -> list[str]:
    """Return external package names imported by ``code``, local references excluded."""
    packages: list[str] = []
    for match in IMPORT_SOURCE_RE.finditer(code):
        source = match.group(1) or match.group(2) or ""
        if not source or source.startswith((".", "/", "@/", "~/", "node:")):
            continue
        parts = source.split("/")
        package = "/".join(parts[:2]) if source.startswith("@") and len(parts) > 1 else parts[0]
        if package in NODE_BUILTINS or package in packages:
            continue
        packages.append(package)
    return packages


def build_artifact(raw: RawFile, scope: ScopeDecision, strategy: str) -> Artifact:
    path = normalize_path(raw.path, scope)
    content = raw.content
    return Artifact(
        name=artifact_name_for(path),
        type=artifact_type_for(path),
        path=path,
        content=content,
        language=language_for(path, raw.language),
        dependencies=extract_dependencies(content),
        metadata=ArtifactMetadata(lines_of_code=len(content.splitlines()), strategy=strategy),
    )


class ArtifactExtractor:
    """Runs the strategy cascade and enforces the viability threshold."""

    def __init__(self, viability_threshold: int = 20, strategies: tuple[tuple[str, Strategy], ...] = STRATEGIES):
        self.viability_threshold = viability_threshold
        self.strategies = strategies

    def split(self, raw_text: str, scope: ScopeDecision) -> ExtractionResult:
        text = raw_text if isinstance(raw_text, str) else ""
        discarded = 0
        for name, strategy in self.strategies:
            try:
                candidates = strategy(text, scope) or []
            except Exception as exc:
                logger.warning("Extraction strategy %s failed: %s", name, exc)
                continue
            viable = [raw for raw in candidates if self._is_viable(raw)]
            discarded += len(candidates) - len(viable)
            if viable:
                artifacts = self._collapse([build_artifact(raw, scope, name) for raw in viable])
                logger.info("Extracted %d artifact(s) with strategy %s", len(artifacts), name)
                return ExtractionResult(artifacts=artifacts, strategy=name, discarded=discarded)

        name, strategy = TERMINAL_STRATEGY
        candidates = strategy(text, scope) or []
        artifacts = [build_artifact(raw, scope, name) for raw in candidates]
        logger.warning("No file markers matched; using whole response as %d artifact(s)", len(artifacts))
        return ExtractionResult(artifacts=artifacts, strategy=name, degraded=True, discarded=discarded)

    def _is_viable(self, raw: RawFile) -> bool:
        return len(raw.content.strip()) >= self.viability_threshold

    @staticmethod
    def _collapse(artifacts: list[Artifact]) -> list[Artifact]:
        by_path: dict[str, Artifact] = {}
        for artifact in artifacts:
            if artifact.path in by_path:
                logger.debug("Duplicate path %s, keeping the later block", artifact.path)
            by_path[artifact.path] = artifact
        return list(by_path.values())
