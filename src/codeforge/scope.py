"""Keyword-cascade classification of prompts into generation scopes."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from codeforge.models import Complexity, FileCountRange, ScopeDecision, ScopeType

logger = logging.getLogger(__name__)


class ScopeProfile(BaseModel):
    """Tabulated constants attached to every decision of one scope type."""

    model_config = ConfigDict(frozen=True)

    complexity: Complexity
    confidence: float
    min_files: int
    max_files: int
    include_frontend: bool
    include_backend: bool
    include_database: bool


DEFAULT_PROFILES: dict[ScopeType, ScopeProfile] = {
    ScopeType.SINGLE_COMPONENT: ScopeProfile(
        complexity=Complexity.MINIMAL,
        confidence=0.9,
        min_files=2,
        max_files=4,
        include_frontend=True,
        include_backend=False,
        include_database=False,
    ),
    ScopeType.PAGE: ScopeProfile(
        complexity=Complexity.MODERATE,
        confidence=0.8,
        min_files=4,
        max_files=8,
        include_frontend=True,
        include_backend=False,
        include_database=False,
    ),
    ScopeType.LANDING_PAGE: ScopeProfile(
        complexity=Complexity.MODERATE,
        confidence=0.85,
        min_files=8,
        max_files=15,
        include_frontend=True,
        include_backend=False,
        include_database=False,
    ),
    ScopeType.FEATURE: ScopeProfile(
        complexity=Complexity.MODERATE,
        confidence=0.6,
        min_files=6,
        max_files=12,
        include_frontend=True,
        include_backend=False,
        include_database=False,
    ),
    ScopeType.BACKEND: ScopeProfile(
        complexity=Complexity.COMPLEX,
        confidence=0.9,
        min_files=10,
        max_files=20,
        include_frontend=False,
        include_backend=True,
        include_database=False,
    ),
    ScopeType.FULLSTACK: ScopeProfile(
        complexity=Complexity.COMPLEX,
        confidence=0.95,
        min_files=25,
        max_files=40,
        include_frontend=True,
        include_backend=True,
        include_database=True,
    ),
}

SINGLE_COMPONENT_TERMS = (
    "component",
    "button",
    "card",
    "input",
    "select",
    "dropdown",
    "modal",
    "badge",
    "avatar",
    "tooltip",
    "toggle",
    "spinner",
    "navbar",
    "widget",
)
APPLICATION_TERMS = (
    "app",
    "application",
    "system",
    "platform",
    "website",
    "site",
    "api",
    "backend",
    "server",
    "database",
    "fullstack",
    "full-stack",
    "full stack",
    "dashboard",
    "page",
)
BACKEND_TERMS = (
    "api",
    "rest api",
    "restful",
    "endpoint",
    "endpoints",
    "express",
    "server",
    "backend",
    "back-end",
    "routes",
    "controllers",
    "middleware",
    "microservice",
    "graphql",
)
FRONTEND_TERMS = (
    "frontend",
    "front-end",
    "react",
    "ui",
    "interface",
    "dashboard",
    "page",
    "component",
    "screen",
    "landing",
)
FULLSTACK_TERMS = (
    "fullstack",
    "full-stack",
    "full stack",
    "complete app",
    "complete application",
    "frontend and backend",
    "frontend + backend",
    "e-commerce",
    "ecommerce",
    "crud app",
)
DATABASE_TERMS = (
    "database",
    "db",
    "prisma",
    "postgres",
    "postgresql",
    "mongodb",
    "mysql",
    "sqlite",
)
LANDING_PAGE_TERMS = (
    "landing page",
    "landing-page",
    "hero section",
    "call to action",
    "marketing page",
    "testimonials",
)
PAGE_TERMS = (
    "dashboard",
    "admin panel",
    "page",
    "screen",
    "analytics",
    "charts",
)

INTENT_SCOPE_MAP: dict[str, ScopeType] = {
    "create_component": ScopeType.SINGLE_COMPONENT,
    "create_page": ScopeType.PAGE,
    "create_landing_page": ScopeType.LANDING_PAGE,
    "create_feature": ScopeType.FEATURE,
    "create_api": ScopeType.BACKEND,
    "create_backend": ScopeType.BACKEND,
    "create_app": ScopeType.FULLSTACK,
}

ENTITY_MAP = {
    "button": "Button",
    "card": "Card",
    "modal": "Modal",
    "dialog": "Dialog",
    "form": "Form",
    "table": "Table",
    "list": "List",
    "navbar": "Navbar",
    "sidebar": "Sidebar",
    "header": "Header",
    "footer": "Footer",
    "input": "Input",
    "select": "Select",
    "dropdown": "Dropdown",
    "checkbox": "Checkbox",
    "toggle": "Toggle",
    "slider": "Slider",
    "tooltip": "Tooltip",
    "alert": "Alert",
    "badge": "Badge",
    "avatar": "Avatar",
    "spinner": "Spinner",
    "tabs": "Tabs",
    "accordion": "Accordion",
    "carousel": "Carousel",
    "pagination": "Pagination",
    "dashboard": "Dashboard",
}

DOMAIN_NOUNS = (
    "user",
    "product",
    "order",
    "task",
    "todo",
    "post",
    "comment",
    "customer",
    "invoice",
    "category",
    "project",
    "booking",
    "event",
    "message",
    "review",
    "payment",
    "article",
    "employee",
)

CAPITALIZED_RE = re.compile(r"\b([A-Z][a-z]{2,})\b")
PROMPT_STOPWORDS = {"Create", "Build", "Make", "Generate", "Write", "Design", "Add", "Please", "The", "With"}


class IntentClassifier(Protocol):
    def classify(self, prompt: str) -> str | None:
        """Return an intent label such as ``create_api``, or ``None``."""


def _family(terms: Iterable[str]) -> re.Pattern[str]:
    alternatives = sorted((re.escape(term) for term in terms), key=len, reverse=True)
    return re.compile(r"(?<![\w-])(?:" + "|".join(alternatives) + r")(?![\w-])")


def _matches(pattern: re.Pattern[str], text: str) -> list[str]:
    seen: list[str] = []
    for match in pattern.finditer(text):
        if match.group(0) not in seen:
            seen.append(match.group(0))
    return seen


def extract_entity(prompt: str) -> str:
    """Return the primary UI or domain entity named in ``prompt``."""
    lowered = prompt.lower()
    for keyword, entity in ENTITY_MAP.items():
        if re.search(rf"\b{re.escape(keyword)}\b", lowered):
            return entity

    for noun in DOMAIN_NOUNS:
        if re.search(rf"\b{noun}s?\b", lowered):
            return noun.capitalize()

    for candidate in CAPITALIZED_RE.findall(prompt):
        if candidate not in PROMPT_STOPWORDS:
            return candidate
    return "Component"


def extract_entities(prompt: str, limit: int = 4) -> list[str]:
    """Return domain resource names (``User``, ``Order``...) mentioned in ``prompt``."""
    lowered = prompt.lower()
    found: list[tuple[int, str]] = []
    for noun in DOMAIN_NOUNS:
        match = re.search(rf"\b{noun}s?\b", lowered)
        if match:
            found.append((match.start(), noun.capitalize()))
    found.sort()
    return [name for _, name in found[:limit]]


class ScopeAnalyzer:
    """Ordered rule cascade; the first matching keyword family wins."""

    def __init__(
        self,
        profiles: Mapping[ScopeType, ScopeProfile] | None = None,
        intent_classifier: IntentClassifier | None = None,
    ):
        self.profiles = {**DEFAULT_PROFILES, **(profiles or {})}
        self.intent_classifier = intent_classifier
        self._single = _family(SINGLE_COMPONENT_TERMS)
        self._application = _family(APPLICATION_TERMS)
        self._backend = _family(BACKEND_TERMS)
        self._frontend = _family(FRONTEND_TERMS)
        self._fullstack = _family(FULLSTACK_TERMS)
        self._database = _family(DATABASE_TERMS)
        self._landing = _family(LANDING_PAGE_TERMS)
        self._page = _family(PAGE_TERMS)

    def analyze(self, prompt: str) -> ScopeDecision:
        text = (prompt or "").lower()
        entity = extract_entity(prompt or "")
        database_hits = _matches(self._database, text)

        single_hits = _matches(self._single, text)
        if single_hits and not self._application.search(text):
            return self._decide(ScopeType.SINGLE_COMPONENT, single_hits, entity)

        backend_hits = _matches(self._backend, text)
        frontend_hits = _matches(self._frontend, text)
        if backend_hits and not frontend_hits:
            return self._decide(
                ScopeType.BACKEND,
                backend_hits + database_hits,
                entity,
                include_database=bool(database_hits),
            )

        fullstack_hits = _matches(self._fullstack, text)
        if fullstack_hits or database_hits or (backend_hits and frontend_hits):
            return self._decide(
                ScopeType.FULLSTACK,
                fullstack_hits + database_hits + backend_hits,
                entity,
                include_database=bool(database_hits) or self.profiles[ScopeType.FULLSTACK].include_database,
            )

        landing_hits = _matches(self._landing, text)
        if landing_hits:
            return self._decide(ScopeType.LANDING_PAGE, landing_hits, entity)

        page_hits = _matches(self._page, text)
        if page_hits:
            return self._decide(ScopeType.PAGE, page_hits, entity)

        intent_scope = self._classify_intent(prompt or "")
        if intent_scope is not None:
            return self._decide(intent_scope, [f"intent:{intent_scope.value}"], entity, confidence=0.7)

        return self._decide(ScopeType.FEATURE, ["default"], entity)

    def _classify_intent(self, prompt: str) -> ScopeType | None:
        if self.intent_classifier is None:
            return None
        try:
            label = self.intent_classifier.classify(prompt)
        except Exception as exc:
            logger.warning("Intent classifier failed, using default scope: %s", exc)
            return None
        if not label:
            return None
        return INTENT_SCOPE_MAP.get(label.strip().lower())

    def _decide(
        self,
        scope_type: ScopeType,
        keywords: list[str],
        entity: str,
        *,
        include_database: bool | None = None,
        confidence: float | None = None,
    ) -> ScopeDecision:
        profile = self.profiles[scope_type]
        decision = ScopeDecision(
            type=scope_type,
            complexity=profile.complexity,
            confidence=profile.confidence if confidence is None else confidence,
            expected_file_count=FileCountRange(min=profile.min_files, max=profile.max_files),
            include_frontend=profile.include_frontend,
            include_backend=profile.include_backend,
            include_database=profile.include_database if include_database is None else include_database,
            matched_keywords=tuple(dict.fromkeys(keywords)),
            entity=entity,
        )
        logger.info(
            "Scope detected: type=%s complexity=%s files=%d-%d keywords=%s",
            decision.type.value,
            decision.complexity.value,
            decision.expected_file_count.min,
            decision.expected_file_count.max,
            ",".join(decision.matched_keywords),
        )
        return decision
