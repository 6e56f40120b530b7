from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from codeforge.extractor import artifact_name_for, language_for
from codeforge.models import Artifact, ScopeDecision
from codeforge.scope import ScopeAnalyzer


class StaticProvider:
    """Text provider fake that returns a fixed response and records its calls."""

    name = "static"

    def __init__(self, response: str = "", error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[dict[str, object]] = []

    def generate(self, system_prompt: str, user_prompt: str, *, temperature: float, max_output_tokens: int) -> str:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
            }
        )
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def card_scope() -> ScopeDecision:
    return ScopeAnalyzer().analyze("create a simple card component")


@pytest.fixture
def backend_scope() -> ScopeDecision:
    return ScopeAnalyzer().analyze("build a REST API for users with express")


@pytest.fixture
def fullstack_scope() -> ScopeDecision:
    return ScopeAnalyzer().analyze("build a complete fullstack app with a database")


@pytest.fixture
def make_artifact() -> Callable[..., Artifact]:
    def _make(path: str, content: str, language: str | None = None) -> Artifact:
        return Artifact(
            name=artifact_name_for(path),
            path=path,
            content=content,
            language=language or language_for(path),
        )

    return _make


@pytest.fixture
def card_component() -> str:
    return (
        "import type { CardProps } from '../types/Card.types';\n"
        "\n"
        "export const Card = ({ title }: CardProps) => {\n"
        "  return <div className=\"card\">{title}</div>;\n"
        "};\n"
        "\n"
        "export default Card;"
    )


@pytest.fixture
def provider_factory() -> type[StaticProvider]:
    return StaticProvider
