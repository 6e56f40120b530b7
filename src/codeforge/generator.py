"""Text providers, the offline scaffold, and the synthesis invoker."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Protocol

from codeforge.config import PipelineConfig
from codeforge.errors import GenerationError
from codeforge.extractor import format_file_block
from codeforge.models import (
    FileCountRange,
    GeneratedFile,
    GenerationRequest,
    ScopeDecision,
    ScopeType,
    SynthesisResult,
)
from codeforge.prompting import build_system_prompt
from codeforge.scope import DEFAULT_PROFILES
from codeforge.templates import TemplateProjectGenerator, render_template

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_KEY_FILE = Path(".api_keys/Gemini.md")

SPECIALIZED_SCOPES = (ScopeType.BACKEND, ScopeType.FULLSTACK)
STRICT_SCOPES = (ScopeType.SINGLE_COMPONENT, ScopeType.BACKEND, ScopeType.FULLSTACK)


class TextProvider(Protocol):
    def generate(self, system_prompt: str, user_prompt: str, *, temperature: float, max_output_tokens: int) -> str:
        """Return the raw completion text for one request."""


class StructuredGenerator(Protocol):
    name: str

    def generate(self, prompt: str, scope: ScopeDecision) -> list[GeneratedFile]:
        """Return project files for ``scope`` without a text round trip."""


def resolve_gemini_api_key(key_file: Path = DEFAULT_GEMINI_KEY_FILE) -> str | None:
    """Resolve the Gemini API key from environment or fallback file.

    Resolution order:
    1. ``GEMINI_API_KEY`` environment variable.
    2. ``key_file`` plaintext contents.

    Args:
        key_file: Optional fallback file containing only the API key.

    Returns:
        The non-empty API key when found, otherwise ``None``.
    """
    api_key = (os.getenv("GEMINI_API_KEY") or "").strip()
    if api_key:
        return api_key

    if key_file.exists():
        fallback_key = key_file.read_text(encoding="utf-8").strip()
        if fallback_key:
            return fallback_key

    return None


class GeminiGenerator:
    """Thin adapter around Google GenAI content generation."""

    name = "gemini"

    def __init__(self, model_name: str, timeout_seconds: float | None = None):
        """Create a generator bound to a model name and an optional request timeout."""
        self.model_name = model_name
        self.timeout_seconds = timeout_seconds

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.7,
        max_output_tokens: int = 16000,
    ) -> str:
        """Generate source files from prompts.

        Args:
            system_prompt: System instruction text that defines behavior.
            user_prompt: Instruction envelope built by the prompt synthesizer.
            temperature: Sampling temperature for this request.
            max_output_tokens: Upper bound on generated tokens.

        Returns:
            Raw text response from Gemini.

        Raises:
            ValueError: If either prompt is blank.
            RuntimeError: If credentials are missing or response text is empty.
        """
        if not isinstance(system_prompt, str) or not system_prompt.strip():
            raise ValueError("System prompt must be a non-empty string.")
        if not isinstance(user_prompt, str) or not user_prompt.strip():
            raise ValueError("User prompt must be a non-empty string.")

        api_key = resolve_gemini_api_key()
        if not api_key:
            raise RuntimeError("Missing GEMINI_API_KEY (set env var or .api_keys/Gemini.md)")

        from google import genai
        from google.genai import types

        http_options = None
        if self.timeout_seconds:
            http_options = types.HttpOptions(timeout=int(self.timeout_seconds * 1000))

        client = genai.Client(api_key=api_key, http_options=http_options)
        response = client.models.generate_content(
            model=self.model_name,
            contents=user_prompt,
            config=types.GenerateContentConfig(
                system_instruction=system_prompt,
                temperature=temperature,
                top_p=0.95,
                max_output_tokens=max_output_tokens,
            ),
        )

        text = (response.text or "").strip()
        if not text:
            raise RuntimeError("Gemini returned an empty response")
        return text


# ---------------------------------------------------------------------------
# Offline scaffold provider.
# ---------------------------------------------------------------------------

COMPONENT_TSX = """import type { {{Entity}}Props } from '../types/{{Entity}}.types';

export const {{Entity}} = ({ title, description, children }: {{Entity}}Props) => {
  return (
    <div className="rounded-lg border border-gray-200 bg-white p-6 shadow-sm">
      <h3 className="text-lg font-semibold text-gray-900">{title}</h3>
      {description && <p className="mt-2 text-sm text-gray-600">{description}</p>}
      {children}
    </div>
  );
};

export default {{Entity}};
"""

COMPONENT_TYPES_TS = """import type { ReactNode } from 'react';

export interface {{Entity}}Props {
  title: string;
  description?: string;
  children?: ReactNode;
}
"""

COMPONENT_MOCK_TS = """import type { {{Entity}}Props } from '../types/{{Entity}}.types';

export const mock{{Entity}}Props: {{Entity}}Props = {
  title: 'Sample {{Entity}}',
  description: 'Generated offline for a quick preview.',
};

export default mock{{Entity}}Props;
"""

ITEM_TYPES_TS = """export interface {{Entity}}Item {
  id: string;
  title: string;
  description: string;
}
"""

ITEM_MOCK_TS = """import type { {{Entity}}Item } from '../types/{{Entity}}.types';

export const mock{{Entity}}Items: {{Entity}}Item[] = [
  { id: '1', title: 'First {{lower}}', description: 'Seeded by the offline scaffold.' },
  { id: '2', title: 'Second {{lower}}', description: 'Replace with real data.' },
];

export default mock{{Entity}}Items;
"""

HEADER_TSX = """export interface {{Entity}}HeaderProps {
  title: string;
  subtitle?: string;
}

export const {{Entity}}Header = ({ title, subtitle }: {{Entity}}HeaderProps) => (
  <header className="mb-6">
    <h1 className="text-3xl font-bold text-gray-900">{title}</h1>
    {subtitle && <p className="mt-1 text-gray-500">{subtitle}</p>}
  </header>
);

export default {{Entity}}Header;
"""

LIST_TSX = """import type { {{Entity}}Item } from '{{TYPES_DIR}}/types/{{Entity}}.types';

export interface {{Entity}}ListProps {
  items: {{Entity}}Item[];
}

export const {{Entity}}List = ({ items }: {{Entity}}ListProps) => (
  <ul className="divide-y divide-gray-200 rounded-lg bg-white shadow">
    {items.map((item) => (
      <li key={item.id} className="px-4 py-3">
        <p className="font-medium">{item.title}</p>
        <p className="text-sm text-gray-500">{item.description}</p>
      </li>
    ))}
  </ul>
);

export default {{Entity}}List;
"""

PAGE_TSX = """import { {{Entity}}Header } from '../components/{{Entity}}Header';
import { {{Entity}}List } from '../components/{{Entity}}List';
import { mock{{Entity}}Items } from '../mocks/{{Entity}}.mock';

export const {{Entity}}Page = () => (
  <main className="mx-auto max-w-4xl px-4 py-8">
    <{{Entity}}Header title="{{Entity}}" subtitle="Overview" />
    <{{Entity}}List items={mock{{Entity}}Items} />
  </main>
);

export default {{Entity}}Page;
"""

LANDING_SECTION_TSX = """import { landingContent } from '../../data/landing.content';

export const {{Section}} = () => (
  <section className="mx-auto max-w-5xl px-4 py-16">
    <h2 className="text-3xl font-bold text-gray-900">{landingContent.{{key}}.title}</h2>
    <p className="mt-4 text-lg text-gray-600">{landingContent.{{key}}.body}</p>
  </section>
);

export default {{Section}};
"""

LANDING_SECTIONS = (
    ("Hero", "hero"),
    ("Features", "features"),
    ("Testimonials", "testimonials"),
    ("Pricing", "pricing"),
    ("CallToAction", "callToAction"),
    ("Footer", "footer"),
)

FORM_TSX = """import { useState, type FormEvent } from 'react';

export interface {{Entity}}FormProps {
  onSubmit: (title: string) => void;
}

export const {{Entity}}Form = ({ onSubmit }: {{Entity}}FormProps) => {
  const [title, setTitle] = useState('');

  const handleSubmit = (event: FormEvent) => {
    event.preventDefault();
    if (title.trim()) {
      onSubmit(title.trim());
      setTitle('');
    }
  };

  return (
    <form onSubmit={handleSubmit} className="flex gap-2">
      <input
        value={title}
        onChange={(event) => setTitle(event.target.value)}
        className="flex-1 rounded border px-3 py-2"
      />
      <button type="submit" className="rounded bg-indigo-600 px-4 py-2 text-white">
        Add
      </button>
    </form>
  );
};

export default {{Entity}}Form;
"""

HOOK_TS = """import { useEffect, useState } from 'react';
import type { {{Entity}}Item } from '../../types/{{Entity}}.types';
import { fetch{{Entity}}Items } from './{{lower}}.service';

export function use{{Entity}}() {
  const [items, setItems] = useState([] as {{Entity}}Item[]);
  const [loading, setLoading] = useState(true);

  useEffect(() => {
    fetch{{Entity}}Items()
      .then(setItems)
      .finally(() => setLoading(false));
  }, []);

  const add = (title: string) => {
    setItems((current) => [...current, { id: String(current.length + 1), title, description: '' }]);
  };

  return { items, loading, add };
}

export default use{{Entity}};
"""

SERVICE_TS = """import { mock{{Entity}}Items } from '../../mocks/{{Entity}}.mock';
import type { {{Entity}}Item } from '../../types/{{Entity}}.types';

const BASE_URL = '/api/{{lower}}';

export async function fetch{{Entity}}Items(): Promise<{{Entity}}Item[]> {
  try {
    const response = await fetch(BASE_URL);
    if (!response.ok) {
      return mock{{Entity}}Items;
    }
    return (await response.json()) as {{Entity}}Item[];
  } catch (err) {
    return mock{{Entity}}Items;
  }
}

export default fetch{{Entity}}Items;
"""

FEATURE_TSX = """import { {{Entity}}Form } from './components/{{Entity}}Form';
import { {{Entity}}List } from './components/{{Entity}}List';
import { use{{Entity}} } from './use{{Entity}}';

export const {{Entity}}Feature = () => {
  const { items, loading, add } = use{{Entity}}();

  return (
    <section className="space-y-4">
      <{{Entity}}Form onSubmit={add} />
      {loading ? <p>Loading...</p> : <{{Entity}}List items={items} />}
    </section>
  );
};

export default {{Entity}}Feature;
"""

REQUEST_LINE_RE = re.compile(r"^User request:[ \t]*(?P<value>.*)$", re.MULTILINE)
SCOPE_LINE_RE = re.compile(r"^Scope:[ \t]*(?P<value>[a-z_]+)", re.MULTILINE)
ENTITY_LINE_RE = re.compile(r"^Primary entity:[ \t]*(?P<value>\w+)", re.MULTILINE)


class LocalScaffoldGenerator:
    """Deterministic offline provider that answers in the file-marker convention.

    It reads the scope and entity back out of the instruction envelope, so the
    same instruction always yields the same files.
    """

    name = "local-scaffold"

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.0,
        max_output_tokens: int = 16000,
    ) -> str:
        if not isinstance(system_prompt, str) or not system_prompt.strip():
            raise ValueError("System prompt must be a non-empty string.")
        if not isinstance(user_prompt, str) or not user_prompt.strip():
            raise ValueError("User prompt must be a non-empty string.")

        scope_type = _read_line(SCOPE_LINE_RE, user_prompt)
        entity = _read_line(ENTITY_LINE_RE, user_prompt) or "Component"
        request_text = _read_line(REQUEST_LINE_RE, user_prompt) or user_prompt
        try:
            scope = ScopeType(scope_type) if scope_type else ScopeType.FEATURE
        except ValueError:
            scope = ScopeType.FEATURE

        files = self._files_for(scope, entity, request_text, "Prisma" in user_prompt)
        return "\n\n".join(format_file_block(item.path, item.content) for item in files)

    def _files_for(self, scope: ScopeType, entity: str, request_text: str, database: bool) -> list[GeneratedFile]:
        values = {"Entity": entity, "lower": entity[:1].lower() + entity[1:]}

        if scope == ScopeType.SINGLE_COMPONENT:
            return [
                GeneratedFile(path=f"src/components/{entity}.tsx", content=render_template(COMPONENT_TSX, values)),
                GeneratedFile(
                    path=f"src/types/{entity}.types.ts", content=render_template(COMPONENT_TYPES_TS, values)
                ),
                GeneratedFile(path=f"src/mocks/{entity}.mock.ts", content=render_template(COMPONENT_MOCK_TS, values)),
            ]

        if scope == ScopeType.PAGE:
            return [
                GeneratedFile(path=f"src/pages/{entity}Page.tsx", content=render_template(PAGE_TSX, values)),
                GeneratedFile(
                    path=f"src/components/{entity}Header.tsx", content=render_template(HEADER_TSX, values)
                ),
                GeneratedFile(
                    path=f"src/components/{entity}List.tsx",
                    content=render_template(LIST_TSX, {**values, "TYPES_DIR": ".."}),
                ),
                GeneratedFile(path=f"src/types/{entity}.types.ts", content=render_template(ITEM_TYPES_TS, values)),
                GeneratedFile(path=f"src/mocks/{entity}.mock.ts", content=render_template(ITEM_MOCK_TS, values)),
            ]

        if scope == ScopeType.LANDING_PAGE:
            return self._landing_files()

        if scope in SPECIALIZED_SCOPES:
            profile = DEFAULT_PROFILES[scope]
            decision = ScopeDecision(
                type=scope,
                complexity=profile.complexity,
                confidence=profile.confidence,
                expected_file_count=FileCountRange(min=profile.min_files, max=profile.max_files),
                include_frontend=profile.include_frontend,
                include_backend=profile.include_backend,
                include_database=database,
                entity=entity,
            )
            return TemplateProjectGenerator().generate(request_text, decision)

        lower = values["lower"]
        return [
            GeneratedFile(
                path=f"src/features/{lower}/{entity}Feature.tsx", content=render_template(FEATURE_TSX, values)
            ),
            GeneratedFile(
                path=f"src/features/{lower}/components/{entity}Form.tsx", content=render_template(FORM_TSX, values)
            ),
            GeneratedFile(
                path=f"src/features/{lower}/components/{entity}List.tsx",
                content=render_template(LIST_TSX, {**values, "TYPES_DIR": "../../.."}),
            ),
            GeneratedFile(path=f"src/features/{lower}/use{entity}.ts", content=render_template(HOOK_TS, values)),
            GeneratedFile(
                path=f"src/features/{lower}/{lower}.service.ts", content=render_template(SERVICE_TS, values)
            ),
            GeneratedFile(path=f"src/types/{entity}.types.ts", content=render_template(ITEM_TYPES_TS, values)),
            GeneratedFile(path=f"src/mocks/{entity}.mock.ts", content=render_template(ITEM_MOCK_TS, values)),
        ]

    @staticmethod
    def _landing_files() -> list[GeneratedFile]:
        fields = "\n".join(f"  {key}: LandingSection;" for _, key in LANDING_SECTIONS)
        types_ts = (
            "export interface LandingSection {\n  title: string;\n  body: string;\n}\n\n"
            f"export interface LandingContent {{\n{fields}\n}}\n"
        )
        entries = "\n".join(
            f"  {key}: {{ title: '{section}', body: 'Placeholder copy for the {section} section.' }},"
            for section, key in LANDING_SECTIONS
        )
        content_ts = (
            "import type { LandingContent } from '../types/landing.types';\n\n"
            f"export const landingContent: LandingContent = {{\n{entries}\n}};\n\n"
            "export default landingContent;\n"
        )
        imports = "\n".join(
            f"import {{ {section} }} from '../components/landing/{section}';" for section, _ in LANDING_SECTIONS
        )
        body = "\n".join(f"    <{section} />" for section, _ in LANDING_SECTIONS)
        page_tsx = (
            f"{imports}\n\nexport const LandingPage = () => (\n  <div className=\"min-h-screen bg-white\">\n"
            f"{body}\n  </div>\n);\n\nexport default LandingPage;\n"
        )

        files = [GeneratedFile(path="src/pages/LandingPage.tsx", content=page_tsx)]
        for section, key in LANDING_SECTIONS:
            files.append(
                GeneratedFile(
                    path=f"src/components/landing/{section}.tsx",
                    content=render_template(LANDING_SECTION_TSX, {"Section": section, "key": key}),
                )
            )
        files.append(GeneratedFile(path="src/types/landing.types.ts", content=types_ts))
        files.append(GeneratedFile(path="src/data/landing.content.ts", content=content_ts))
        return files


def _read_line(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return match.group("value").strip() if match else None


# ---------------------------------------------------------------------------
# Invoker.
# ---------------------------------------------------------------------------


class SynthesisInvoker:
    """Chooses between the specialized generator and the generic text provider."""

    def __init__(
        self,
        provider: TextProvider,
        structured: StructuredGenerator | None = None,
        config: PipelineConfig | None = None,
    ):
        self.provider = provider
        self.structured = structured
        self.config = config or PipelineConfig()

    def invoke(
        self,
        scope: ScopeDecision,
        instruction: str,
        request: GenerationRequest | None = None,
    ) -> SynthesisResult:
        provenance = "generic"
        if scope.type in SPECIALIZED_SCOPES and self.structured is not None:
            prompt = request.prompt if request is not None else instruction
            try:
                files = self.structured.generate(prompt, scope)
            except Exception as exc:
                logger.warning("Specialized generator %s failed, falling back: %s", self.structured.name, exc)
            else:
                if files:
                    logger.info("Synthesis provenance=specialized source=%s files=%d", self.structured.name, len(files))
                    return SynthesisResult(
                        raw_text="\n\n".join(format_file_block(item.path, item.content) for item in files),
                        provenance="specialized",
                        source=self.structured.name,
                    )
                logger.warning("Specialized generator %s returned no files, falling back", self.structured.name)
            provenance = "fallback"

        temperature = (
            self.config.strict_temperature if scope.type in STRICT_SCOPES else self.config.open_temperature
        )
        source = getattr(self.provider, "name", type(self.provider).__name__)
        try:
            text = self.provider.generate(
                build_system_prompt(),
                instruction,
                temperature=temperature,
                max_output_tokens=self.config.max_output_tokens,
            )
        except Exception as exc:
            raise GenerationError(f"Text provider {source} failed: {exc}") from exc
        if not isinstance(text, str) or not text.strip():
            raise GenerationError(f"Text provider {source} returned an empty response")

        logger.info("Synthesis provenance=%s source=%s temperature=%.1f", provenance, source, temperature)
        return SynthesisResult(raw_text=text, provenance=provenance, source=source)
