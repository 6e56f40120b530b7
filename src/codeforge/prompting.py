"""Instruction envelopes sent to the text generator, one section per scope."""

from __future__ import annotations

import json

from codeforge.extractor import FILE_MARKER_EXAMPLE, format_file_block
from codeforge.models import GenerationRequest, ScopeDecision, ScopeType
from codeforge.scope import extract_entities

SYSTEM_PROMPT = (
    "You are a senior TypeScript engineer who generates complete, compilable project files. "
    "You follow the output protocol exactly and never add commentary outside file blocks."
)

PROTOCOL_HEADER = """
## Generation Protocol

**Type safety**
1. Write strict TypeScript. Never use `any`; declare interfaces before using them.
2. Put shared props and domain types in `.types.ts` files and import them with `import type`.
3. Every symbol you reference must be declared in the same file or imported.

**Closed blocks**
4. Close every `{`, `(` and `[` you open. Never truncate a function, component or class.
5. No placeholders, no TODOs, no "implement later" comments.

**Export convention**
6. Export every public declaration by name: `export interface X`, `export type Y`, `export const Z`.
7. Component files also end with a default export of the main component: `export default Z;`.
8. Do not pass generic type parameters to React hooks (`useState(initial)`, not `useState<T>(initial)`).
9. Do not leave `console.log` calls in the output.
10. Build request URLs by concatenation, not template interpolation.
"""

OUTPUT_CONTRACT = """
## Output Format

Emit every file as its own fenced block. The opening fence carries the language and
the file path separated by a colon, exactly like this:

{example}

Rules:
- One file per block; the path is relative to the project root.
- No prose between blocks; no nested fences inside a block.
- Do not repeat a path; the last block with a given path wins.
"""

SCOPE_SECTIONS: dict[ScopeType, str] = {
    ScopeType.SINGLE_COMPONENT: """
## Scope: Single Component

Build exactly one reusable component named `{entity}`. Do not generate App.tsx, routing,
API layers, services or backend code.

Files:
1. `src/components/{entity}.tsx` - the component (functional, hooks, Tailwind classes)
2. `src/types/{entity}.types.ts` - the props interface `{entity}Props`
3. `src/mocks/{entity}.mock.ts` - realistic mock props (optional)
4. `src/styles/{entity}.css` - extra styles only if Tailwind is not enough (optional)
""",
    ScopeType.PAGE: """
## Scope: Page

Build one page `{entity}Page` composed from small local components.

Files:
1. `src/pages/{entity}Page.tsx` - the page, default-exported
2. `src/components/` - one file per section component used by the page
3. `src/types/{entity}.types.ts` - shared types
4. `src/mocks/{entity}.mock.ts` - mock data rendered by the page
""",
    ScopeType.LANDING_PAGE: """
## Scope: Landing Page

Build a marketing landing page with hero, features, testimonials, pricing, call to action
and footer sections, each in its own component under `src/components/landing/`.

Files:
1. `src/pages/LandingPage.tsx` - assembles the sections in order
2. `src/components/landing/*.tsx` - one component per section
3. `src/types/landing.types.ts` - content types
4. `src/data/landing.content.ts` - copy, links and testimonial data
""",
    ScopeType.FEATURE: """
## Scope: Feature

Build the `{entity}` feature as a small set of cooperating components with its own
state hook and service.

Files:
1. `src/features/{lower}/{entity}Feature.tsx` - entry component, default-exported
2. `src/features/{lower}/components/*.tsx` - child components
3. `src/features/{lower}/use{entity}.ts` - state hook
4. `src/features/{lower}/{lower}.service.ts` - data access through `fetch`
5. `src/types/{entity}.types.ts` - shared types
6. `src/mocks/{entity}.mock.ts` - mock data
""",
    ScopeType.BACKEND: """
## Scope: Backend API

Build an Express + TypeScript REST API. No frontend code.

Files:
1. `src/server.ts` - starts the HTTP server
2. `src/app.ts` - builds the Express app and mounts routers
3. `src/routes/<resource>.routes.ts` - one router per resource, `export default router`
4. `src/controllers/<resource>.controller.ts` - request handlers
5. `src/services/<resource>.service.ts` - business logic
6. `src/models/<resource>.model.ts` - types and persistence model
7. `src/middleware/errorHandler.ts` and `src/middleware/validate.ts`
8. `src/config/env.ts` - environment configuration
{database}
Resources: {resources}
""",
    ScopeType.FULLSTACK: """
## Scope: Full-Stack Application

Build a complete application with a React frontend and an Express + TypeScript backend.

Backend (`backend/`): `backend/src/server.ts`, `backend/src/app.ts`, and for every resource a
route, controller, service and model file under `backend/src/<layer>/`.
Frontend (`frontend/`): `frontend/src/App.tsx`, `frontend/src/main.tsx`, one page per resource
under `frontend/src/pages/`, shared components under `frontend/src/components/`, and a typed
API client in `frontend/src/api/client.ts`.
{database}
Resources: {resources}
""",
}


def build_system_prompt() -> str:
    return SYSTEM_PROMPT


class PromptSynthesizer:
    """Composes the protocol header, a scope section and the output contract."""

    def build(self, prompt: str, scope: ScopeDecision, request: GenerationRequest | None = None) -> str:
        entity = scope.entity
        resources = extract_entities(prompt) or [entity]
        database = ""
        if scope.include_database:
            database = (
                "Persist data with Prisma; put the schema in `prisma/schema.prisma` "
                "with one model per resource.\n"
            )
        section = SCOPE_SECTIONS[scope.type].format(
            entity=entity,
            lower=entity[:1].lower() + entity[1:],
            resources=", ".join(resources),
            database=database,
        )

        example = format_file_block(
            f"src/components/{entity}.tsx",
            f"export const {entity} = () => {{\n  return <div />;\n}};\n\nexport default {entity};",
        )
        contract = OUTPUT_CONTRACT.format(example=example)

        lines = [
            f"User request: {prompt.strip()}",
            "",
            f"Scope: {scope.type.value} (complexity: {scope.complexity.value})",
            f"Primary entity: {entity}",
            f"Detected keywords: {', '.join(scope.matched_keywords) or 'none'}",
            (
                f"File count: generate between {scope.expected_file_count.min} and "
                f"{scope.expected_file_count.max} files."
            ),
            "Naming: PascalCase component files, camelCase utilities, `.types.ts` for types, "
            "`.mock.ts` for mock data.",
        ]
        lines.extend(self._context_lines(request))

        return "\n".join(
            [
                PROTOCOL_HEADER.strip(),
                "",
                section.strip(),
                "",
                "## Request",
                "",
                *lines,
                "",
                contract.strip(),
                "",
                f"Every file MUST start with a fence like `{FILE_MARKER_EXAMPLE}`.",
            ]
        )

    @staticmethod
    def _context_lines(request: GenerationRequest | None) -> list[str]:
        if request is None:
            return []
        lines: list[str] = []
        if request.framework:
            lines.append(f"Framework: {request.framework}")
        if request.language:
            lines.append(f"Language: {request.language}")
        context = request.context
        if context is None:
            return lines
        if context.domain:
            lines.append(f"Domain: {context.domain}")
        if context.personality:
            lines.append(f"Visual personality: {context.personality}")
        if context.color_palette:
            lines.append(f"Color palette: {', '.join(context.color_palette)}")
        if context.style_preferences:
            lines.append(f"Style preferences: {json.dumps(context.style_preferences, ensure_ascii=False)}")
        return lines
