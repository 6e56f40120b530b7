from __future__ import annotations

import json

import pytest

from codeforge.extractor import artifact_name_for, language_for
from codeforge.models import Artifact, Severity
from codeforge.scope import ScopeAnalyzer
from codeforge.templates import TemplateProjectGenerator, pluralize, render_template
from codeforge.validator import Validator


def test_render_template_given_tokens_when_rendered_then_every_occurrence_is_replaced() -> None:
    # Given
    template = "export const {{name}}Service = {{Name}}; // {{name}}"

    # When
    rendered = render_template(template, {"name": "order", "Name": "Order"})

    # Then
    assert rendered == "export const orderService = Order; // order"


@pytest.mark.parametrize(
    ("word", "plural"),
    [("User", "Users"), ("Category", "Categories"), ("Address", "Addresses"), ("Day", "Days")],
)
def test_pluralize_given_resource_name_when_pluralized_then_english_suffix_rules_apply(word: str, plural: str) -> None:
    # Given
    # The parametrized resource name.

    # When
    result = pluralize(word)

    # Then
    assert result == plural


def test_generate_given_backend_scope_without_database_when_generated_then_express_layout_is_returned(
    backend_scope,
) -> None:
    # Given
    generator = TemplateProjectGenerator()

    # When
    files = generator.generate("build a REST API for users with express", backend_scope)

    # Then
    paths = [item.path for item in files]
    assert len(files) == 13
    assert "src/app.ts" in paths
    assert "src/routes/user.routes.ts" in paths
    assert "src/services/user.service.ts" in paths
    assert "prisma/schema.prisma" not in paths
    manifest = json.loads(files[0].content)
    assert "express" in manifest["dependencies"]
    assert "@prisma/client" not in manifest["dependencies"]


def test_generate_given_backend_scope_with_database_when_generated_then_prisma_files_are_added() -> None:
    # Given
    prompt = "build a REST API for users with express and postgres"
    scope = ScopeAnalyzer().analyze(prompt)

    # When
    files = TemplateProjectGenerator().generate(prompt, scope)

    # Then
    paths = [item.path for item in files]
    assert len(files) == 15
    assert "prisma/schema.prisma" in paths
    assert "src/db/client.ts" in paths
    service = next(item for item in files if item.path == "src/services/user.service.ts")
    assert "prisma.user.findMany()" in service.content


def test_generate_given_fullstack_scope_when_generated_then_backend_and_frontend_roots_are_used(
    fullstack_scope,
) -> None:
    # Given
    generator = TemplateProjectGenerator()

    # When
    files = generator.generate("build a complete fullstack app with a database", fullstack_scope)

    # Then
    paths = [item.path for item in files]
    assert len(files) == 26
    assert all(path.startswith(("backend/", "frontend/")) for path in paths)
    assert "frontend/src/App.tsx" in paths
    assert "backend/prisma/schema.prisma" in paths
    assert fullstack_scope.expected_file_count.min <= len(files) <= fullstack_scope.expected_file_count.max


def test_generate_given_several_resources_when_generated_then_each_resource_gets_routes_and_pages() -> None:
    # Given
    prompt = "a fullstack app to manage users and orders"
    scope = ScopeAnalyzer().analyze(prompt)

    # When
    files = TemplateProjectGenerator().generate(prompt, scope)

    # Then
    paths = [item.path for item in files]
    assert "backend/src/routes/user.routes.ts" in paths
    assert "backend/src/routes/order.routes.ts" in paths
    assert "frontend/src/pages/OrdersPage.tsx" in paths
    app = next(item for item in files if item.path == "backend/src/app.ts")
    assert "app.use('/api/orders', orderRoutes);" in app.content


def test_generate_given_frontend_only_scope_when_generated_then_value_error_is_raised(card_scope) -> None:
    # Given
    generator = TemplateProjectGenerator()

    # When
    with pytest.raises(ValueError) as excinfo:
        generator.generate("create a simple card component", card_scope)

    # Then
    assert "single_component" in str(excinfo.value)


def test_generate_given_fullstack_scope_when_files_are_validated_then_every_file_passes(fullstack_scope) -> None:
    # Given
    files = TemplateProjectGenerator().generate("build a complete fullstack app with a database", fullstack_scope)
    validator = Validator()

    # When
    outcomes = {
        item.path: validator.validate(
            Artifact(
                name=artifact_name_for(item.path),
                path=item.path,
                content=item.content,
                language=language_for(item.path),
            )
        )
        for item in files
    }

    # Then
    failing = {path: outcome.issues for path, outcome in outcomes.items() if not outcome.passed}
    assert failing == {}
    assert all(outcome.count(Severity.ERROR) == 0 for outcome in outcomes.values())
