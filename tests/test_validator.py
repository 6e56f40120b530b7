from __future__ import annotations

import pytest

from codeforge.models import Severity
from codeforge.validator import Validator, embedded_split_points, mask_code, primary_symbol

LIST_WITH_GENERIC = (
    "import { useState } from 'react';\n"
    "\n"
    "export const List = () => {\n"
    "  const [items] = useState<string[]>([]);\n"
    "  return <ul>{items.length}</ul>;\n"
    "};\n"
    "\n"
    "export default List;"
)

MERGED_COMPONENTS = (
    "export const Header = () => <header>Top</header>;\n"
    "\n"
    "export default Header;\n"
    "\n"
    "import { useState } from 'react';\n"
    "\n"
    "export const Footer = () => <footer>Bottom</footer>;\n"
    "\n"
    "export default Footer;"
)


def _rules(outcome) -> list[str]:
    return [issue.rule for issue in outcome.issues]


def test_validate_given_well_formed_component_when_validated_then_it_passes_with_full_score(
    make_artifact, card_component
) -> None:
    # Given
    artifact = make_artifact("src/components/Card.tsx", card_component)

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert outcome.passed is True
    assert outcome.score == 100.0
    assert outcome.issues == []


def test_validate_given_unclosed_block_without_default_export_when_validated_then_score_drops_by_weights(
    make_artifact,
) -> None:
    # Given
    artifact = make_artifact("src/components/Card.tsx", "export const Card = () => {\n  return <div>card</div>;\n")

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert sorted(_rules(outcome)) == ["missing-default-export", "unclosed-block"]
    assert outcome.score == 88.0
    assert outcome.passed is True


def test_validate_given_unresolved_jsx_symbol_when_validated_then_it_fails_despite_passing_score(make_artifact) -> None:
    # Given
    artifact = make_artifact(
        "src/pages/Page.tsx", "export const Page = () => <Layout>hi</Layout>;\n\nexport default Page;"
    )

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert _rules(outcome) == ["unresolved-symbol"]
    assert outcome.score == 90.0
    assert outcome.passed is False
    assert "'Layout'" in outcome.issues[0].message


def test_validate_given_generic_type_arguments_in_tsx_when_validated_then_they_are_not_read_as_jsx(
    make_artifact,
) -> None:
    # Given
    content = (
        "export const Box = (items: Array<Item>) => <div>{items.length}</div>;\n"
        "\n"
        "export default Box;"
    )
    artifact = make_artifact("src/components/Box.tsx", content)

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert "unresolved-symbol" not in _rules(outcome)
    assert outcome.passed is True


def test_validate_given_hook_with_type_arguments_when_validated_then_fixable_runtime_generic_error_is_reported(
    make_artifact,
) -> None:
    # Given
    artifact = make_artifact("src/components/List.tsx", LIST_WITH_GENERIC)

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert _rules(outcome) == ["runtime-generic"]
    assert outcome.issues[0].severity == Severity.ERROR
    assert outcome.issues[0].fixable is True
    assert outcome.score == 90.0


def test_validate_given_console_statements_when_validated_then_one_warning_counts_them(make_artifact) -> None:
    # Given
    content = (
        "export function total(values: number[]) {\n"
        "  console.log('values', values);\n"
        "  console.debug('summing');\n"
        "  return values.reduce((sum, value) => sum + value, 0);\n"
        "}\n"
    )
    artifact = make_artifact("src/utils/total.ts", content)

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert _rules(outcome) == ["diagnostic-statement"]
    assert "2 console" in outcome.issues[0].message
    assert outcome.score == 98.0


def test_validate_given_interpolated_fetch_url_when_validated_then_unsafe_interpolation_is_reported(
    make_artifact,
) -> None:
    # Given
    content = (
        "export async function loadUser(id: string) {\n"
        "  const response = await fetch(`/api/users/${id}`);\n"
        "  return response.json();\n"
        "}\n"
    )
    artifact = make_artifact("src/services/user.service.ts", content)

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert _rules(outcome) == ["unsafe-interpolation"]
    assert outcome.issues[0].fixable is True


def test_validate_given_plain_template_fetch_url_when_validated_then_no_interpolation_issue(make_artifact) -> None:
    # Given
    content = "export async function loadAll() {\n  return fetch(`/api/users`);\n}\n"
    artifact = make_artifact("src/services/user.service.ts", content)

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert outcome.issues == []


def test_validate_given_imports_outside_sandbox_when_validated_then_info_issue_keeps_score(make_artifact) -> None:
    # Given
    content = (
        "import axios from 'axios';\n"
        "import { helper } from './helper';\n"
        "import type { Props } from './types';\n"
        "\n"
        "export const Widget = (props: Props) => <div>{helper(props)}{String(axios)}</div>;\n"
        "\n"
        "export default Widget;"
    )
    artifact = make_artifact("src/components/Widget.tsx", content)

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert _rules(outcome) == ["sandbox-import"]
    assert outcome.issues[0].severity == Severity.INFO
    assert "axios, ./helper" in outcome.issues[0].message
    assert "./types" not in outcome.issues[0].message
    assert outcome.score == 100.0


def test_validate_given_non_component_module_when_validated_then_sandbox_rule_is_skipped(make_artifact) -> None:
    # Given
    content = "import axios from 'axios';\n\nexport const client = axios.create({ baseURL: '/api' });\n"
    artifact = make_artifact("src/api/client.ts", content)

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert outcome.issues == []


def test_validate_given_two_files_merged_into_one_when_validated_then_embedded_warning_is_reported(
    make_artifact,
) -> None:
    # Given
    artifact = make_artifact("src/components/Header.tsx", MERGED_COMPONENTS)

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert _rules(outcome) == ["embedded-artifacts"]
    assert outcome.issues[0].fixable is True


def test_validate_given_unexported_pascal_case_declaration_when_validated_then_export_warning_is_reported(
    make_artifact,
) -> None:
    # Given
    content = "const Helper = 1;\nconst MAX_ITEMS = 5;\n\nexport const value = Helper + MAX_ITEMS;\n"
    artifact = make_artifact("src/utils/value.ts", content)

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert _rules(outcome) == ["export-convention"]
    assert "'Helper'" in outcome.issues[0].message


def test_validate_given_declaration_exported_through_list_when_validated_then_no_export_warning(
    make_artifact,
) -> None:
    # Given
    content = "const Helper = 1;\n\nexport { Helper };\n"
    artifact = make_artifact("src/utils/value.ts", content)

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert outcome.issues == []


def test_validate_given_many_unresolved_symbols_when_validated_then_score_is_floored_at_zero(make_artifact) -> None:
    # Given
    tags = "".join(f"<Missing{index} />" for index in range(11))
    content = f"export const Page = () => (<div>{tags}</div>);\n\nexport default Page;"
    artifact = make_artifact("src/pages/Page.tsx", content)

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert outcome.count(Severity.ERROR) == 11
    assert outcome.score == 0.0
    assert outcome.passed is False


def test_validate_given_added_error_when_validated_then_score_never_increases(make_artifact, card_component) -> None:
    # Given
    validator = Validator()
    clean = make_artifact("src/components/Card.tsx", card_component)
    broken = make_artifact("src/components/Card.tsx", card_component + "\nexport const Extra = () => {")

    # When
    clean_score = validator.validate(clean).score
    broken_score = validator.validate(broken).score

    # Then
    assert broken_score < clean_score


@pytest.mark.parametrize("content", ["", "   \n\t", "export const a = 1;\x00\x00"])
def test_validate_given_empty_or_binary_content_when_validated_then_unparseable_outcome_is_returned(
    make_artifact, content: str
) -> None:
    # Given
    artifact = make_artifact("src/index.ts", content)

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert outcome.passed is False
    assert outcome.score == 0.0
    assert _rules(outcome) == ["unparseable"]


def test_validate_given_custom_threshold_when_score_is_below_then_artifact_fails(make_artifact) -> None:
    # Given
    content = "export function log(value: number) {\n  console.log(value);\n  return value;\n}\n"
    artifact = make_artifact("src/utils/log.ts", content)

    # When
    lenient = Validator().validate(artifact)
    strict = Validator(pass_threshold=99).validate(artifact)

    # Then
    assert lenient.score == strict.score == 98.0
    assert lenient.passed is True
    assert strict.passed is False


def test_validate_given_score_equal_to_threshold_when_validated_then_boundary_is_inclusive(make_artifact) -> None:
    # Given
    content = "export function log(value: number) {\n  console.log(value);\n  return value;\n}\n"
    artifact = make_artifact("src/utils/log.ts", content)

    # When
    at_threshold = Validator(pass_threshold=98).validate(artifact)
    above_score = Validator(pass_threshold=98.5).validate(artifact)

    # Then
    assert at_threshold.score == 98.0
    assert at_threshold.passed is True
    assert above_score.passed is False


def test_validate_given_stylesheet_with_missing_brace_when_validated_then_only_bracket_rule_applies(
    make_artifact,
) -> None:
    # Given
    artifact = make_artifact("src/styles/card.css", ".card {\n  padding: 16px;\n\n.title { color: red; }\n")

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert _rules(outcome) == ["unclosed-block"]
    assert outcome.score == 90.0


def test_validate_given_markdown_document_when_validated_then_no_rules_apply(make_artifact) -> None:
    # Given
    artifact = make_artifact("README.md", "# Title\n\nUse `console.log(` freely { here.")

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert outcome.passed is True
    assert outcome.issues == []


def test_mask_code_given_strings_and_comments_when_masked_then_offsets_are_preserved() -> None:
    # Given
    code = "const url = 'a // b'; // trailing { comment\nconst x = \"}\";"

    # When
    masked = mask_code(code)

    # Then
    assert len(masked) == len(code)
    assert masked.count("\n") == 1
    assert "{" not in masked
    assert "}" not in masked
    assert masked.startswith("const url = '")


def test_mask_code_given_template_interpolations_when_masked_then_interpolated_code_stays_visible() -> None:
    # Given
    code = "const s = `a {b} ${fmt(`x ${y}`)} c`; // ${z}"
    jsx_text = "<p>Don't {fmt(x)}</p>"

    # When
    masked = mask_code(code, interpolations=True)
    untouched = mask_code(jsx_text, interpolations=True)

    # Then
    assert masked == "const s = `" + " " * 6 + "${fmt(`" + " " * 2 + "${y}`)}" + " " * 2 + "`; " + " " * 7
    assert untouched == jsx_text


def test_validate_given_undeclared_class_inside_interpolation_when_validated_then_unresolved_symbol_is_reported(
    make_artifact,
) -> None:
    # Given
    artifact = make_artifact(
        "src/utils/label.ts",
        "export const label = (n: number): string => `Total: ${new Formatter().format(n)}`;\n",
    )

    # When
    outcome = Validator().validate(artifact)

    # Then
    assert _rules(outcome) == ["unresolved-symbol"]
    assert "'Formatter'" in outcome.issues[0].message
    assert outcome.passed is False


def test_embedded_split_points_given_second_import_block_when_scanned_then_its_line_is_returned() -> None:
    # Given
    content = MERGED_COMPONENTS

    # When
    points = embedded_split_points(content)

    # Then
    assert points == [4]


def test_primary_symbol_given_several_components_when_picked_then_file_stem_wins() -> None:
    # Given
    content = "const Icon = () => <svg />;\n\nexport const Card = () => <div><Icon /></div>;\n"

    # When
    symbol = primary_symbol(content, "src/components/Card.tsx")

    # Then
    assert symbol == "Card"
    assert primary_symbol("const value = 1;", "src/a.ts") is None
