from __future__ import annotations

import pytest

from codeforge.errors import DuplicateResultError
from codeforge.models import PipelineResult
from codeforge.store import ResultStore


@pytest.fixture
def store(tmp_path) -> ResultStore:
    result_store = ResultStore(tmp_path / "nested" / "results.db")
    result_store.init_db()
    return result_store


def _result(generation_id: str, card_scope, make_artifact, card_component, **updates) -> PipelineResult:
    values = {
        "success": True,
        "generation_id": generation_id,
        "scope": card_scope,
        "components": (make_artifact("src/components/Card.tsx", card_component),),
        "quality_score": 96.5,
        "dependencies": ("react",),
        "warnings": ("Under-generation: 1 artifact(s) produced, expected at least 2 for scope single_component.",),
        "provenance": "generic",
    }
    values.update(updates)
    return PipelineResult(**values)


def test_save_given_new_result_when_fetched_then_identical_result_is_returned(
    store, card_scope, make_artifact, card_component
) -> None:
    # Given
    result = _result("gen-1", card_scope, make_artifact, card_component)

    # When
    store.save(result)
    fetched = store.get("gen-1")

    # Then
    assert fetched == result
    assert fetched.components[0].content == card_component


def test_save_given_existing_generation_id_when_saved_again_then_duplicate_error_is_raised(
    store, card_scope, make_artifact, card_component
) -> None:
    # Given
    store.save(_result("gen-1", card_scope, make_artifact, card_component))

    # When
    with pytest.raises(DuplicateResultError) as excinfo:
        store.save(_result("gen-1", card_scope, make_artifact, card_component, quality_score=10.0))

    # Then
    assert "gen-1" in str(excinfo.value)
    assert store.get("gen-1").quality_score == 96.5


def test_get_given_unknown_generation_id_when_fetched_then_none_is_returned(store) -> None:
    # Given
    generation_id = "missing"

    # When
    fetched = store.get(generation_id)

    # Then
    assert fetched is None


def test_list_recent_given_saved_results_when_listed_then_summary_rows_respect_limit(
    store, card_scope, make_artifact, card_component
) -> None:
    # Given
    store.save(_result("gen-1", card_scope, make_artifact, card_component))
    store.save(
        PipelineResult(
            success=False,
            generation_id="gen-2",
            error="Prompt must be a non-empty string.",
            error_kind="PrepareError",
        )
    )

    # When
    rows = store.list_recent(limit=10)
    limited = store.list_recent(limit=1)

    # Then
    by_id = {row["generation_id"]: row for row in rows}
    assert set(by_id) == {"gen-1", "gen-2"}
    assert by_id["gen-1"]["success"] == 1
    assert by_id["gen-1"]["scope_type"] == "single_component"
    assert by_id["gen-1"]["component_count"] == 1
    assert by_id["gen-2"]["success"] == 0
    assert by_id["gen-2"]["scope_type"] is None
    assert by_id["gen-2"]["error_kind"] == "PrepareError"
    assert len(limited) == 1
