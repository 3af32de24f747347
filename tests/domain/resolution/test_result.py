from __future__ import annotations

import pytest

from applinks.domain.identifiers import Identifier
from applinks.domain.resolution import ResolutionContext, ResolutionResult

IDENTIFIER = Identifier.parse("myapp://catalog/42")


def test_from_context_freezes_params_and_metadata() -> None:
    context = ResolutionContext(resolved_path="catalog/42")
    context.resolved_params["x"] = "1"
    context.metadata["source"] = "test"

    result = ResolutionResult.from_context(IDENTIFIER, context)
    context.resolved_params["y"] = "2"

    assert result.handled is True
    assert result.error is None
    assert result.path == "catalog/42"
    assert dict(result.params) == {"x": "1"}
    assert result.rewritten_identifier == IDENTIFIER
    with pytest.raises(TypeError):
        result.params["z"] = "3"  # type: ignore[index]


def test_failure_is_empty() -> None:
    result = ResolutionResult.failure(IDENTIFIER, "boom")

    assert result.handled is False
    assert result.path == ""
    assert dict(result.params) == {}
    assert dict(result.metadata) == {}
    assert result.to_dict()["error"] == "boom"


def test_handled_flag_and_error_are_exclusive() -> None:
    with pytest.raises(ValueError):
        ResolutionResult(handled=True, original_identifier=IDENTIFIER, error="boom")
    with pytest.raises(ValueError):
        ResolutionResult(handled=False, original_identifier=IDENTIFIER)
