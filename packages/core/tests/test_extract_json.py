from __future__ import annotations

import json

import pytest
from pydantic import BaseModel
from spacai_core.llm.base import AIError, ErrorCode
from spacai_core.llm.extract import EXCERPT_LIMIT, extract_json, find_json_candidate


class Party(BaseModel):
    name: str
    role: str


SAMPLES = [
    {"found": True, "excerpt": "Section 4", "score": 0.82},
    [1, 2, {"nested": [3, 4]}],
    {"parties": [{"name": "Acme", "role": "buyer"}], "empty": {}, "list": []},
    {"unicode": "café", "null": None, "flag": False},
    [],
    {"shares": 2**64 + 1, "debt": -(2**70)},
]


@pytest.mark.parametrize("value", SAMPLES)
def test_round_trip_plain(value) -> None:
    assert extract_json(json.dumps(value)) == value


@pytest.mark.parametrize("value", SAMPLES)
def test_round_trip_with_prose_and_fence(value) -> None:
    text = (
        "Sure, here is the analysis you asked for:\n\n"
        f"```json\n{json.dumps(value, indent=2)}\n```\n"
        "Let me know if you need anything else."
    )
    assert extract_json(text) == value


def test_large_integers_keep_precision() -> None:
    value = extract_json('Shares outstanding: {"shares": 18446744073709551617}')
    assert value == {"shares": 2**64 + 1}
    assert isinstance(value["shares"], int)


def test_untagged_fence() -> None:
    assert extract_json('```\n{"a": 1}\n```') == {"a": 1}


def test_leading_prose_without_fence() -> None:
    assert extract_json('The result is {"a": {"b": 2}} as requested.') == {"a": {"b": 2}}


def test_earlier_bracket_wins() -> None:
    assert extract_json('Items: [1, 2] and also {"x": 1}') == [1, 2]
    assert extract_json('Object {"x": [1]} then [3]') == {"x": [1]}


def test_trailing_text_after_balanced_value_is_ignored() -> None:
    assert extract_json('{"a": 1} trailing } braces }') == {"a": 1}


def test_braces_inside_strings_are_ignored() -> None:
    text = 'Answer: {"clause": "Payment {net 30} due", "note": "use ] carefully \\" ok"}'
    assert extract_json(text) == {"clause": "Payment {net 30} due", "note": 'use ] carefully " ok'}


def test_character_count_scan_truncates_on_braces_in_strings() -> None:
    text = '{"clause": "closing } brace", "ok": true}'
    assert find_json_candidate(text, string_aware=False) == '{"clause": "closing }'
    with pytest.raises(AIError) as exc:
        extract_json(text, string_aware=False)
    assert exc.value.code is ErrorCode.JSON_PARSE_ERROR


def test_scalar_without_brackets() -> None:
    assert extract_json("42") == 42


def test_no_json_raises_parse_error() -> None:
    with pytest.raises(AIError) as exc:
        extract_json("I could not find any relevant clause in this contract.")
    error = exc.value
    assert error.code is ErrorCode.JSON_PARSE_ERROR
    assert not error.retryable
    assert error.message.startswith("Failed to parse AI response as JSON")


def test_unbalanced_json_raises_parse_error() -> None:
    with pytest.raises(AIError) as exc:
        extract_json('{"a": [1, 2, 3}')
    assert exc.value.code is ErrorCode.JSON_PARSE_ERROR


def test_excerpt_is_bounded() -> None:
    text = "no json here " * 200
    with pytest.raises(AIError) as exc:
        extract_json(text)
    excerpt = exc.value.details["original_content"]
    assert len(excerpt) <= EXCERPT_LIMIT
    assert text.startswith(excerpt)


def test_validates_into_shape() -> None:
    text = '```json\n[{"name": "Acme", "role": "buyer"}]\n```'
    parties = extract_json(text, list[Party])
    assert parties == [Party(name="Acme", role="buyer")]


def test_shape_mismatch_raises_parse_error() -> None:
    with pytest.raises(AIError) as exc:
        extract_json('{"name": "Acme"}', Party)
    assert exc.value.code is ErrorCode.JSON_PARSE_ERROR
    assert exc.value.details["original_content"] == '{"name": "Acme"}'
