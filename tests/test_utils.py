import pytest

from utils import (
    normalize_analysis,
    normalize_summary,
    parse_json_object,
    round_half_up,
    strip_code_fence,
)


@pytest.mark.parametrize("value, expected", [(2.5, 3), (3.5, 4), (12.49, 12), (0, 0), (19.5, 20)])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


def test_strip_code_fence():
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'


def test_parse_json_object_rejects_arrays():
    assert parse_json_object('```\n{"ok": true}\n```') == {"ok": True}
    with pytest.raises(ValueError):
        parse_json_object("[1, 2]")


def test_normalize_summary_caps_lists():
    out = normalize_summary({
        "strengths": ["a", " ", "b", "c"],
        "weaknesses": None,
        "recommendation": ["Practice", "joins."],
    })
    assert out == {"strengths": ["a", "b"], "weaknesses": [], "recommendation": "Practice joins."}


def test_normalize_analysis_accepts_either_key_style():
    raw = {"analysis": [
        {"questionId": "q1", "misconception": "m", "correctConcept": "c", "studyTopic": "t"},
        {"question_id": "q2", "misconception": "m2", "correct_concept": "c2", "study_topic": "t2"},
        {"questionId": "q3", "misconception": "", "correctConcept": ""},
        "not a dict",
    ]}
    out = normalize_analysis(raw, ["q1", "q2", "q3"])
    assert [a["question_id"] for a in out] == ["q1", "q2"]
    assert out[1]["study_topic"] == "t2"
    assert normalize_analysis({}, ["q1"]) == []
