# utils.py
import json
import math


def round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; dashboards expect 2.5 -> 3
    return int(math.floor(value + 0.5))


def strip_code_fence(content: str) -> str:
    """Some models wrap JSON in ``` blocks even when told not to."""
    content = content.strip()
    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else ""
        if content.rstrip().endswith("```"):
            content = content.rstrip()[:-3]
    return content.strip()


def parse_json_object(content: str) -> dict:
    data = json.loads(strip_code_fence(content))
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


def _str_list(value, limit: int) -> list:
    if isinstance(value, str):
        value = [value]
    items = [str(v).strip() for v in (value or []) if str(v).strip()]
    return items[:limit]


def normalize_summary(raw: dict) -> dict:
    strengths = _str_list(raw.get("strengths"), 2)
    weaknesses = _str_list(raw.get("weaknesses"), 2)
    recommendation = raw.get("recommendation") or ""
    if isinstance(recommendation, list):
        recommendation = " ".join(str(r) for r in recommendation)

    return {
        "strengths": strengths,
        "weaknesses": weaknesses,
        "recommendation": str(recommendation).strip(),
    }


def normalize_analysis(raw: dict, allowed_ids) -> list:
    allowed = {str(i) for i in allowed_ids}
    items = []
    for a in (raw.get("analysis") or []):
        if not isinstance(a, dict):
            continue
        qid = str(a.get("questionId") or a.get("question_id") or "")
        misconception = a.get("misconception") or ""
        concept = a.get("correctConcept") or a.get("correct_concept") or ""
        topic = a.get("studyTopic") or a.get("study_topic") or ""
        if qid in allowed and (misconception or concept):
            items.append({
                "question_id": qid,
                "misconception": str(misconception).strip(),
                "correct_concept": str(concept).strip(),
                "study_topic": str(topic).strip(),
            })
    return items
