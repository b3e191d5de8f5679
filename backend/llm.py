# llm.py  (google-generativeai directly, no LangChain wrapper)
import json
import logging
import os
from typing import Dict, List, Mapping, Optional, Sequence

import google.generativeai as genai

from errors import UpstreamFailure
from scoring import is_correct
from utils import normalize_analysis, normalize_summary, parse_json_object

logger = logging.getLogger(__name__)

# Known-good text models, tried in order after the env-pinned one
CANDIDATE_MODELS = [
    "gemini-2.0-flash",
    "gemini-1.5-flash",
    "gemini-1.5-flash-8b",
    "gemini-1.5-pro",
]

PROMPT_DIR = os.path.join(os.path.dirname(__file__), "prompts")

NO_REFERENCE = "No reference material found."


def load_prompt(name: str) -> str:
    with open(os.path.join(PROMPT_DIR, f"{name}.md"), "r", encoding="utf-8") as f:
        return f.read()


class LLMError(UpstreamFailure):
    pass


class LLMClient:
    def __init__(self, api_key: str, model: str = "", embedding_model: str = "models/text-embedding-004"):
        if not api_key:
            raise LLMError("GOOGLE_API_KEY is missing in .env")
        genai.configure(api_key=api_key)
        self.model = model
        self.embedding_model = embedding_model

    def _models_to_try(self) -> List[str]:
        names = [self.model] if self.model else []
        return names + [m for m in CANDIDATE_MODELS if m != self.model]

    def _try_model_once(self, model_name: str, prompt: str, system: Optional[str],
                        temperature: float, json_mode: bool) -> str:
        config = {"temperature": temperature}
        if json_mode:
            config["response_mime_type"] = "application/json"
        model = genai.GenerativeModel(model_name, system_instruction=system, generation_config=config)
        resp = model.generate_content(prompt)
        # blocked responses raise on .text
        try:
            text = (resp.text or "").strip()
        except ValueError as e:
            raise LLMError(f"Model {model_name} returned no usable text: {e}")
        if not text:
            raise LLMError(f"Model {model_name} returned empty response.")
        return text

    def generate_text(self, prompt: str, system: Optional[str] = None, temperature: float = 0.6) -> str:
        errors = []
        for name in self._models_to_try():
            try:
                logger.info("Trying model %s", name)
                return self._try_model_once(name, prompt, system, temperature, json_mode=False)
            except Exception as e:
                errors.append(f"{name}: {e}")
        raise LLMError("All candidate models failed:\n" + "\n".join(errors))

    def generate_json(self, prompt: str, system: Optional[str] = None, temperature: float = 0.5) -> dict:
        errors = []
        for name in self._models_to_try():
            try:
                logger.info("Trying model %s (json)", name)
                content = self._try_model_once(name, prompt, system, temperature, json_mode=True)
                return parse_json_object(content)
            except Exception as e:
                errors.append(f"{name}: {e}")
        raise LLMError("All candidate models failed:\n" + "\n".join(errors))

    def embed(self, text: str) -> List[float]:
        try:
            result = genai.embed_content(model=self.embedding_model, content=text)
        except Exception as e:
            raise LLMError(f"Embedding call failed: {e}")
        values = result.get("embedding") if isinstance(result, dict) else None
        if not values:
            raise LLMError("Embedding model returned no vector.")
        return [float(v) for v in values]

    def ping(self) -> dict:
        """{"ok": True, "model": ..., "content": ...} or {"ok": False, "error": ...}"""
        last_err = "Unknown error"
        for name in self._models_to_try():
            try:
                text = self._try_model_once(name, "Reply with OK", None, 0.0, json_mode=False)
                return {"ok": True, "model": name, "content": text[:200]}
            except Exception as e:
                last_err = str(e)
        return {"ok": False, "error": last_err}


# -----------------------------------------------------------------------------
# Prompt builders
# -----------------------------------------------------------------------------
def _answer_text(options: Sequence[str], selected) -> str:
    if selected is None:
        return "Skipped"
    if isinstance(selected, int) and not isinstance(selected, bool) and 0 <= selected < len(options):
        return options[selected]
    return "Invalid option"


def generate_report(client: LLMClient, prompt: str, context: dict) -> str:
    system = f"""{load_prompt("report")}
Dataset Context:
- Total Users: {context["total_users"]}
- Total Attempts: {context["total_attempts"]}
- Platform Average Score: {context["avg_score"]}
- Recent Sample Data (Last {len(context["recent_activity"])}): {json.dumps(context["recent_activity"])}
"""
    return client.generate_text(f"User Request: {prompt}", system=system, temperature=0.6)


def explain_answer(client: LLMClient, question: str, user_answer: str, correct_answer: str,
                   reference: str = NO_REFERENCE) -> str:
    system = f"""{load_prompt("explain")}
Reference Material:
{reference}
"""
    user = f"""Question: {question}
User Answer: {user_answer}
Correct Answer: {correct_answer}

Please explain."""
    text = client.generate_text(user, system=system, temperature=0.7)
    return text or "Could not generate explanation."


def summarize_attempt(client: LLMClient, score: int, total_points: int, questions: Sequence,
                      user_answers: Mapping[str, int]) -> dict:
    lines = []
    for i, q in enumerate(questions):
        selected = user_answers.get(q.id)
        correct = is_correct(q, selected)
        lines.append(
            f"Q{i + 1}: {q.question_text}\n"
            f"- Topic: {getattr(q, 'category', None) or 'General'}\n"
            f"- User Answer: {_answer_text(q.options, selected)}\n"
            f"- Correct Answer: {_answer_text(q.options, q.correct_answer)}\n"
            f"- Result: {'CORRECT' if correct else 'INCORRECT'}"
        )
    prompt = f"""Total Score: {score}/{total_points}

Detailed Question Log:
{chr(10).join(lines)}
"""
    raw = client.generate_json(prompt, system=load_prompt("summary"), temperature=0.5)
    summary = normalize_summary(raw)
    if not summary["recommendation"]:
        raise LLMError("Summary response was missing a recommendation.")
    return summary


def analyze_mistakes(client: LLMClient, questions: Sequence, answers: Mapping[str, int],
                     category: Optional[str] = None) -> List[Dict]:
    blocks = []
    for q in questions:
        blocks.append(
            f"Question ID: {q.id}\n"
            f"Question: \"{q.question_text}\"\n"
            f"User Answer: \"{_answer_text(q.options, answers.get(q.id))}\"\n"
            f"Correct Answer: \"{_answer_text(q.options, q.correct_answer)}\"\n"
            f"Topic: {category or 'General'}"
        )
    prompt = "Input Data:\n" + "\n----------------\n".join(blocks)
    raw = client.generate_json(prompt, system=load_prompt("analysis"), temperature=0.5)
    return normalize_analysis(raw, [q.id for q in questions])
