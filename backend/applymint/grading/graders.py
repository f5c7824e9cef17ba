import json
import logging
import math
import os
import random
from typing import Any, Protocol

from openai import OpenAI

LOGGER = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 10

# Inclusive ranges used by the placeholder grader.
PLACEHOLDER_RANGES = {
    "communicationScore": (7, 9),
    "technicalScore": (6, 8),
    "completenessScore": (6, 8),
}

PLACEHOLDER_STRENGTHS = [
    "Clear explanation of concepts",
    "Good use of specific examples",
    "Demonstrates practical experience",
]
PLACEHOLDER_WEAKNESSES = [
    "Could provide more technical depth",
    "Consider mentioning edge cases",
]
PLACEHOLDER_SUGGESTIONS = [
    "Practice explaining complex concepts in simpler terms",
    "Include more real-world scenarios in your examples",
]

GRADER_SYSTEM_PROMPT = (
    "You are a strict but fair interview grader. Score answers on a 0-10 scale and respond with JSON only."
)

GRADER_USER_PROMPT_TEMPLATE = """
Interview question ({question_type}, {difficulty}):
{question}

Points a strong answer covers:
{expected_points_json}

Candidate answer:
{answer}

Return JSON with keys:
- communicationScore: integer 0-10
- technicalScore: integer 0-10
- completenessScore: integer 0-10
- strengths: array of up to 3 short strings
- weaknesses: array of up to 3 short strings
- suggestions: array of up to 3 short strings
- improvedAnswer: a stronger version of the answer in 3-5 sentences
""".strip()


class Grader(Protocol):
    name: str

    def score(self, question: dict | None, answer: str) -> dict[str, Any]:
        ...


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_overall_score(communication: int, technical: int, completeness: int) -> int:
    return round_half_up((communication + technical + completeness) / 3)


def _feedback_payload(
    communication: int,
    technical: int,
    completeness: int,
    *,
    strengths: list[str],
    weaknesses: list[str],
    suggestions: list[str],
    improved_answer: str | None = None,
) -> dict[str, Any]:
    return {
        "communicationScore": communication,
        "technicalScore": technical,
        "completenessScore": completeness,
        "overallScore": compute_overall_score(communication, technical, completeness),
        "strengths": list(strengths),
        "weaknesses": list(weaknesses),
        "suggestions": list(suggestions),
        "improvedAnswer": improved_answer,
    }


class PlaceholderGrader:
    """Draws sub-scores from fixed ranges; stands in until a model grader is configured."""

    name = "placeholder"

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def score(self, question: dict | None, answer: str) -> dict[str, Any]:
        scores = {key: self._rng.randint(low, high) for key, (low, high) in PLACEHOLDER_RANGES.items()}
        return _feedback_payload(
            scores["communicationScore"],
            scores["technicalScore"],
            scores["completenessScore"],
            strengths=PLACEHOLDER_STRENGTHS,
            weaknesses=PLACEHOLDER_WEAKNESSES,
            suggestions=PLACEHOLDER_SUGGESTIONS,
        )


class StaticGrader:
    name = "static"

    def __init__(
        self,
        communication: int = 8,
        technical: int = 7,
        completeness: int = 7,
        *,
        strengths: list[str] | None = None,
        weaknesses: list[str] | None = None,
        suggestions: list[str] | None = None,
    ) -> None:
        self.communication = communication
        self.technical = technical
        self.completeness = completeness
        self.strengths = list(strengths or PLACEHOLDER_STRENGTHS)
        self.weaknesses = list(weaknesses or PLACEHOLDER_WEAKNESSES)
        self.suggestions = list(suggestions or PLACEHOLDER_SUGGESTIONS)

    def score(self, question: dict | None, answer: str) -> dict[str, Any]:
        return _feedback_payload(
            self.communication,
            self.technical,
            self.completeness,
            strengths=self.strengths,
            weaknesses=self.weaknesses,
            suggestions=self.suggestions,
        )


class OpenAIGrader:
    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        *,
        fallback: Grader | None = None,
        client: OpenAI | None = None,
    ) -> None:
        self.model = model
        self._client = client or OpenAI(api_key=api_key)
        self._fallback = fallback or PlaceholderGrader()

    def score(self, question: dict | None, answer: str) -> dict[str, Any]:
        prompt = build_grader_prompt(question, answer)
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": GRADER_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                temperature=0.2,
            )
            payload = json.loads(response.choices[0].message.content or "{}")
        except Exception as exc:  # pragma: no cover - external API protection
            LOGGER.warning("OpenAI grading failed, using %s grader: %s", self._fallback.name, exc)
            return self._fallback.score(question, answer)

        return _feedback_payload(
            _clamp_score(payload.get("communicationScore")),
            _clamp_score(payload.get("technicalScore")),
            _clamp_score(payload.get("completenessScore")),
            strengths=_string_list(payload.get("strengths")),
            weaknesses=_string_list(payload.get("weaknesses")),
            suggestions=_string_list(payload.get("suggestions")),
            improved_answer=str(payload.get("improvedAnswer", "")).strip() or None,
        )


def build_grader_prompt(question: dict | None, answer: str) -> str:
    question = question or {}
    return GRADER_USER_PROMPT_TEMPLATE.format(
        question_type=question.get("type") or "general",
        difficulty=question.get("difficulty") or "mid",
        question=str(question.get("question") or "Not provided.").strip(),
        expected_points_json=json.dumps(question.get("expectedAnswerPoints") or [], indent=2),
        answer=str(answer or "").strip() or "No answer provided.",
    )


def build_grader() -> Grader:
    """Pick a grader from the environment: OpenAI when a key is present, otherwise placeholder."""
    kind = os.getenv("APPLYMINT_GRADER", "").strip().lower()
    api_key = os.getenv("OPENAI_API_KEY", "").strip()
    if kind == "placeholder" or not api_key:
        return PlaceholderGrader()
    return OpenAIGrader(api_key=api_key, model=os.getenv("APPLYMINT_LLM_MODEL", "gpt-4o-mini"))


def _clamp_score(value: object) -> int:
    try:
        score = round_half_up(float(value))
    except (TypeError, ValueError):
        return MIN_SCORE
    return max(MIN_SCORE, min(score, MAX_SCORE))


def _string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()][:3]
