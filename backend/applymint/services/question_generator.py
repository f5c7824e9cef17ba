import json
import logging
import os
import re
from typing import Any

from openai import OpenAI

LOGGER = logging.getLogger(__name__)

INTERVIEW_STRATEGY_STAGES = [
    {
        "name": "technical_depth",
        "type": "technical",
        "goal": "Probe hands-on experience, tooling choices and trade-offs.",
        "template": "Tell me about your experience as a {job_role} and how you handle the hardest technical problems in that work.",
        "context": "This question assesses practical experience and depth in the core skills of the role.",
        "expectedAnswerPoints": [
            "Concrete project example",
            "Tools and techniques used",
            "Trade-offs considered",
            "Measurable outcome",
        ],
    },
    {
        "name": "collaboration_and_behavior",
        "type": "behavioral",
        "goal": "Understand communication style and conflict resolution.",
        "template": "Tell me about a time you disagreed with a teammate or stakeholder. How did you resolve it?",
        "context": "This question assesses collaboration, communication and ownership.",
        "expectedAnswerPoints": [
            "Situation and stakes",
            "Actions taken personally",
            "How agreement was reached",
            "What changed afterwards",
        ],
    },
    {
        "name": "system_design",
        "type": "technical",
        "goal": "Probe design reasoning at the level expected for the role.",
        "template": "Walk me through how you would design a system that a {job_role} at {company} is likely to own.",
        "context": "This question assesses design reasoning, scalability and reliability thinking.",
        "expectedAnswerPoints": [
            "Clarifying requirements",
            "High-level components",
            "Scaling and failure handling",
            "Trade-offs and alternatives",
        ],
    },
    {
        "name": "situational_judgement",
        "type": "situational",
        "goal": "Check judgement under pressure.",
        "template": "Imagine a critical issue hits production the day before a major release. As the {job_role}, what do you do?",
        "context": "This question assesses prioritization and decision-making under pressure.",
        "expectedAnswerPoints": [
            "Triage and impact assessment",
            "Communication with stakeholders",
            "Mitigation versus full fix",
            "Follow-up and prevention",
        ],
    },
    {
        "name": "reflection_and_plan",
        "type": "behavioral",
        "goal": "Close with reflection and forward-looking thinking.",
        "template": "If you joined {company} tomorrow as a {job_role}, what would your 30-60-90 day plan look like?",
        "context": "This question assesses motivation, planning and self-awareness.",
        "expectedAnswerPoints": [
            "Learning the domain and team",
            "Early wins",
            "Longer-term impact",
        ],
    },
]

SYSTEM_PROMPT = (
    "You are an expert interviewer. Ask one concise, job-relevant question."
    " Follow the stage strategy in the prompt."
    " Do not repeat prior interviewer questions."
)

USER_PROMPT_TEMPLATE = """
You are interviewing a candidate for role: {job_role} at: {company}. Difficulty: {difficulty}.
Additional instructions from the candidate: {custom_instructions}
Current stage:
- name: {stage_name}
- goal: {stage_goal}

Questions already asked:
{previous_questions_json}

Generate one next interview question only as JSON:
{{"question":"...","context":"...","expectedAnswerPoints":["..."]}}
Keep the question to 1-2 sentences, natural and conversational.
""".strip()

DEFAULT_TIME_LIMIT_SECONDS = 300


class QuestionGenerator:
    """Produces the next question for a session from staged templates, optionally via OpenAI."""

    def __init__(self, api_key: str | None = None, model: str = "gpt-4o-mini") -> None:
        self.model = model
        self._client = OpenAI(api_key=api_key) if api_key else None

    def generate(self, session: dict, previous_questions: list[dict], order: int) -> dict[str, Any]:
        stage = _resolve_stage(session, order)
        fallback = _fallback_question(session, stage, order)
        if self._client is None:
            return fallback

        candidate = self._generate_with_openai(session, stage, previous_questions)
        if candidate and _passes_question_guardrails(candidate["question"], previous_questions):
            return {**fallback, **candidate}
        return fallback

    def _generate_with_openai(self, session: dict, stage: dict, previous_questions: list[dict]) -> dict | None:
        prompt = USER_PROMPT_TEMPLATE.format(
            job_role=session.get("jobRole") or "generalist role",
            company=session.get("company") or "a growing company",
            difficulty=session.get("difficulty") or "mid",
            custom_instructions=session.get("customInstructions") or "None.",
            stage_name=stage["name"],
            stage_goal=stage["goal"],
            previous_questions_json=json.dumps(
                [str(item.get("question", "")) for item in previous_questions], ensure_ascii=True
            ),
        )
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                temperature=0.2,
            )
            payload = json.loads(response.choices[0].message.content or "{}")
        except Exception as exc:  # pragma: no cover - external failures
            LOGGER.warning("OpenAI question generation failed: %s", exc)
            return None

        question = _normalize_question_text(payload.get("question", ""))
        if not question:
            return None
        points = [str(item).strip() for item in payload.get("expectedAnswerPoints") or [] if str(item).strip()]
        candidate: dict[str, Any] = {"question": question}
        if str(payload.get("context", "")).strip():
            candidate["context"] = str(payload["context"]).strip()
        if points:
            candidate["expectedAnswerPoints"] = points[:6]
        return candidate


def build_question_generator() -> QuestionGenerator:
    return QuestionGenerator(
        api_key=os.getenv("OPENAI_API_KEY", "").strip() or None,
        model=os.getenv("APPLYMINT_LLM_MODEL", "gpt-4o-mini"),
    )


def _resolve_stage(session: dict, order: int) -> dict:
    requested_types = list(session.get("questionTypes") or [])
    index = max(order - 1, 0)
    if requested_types:
        wanted = requested_types[index % len(requested_types)]
        matching = [stage for stage in INTERVIEW_STRATEGY_STAGES if stage["type"] == wanted]
        if matching:
            return matching[(index // len(requested_types)) % len(matching)]
    return INTERVIEW_STRATEGY_STAGES[index % len(INTERVIEW_STRATEGY_STAGES)]


def _fallback_question(session: dict, stage: dict, order: int) -> dict[str, Any]:
    text = stage["template"].format(
        job_role=(session.get("jobRole") or "this role").strip(),
        company=(session.get("company") or "the company").strip(),
    )
    return {
        "type": stage["type"],
        "question": _normalize_question_text(text),
        "context": stage["context"],
        "expectedAnswerPoints": list(stage["expectedAnswerPoints"]),
        "difficulty": session.get("difficulty") or "mid",
        "timeLimit": DEFAULT_TIME_LIMIT_SECONDS,
        "order": order,
    }


def _passes_question_guardrails(candidate: str, previous_questions: list[dict]) -> bool:
    if len(candidate) < 12 or len(candidate) > 260:
        return False
    lowered = candidate.lower()
    if any(token in lowered for token in ("as an ai", "language model", "i cannot")):
        return False
    normalized = _normalize_for_overlap(candidate)
    for existing in previous_questions[-6:]:
        overlap = _token_overlap_ratio(normalized, _normalize_for_overlap(str(existing.get("question", ""))))
        if overlap >= 0.86:
            return False
    return True


def _normalize_question_text(text: str) -> str:
    compact = re.sub(r"\s+", " ", str(text or "")).strip()
    if not compact:
        return ""
    if compact[-1] not in {"?", ".", "!"}:
        compact = f"{compact}?"
    return compact


def _normalize_for_overlap(text: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"[^a-z0-9\s]", " ", str(text or "").lower())).strip()


def _token_overlap_ratio(candidate_text: str, reference_text: str) -> float:
    candidate_tokens = {token for token in candidate_text.split(" ") if token}
    reference_tokens = {token for token in reference_text.split(" ") if token}
    if not candidate_tokens or not reference_tokens:
        return 0.0
    return len(candidate_tokens & reference_tokens) / len(candidate_tokens)
