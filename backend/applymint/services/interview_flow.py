import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from applymint.errors import ValidationError
from applymint.grading import Grader, build_session_summary, round_half_up
from applymint.models.interview import MessageCreate, QuestionCreate, ResponseCreate
from applymint.services.interview_service import InterviewService
from applymint.services.question_generator import QuestionGenerator

LOGGER = logging.getLogger(__name__)

TERMINAL_STATUSES = {"completed", "cancelled", "failed"}


class InterviewFlow:
    """Drives one session through question, answer and end-of-session steps."""

    def __init__(self, service: InterviewService, grader: Grader, question_generator: QuestionGenerator) -> None:
        self.service = service
        self.grader = grader
        self.question_generator = question_generator

    def ask_next_question(self, session_id: str) -> dict | None:
        """Persist and return the next question, or re-send the one still awaiting an answer.

        Returns ``None`` when the session is unknown or finished, or every planned question was asked.
        """
        session = self.service.get_session_by_id(session_id)
        if session is None:
            return None
        if session["status"] in TERMINAL_STATUSES:
            LOGGER.info("Session %s is %s; no question generated", session_id, session["status"])
            return None
        if session["status"] != "active":
            session = self.service.update_session(session_id, {"status": "active"}) or session

        questions = self.service.get_session_questions(session_id)
        for question in questions:
            if question["askedAt"] is not None and question["answeredAt"] is None:
                return question
        if len(questions) >= session["totalQuestions"]:
            return None

        order = self.service.get_next_question_order(session_id)
        generated = self.question_generator.generate(session, questions, order=order)
        question = self.service.create_question(
            session_id,
            QuestionCreate(**generated, askedAt=_utc_now()),
        )
        self.service.create_message(
            session_id,
            MessageCreate(type="assistant", content=question["question"], questionId=question["id"]),
        )
        return question

    def submit_answer(self, session_id: str | None, payload: dict[str, Any]) -> dict:
        question_id = str(payload.get("questionId") or "").strip() or None
        answer_id = str(payload.get("answerId") or "").strip() or None
        answer = str(payload.get("answer") or payload.get("content") or "").strip()

        question = self.service.get_question(question_id) if question_id else None
        if question is not None and question["sessionId"] != session_id:
            question = None

        scores = self.grader.score(question, answer)
        feedback = {
            "id": f"f_{uuid4().hex}",
            "answerId": answer_id,
            "questionId": question_id,
            "sessionId": session_id,
            **scores,
            "createdAt": _utc_now(),
        }
        if question is None:
            return feedback

        if not answer:
            raise ValidationError("Answer is required")
        response = self.service.create_response(
            question["id"],
            ResponseCreate(
                answer=answer,
                audioUrl=payload.get("audioUrl"),
                transcription=payload.get("transcription"),
                duration=_as_int(payload.get("duration")),
                communicationScore=scores["communicationScore"],
                technicalScore=scores["technicalScore"],
                completenessScore=scores["completenessScore"],
                overallScore=scores["overallScore"],
                strengths=scores["strengths"],
                weaknesses=scores["weaknesses"],
                suggestions=scores["suggestions"],
                improvedAnswer=scores.get("improvedAnswer"),
            ),
        )
        self.service.update_question(question["id"], {"answeredAt": response["submittedAt"]})
        self.service.create_message(
            session_id,
            MessageCreate(
                type="user",
                content=answer,
                questionId=question["id"],
                audioUrl=payload.get("audioUrl"),
                transcription=payload.get("transcription"),
            ),
        )
        self.service.create_message(
            session_id,
            MessageCreate(
                type="assistant",
                content=f"Score {scores['overallScore']}/10. {' '.join(scores['suggestions'][:1])}".strip(),
                questionId=question["id"],
            ),
        )

        session = self.service.get_session_by_id(session_id)
        if session is not None:
            answered = len(self.service.get_session_responses(session_id))
            self.service.update_session(
                session_id,
                {"currentQuestionIndex": min(answered, session["totalQuestions"])},
            )
        feedback["answerId"] = feedback["answerId"] or response["id"]
        return feedback

    def end_session(self, session_id: str | None) -> dict:
        session = self.service.get_session_by_id(session_id) if session_id else None
        questions: list[dict] = []
        responses: list[dict] = []
        if session is not None:
            questions = self.service.get_session_questions(session_id)
            responses = self.service.get_session_responses(session_id)

        summary = build_session_summary(session_id, session=session, questions=questions, responses=responses)

        if session is not None and session["status"] == "active":
            updates: dict[str, Any] = {"status": "completed"}
            if responses:
                updates["overallScore"] = round_half_up(summary["overallScore"])
            self.service.update_session(session_id, updates)
        return summary


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_int(value: object) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0
