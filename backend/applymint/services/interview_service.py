from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from applymint.db_models import (
    InterviewMessageDB,
    InterviewQuestionDB,
    InterviewResponseDB,
    InterviewSessionDB,
)
from applymint.errors import InternalError, NotFoundError, ValidationError
from applymint.grading import compute_overall_score
from applymint.models.interview import MessageCreate, QuestionCreate, ResponseCreate, SessionCreateRequest

LOGGER = logging.getLogger(__name__)

DEFAULT_DIFFICULTY = "mid"
DEFAULT_DURATION_MINUTES = 30
DEFAULT_TOTAL_QUESTIONS = 5

SESSION_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"active", "cancelled", "failed"},
    "active": {"paused", "completed", "cancelled", "failed"},
    "paused": {"active", "cancelled", "failed"},
    "completed": set(),
    "cancelled": set(),
    "failed": set(),
}

# camelCase update keys -> column attributes
SESSION_UPDATE_COLUMNS = {
    "title": "title",
    "mode": "mode",
    "status": "status",
    "jobRole": "job_role",
    "company": "company",
    "difficulty": "difficulty",
    "duration": "duration",
    "currentQuestionIndex": "current_question_index",
    "totalQuestions": "total_questions",
    "overallScore": "overall_score",
    "customInstructions": "custom_instructions",
    "questionTypes": "question_types",
}

NON_NULLABLE_SESSION_FIELDS = {
    "title",
    "mode",
    "status",
    "jobRole",
    "difficulty",
    "duration",
    "currentQuestionIndex",
    "totalQuestions",
}

QUESTION_UPDATE_COLUMNS = {
    "type": "type",
    "question": "question",
    "context": "context",
    "expectedAnswerPoints": "expected_answer_points",
    "difficulty": "difficulty",
    "timeLimit": "time_limit",
    "askedAt": "asked_at",
    "answeredAt": "answered_at",
}


class InterviewService:
    def __init__(self, session_factory: sessionmaker, *, max_workers: int = 3) -> None:
        self._session_factory = session_factory
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="conversation")

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    # Sessions

    def create_session(self, user_id: str, payload: SessionCreateRequest) -> dict:
        title = (payload.title or "").strip()
        job_role = (payload.jobRole or "").strip()
        if not str(user_id or "").strip() or not title or not job_role or not payload.mode:
            raise ValidationError("Missing required fields")

        question_types = list(payload.questionTypes or [])
        now = _utc_now()
        row = InterviewSessionDB(
            id=str(uuid4()),
            user_id=str(user_id),
            title=title,
            mode=payload.mode,
            status="pending",
            job_role=job_role,
            company=(payload.company or "").strip() or None,
            difficulty=payload.difficulty or DEFAULT_DIFFICULTY,
            duration=payload.duration or DEFAULT_DURATION_MINUTES,
            current_question_index=0,
            total_questions=len(question_types) or DEFAULT_TOTAL_QUESTIONS,
            custom_instructions=payload.customInstructions,
            question_types=json.dumps(question_types) if question_types else None,
            created_at=now,
            updated_at=now,
        )
        with self._session_factory() as db:
            db.add(row)
            db.commit()
            db.refresh(row)
            LOGGER.info("Created interview session %s for user %s", row.id, row.user_id)
            return _session_to_dict(row)

    def get_session_by_id(self, session_id: str) -> dict | None:
        with self._session_factory() as db:
            row = db.get(InterviewSessionDB, str(session_id))
            if row is None:
                return None
            return _session_to_dict(row)

    def get_user_sessions(self, user_id: str) -> list[dict]:
        with self._session_factory() as db:
            stmt = (
                select(InterviewSessionDB)
                .where(InterviewSessionDB.user_id == str(user_id))
                .order_by(InterviewSessionDB.created_at.desc())
            )
            rows = db.execute(stmt).scalars().all()
            return [_session_to_dict(row) for row in rows]

    def update_session(self, session_id: str, updates: dict[str, Any]) -> dict | None:
        unknown = set(updates) - set(SESSION_UPDATE_COLUMNS)
        if unknown:
            raise ValidationError(f"Unknown session fields: {', '.join(sorted(unknown))}")
        nulled = sorted(key for key in NON_NULLABLE_SESSION_FIELDS if key in updates and updates[key] is None)
        if nulled:
            raise ValidationError(f"Fields cannot be null: {', '.join(nulled)}")

        with self._session_factory() as db:
            row = self._lock_session_row(db, session_id)
            if row is None:
                return None

            now = _utc_now()
            next_status = updates.get("status")
            if next_status is not None and next_status != row.status:
                allowed = SESSION_TRANSITIONS.get(row.status, set())
                if next_status not in allowed:
                    raise ValidationError(f"Invalid status transition from {row.status} to {next_status}")
                if next_status == "active" and row.started_at is None:
                    row.started_at = now
                if next_status == "completed":
                    row.completed_at = now
                LOGGER.info("Session %s status %s -> %s", row.id, row.status, next_status)

            for key, value in updates.items():
                if key == "questionTypes":
                    value = json.dumps(list(value)) if value else None
                setattr(row, SESSION_UPDATE_COLUMNS[key], value)

            if row.current_question_index < 0 or row.current_question_index > row.total_questions:
                raise ValidationError("currentQuestionIndex must be between 0 and totalQuestions")

            previous_updated_at = _as_utc(row.updated_at)
            row.updated_at = max(now, previous_updated_at) if previous_updated_at else now
            db.add(row)
            db.commit()
            db.refresh(row)
            return _session_to_dict(row)

    def get_user_session_stats(self, user_id: str) -> dict:
        sessions = self.get_user_sessions(user_id)
        completed = [session for session in sessions if session["status"] == "completed"]
        scored = [session["overallScore"] for session in completed if session["overallScore"] is not None]
        average_score = sum(scored) / len(scored) if scored else 0.0

        now = _utc_now()
        practice_minutes = 0.0
        for session in sessions:
            started_at = session["startedAt"]
            if started_at is None:
                continue
            if session["completedAt"] is not None:
                ended_at = session["completedAt"]
            elif session["status"] == "active":
                ended_at = now
            else:
                continue
            practice_minutes += max((ended_at - started_at).total_seconds(), 0.0) / 60.0

        return {
            "totalSessions": len(sessions),
            "completedSessions": len(completed),
            "averageScore": round(average_score, 1),
            "totalPracticeTime": int(round(practice_minutes)),
        }

    # Questions

    def create_question(self, session_id: str, payload: QuestionCreate) -> dict:
        with self._session_factory() as db:
            session_row = self._lock_session_row(db, session_id)
            if session_row is None:
                raise NotFoundError("Session not found")
            order = payload.order or self._next_question_order(db, session_id)
            row = InterviewQuestionDB(
                id=f"q_{uuid4().hex}",
                session_id=str(session_id),
                type=payload.type,
                question=payload.question.strip(),
                context=payload.context,
                expected_answer_points=list(payload.expectedAnswerPoints),
                difficulty=payload.difficulty,
                time_limit=payload.timeLimit,
                order=order,
                asked_at=payload.askedAt,
                created_at=_utc_now(),
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise ValidationError(f"Question order {order} already used in this session") from exc
            db.refresh(row)
            return _question_to_dict(row)

    def get_question(self, question_id: str) -> dict | None:
        with self._session_factory() as db:
            row = db.get(InterviewQuestionDB, str(question_id))
            if row is None:
                return None
            return _question_to_dict(row)

    def get_session_questions(self, session_id: str) -> list[dict]:
        with self._session_factory() as db:
            stmt = (
                select(InterviewQuestionDB)
                .where(InterviewQuestionDB.session_id == str(session_id))
                .order_by(InterviewQuestionDB.order.asc())
            )
            return [_question_to_dict(row) for row in db.execute(stmt).scalars().all()]

    def get_next_question_order(self, session_id: str) -> int:
        with self._session_factory() as db:
            return self._next_question_order(db, session_id)

    def update_question(self, question_id: str, updates: dict[str, Any]) -> dict | None:
        unknown = set(updates) - set(QUESTION_UPDATE_COLUMNS)
        if unknown:
            raise ValidationError(f"Unknown question fields: {', '.join(sorted(unknown))}")
        with self._session_factory() as db:
            row = db.get(InterviewQuestionDB, str(question_id))
            if row is None:
                return None
            for key, value in updates.items():
                setattr(row, QUESTION_UPDATE_COLUMNS[key], value)
            db.add(row)
            db.commit()
            db.refresh(row)
            return _question_to_dict(row)

    # Responses

    def create_response(self, question_id: str, payload: ResponseCreate) -> dict:
        with self._session_factory() as db:
            question = db.get(InterviewQuestionDB, str(question_id))
            if question is None:
                raise NotFoundError("Question not found")
            existing = db.execute(
                select(InterviewResponseDB.id).where(InterviewResponseDB.question_id == str(question_id))
            ).first()
            if existing is not None:
                raise ValidationError("Question already answered")

            overall = payload.overallScore
            if overall is None:
                overall = compute_overall_score(
                    payload.communicationScore,
                    payload.technicalScore,
                    payload.completenessScore,
                )
            now = _utc_now()
            row = InterviewResponseDB(
                id=str(uuid4()),
                question_id=str(question_id),
                answer=payload.answer,
                audio_url=payload.audioUrl,
                transcription=payload.transcription,
                duration=payload.duration,
                communication_score=payload.communicationScore,
                technical_score=payload.technicalScore,
                completeness_score=payload.completenessScore,
                overall_score=overall,
                strengths=list(payload.strengths),
                weaknesses=list(payload.weaknesses),
                suggestions=list(payload.suggestions),
                improved_answer=payload.improvedAnswer,
                submitted_at=payload.submittedAt or now,
                created_at=now,
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise ValidationError("Question already answered") from exc
            db.refresh(row)
            return _response_to_dict(row)

    def get_question_response(self, question_id: str) -> dict | None:
        with self._session_factory() as db:
            stmt = select(InterviewResponseDB).where(InterviewResponseDB.question_id == str(question_id)).limit(1)
            row = db.execute(stmt).scalars().first()
            if row is None:
                return None
            return _response_to_dict(row)

    def get_session_responses(self, session_id: str) -> list[dict]:
        with self._session_factory() as db:
            stmt = (
                select(InterviewResponseDB)
                .join(InterviewQuestionDB, InterviewResponseDB.question_id == InterviewQuestionDB.id)
                .where(InterviewQuestionDB.session_id == str(session_id))
                .order_by(InterviewQuestionDB.order.asc())
            )
            return [_response_to_dict(row) for row in db.execute(stmt).scalars().all()]

    # Messages

    def create_message(self, session_id: str, payload: MessageCreate) -> dict:
        with self._session_factory() as db:
            session_row = self._lock_session_row(db, session_id)
            if session_row is None:
                raise NotFoundError("Session not found")
            message_index = payload.messageIndex
            if message_index is None:
                current_max = db.execute(
                    select(func.max(InterviewMessageDB.message_index)).where(
                        InterviewMessageDB.session_id == str(session_id)
                    )
                ).scalar()
                message_index = 0 if current_max is None else int(current_max) + 1
            row = InterviewMessageDB(
                id=str(uuid4()),
                session_id=str(session_id),
                type=payload.type,
                content=payload.content,
                question_id=payload.questionId,
                audio_url=payload.audioUrl,
                transcription=payload.transcription,
                message_index=message_index,
                created_at=_utc_now(),
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise ValidationError(f"Message index {message_index} already used in this session") from exc
            db.refresh(row)
            return _message_to_dict(row)

    def get_session_messages(self, session_id: str) -> list[dict]:
        with self._session_factory() as db:
            stmt = (
                select(InterviewMessageDB)
                .where(InterviewMessageDB.session_id == str(session_id))
                .order_by(InterviewMessageDB.message_index.asc())
            )
            return [_message_to_dict(row) for row in db.execute(stmt).scalars().all()]

    # Conversation

    def get_session_conversation(self, session_id: str) -> dict | None:
        session = self.get_session_by_id(session_id)
        if session is None:
            return None

        messages_future = self._executor.submit(self.get_session_messages, session_id)
        questions_future = self._executor.submit(self.get_session_questions, session_id)
        responses_future = self._executor.submit(self.get_session_responses, session_id)
        try:
            messages = messages_future.result()
            questions = questions_future.result()
            responses = responses_future.result()
        except Exception as exc:
            LOGGER.error("Failed to load conversation for session %s: %s", session_id, exc)
            raise InternalError("Failed to load session conversation") from exc

        return {
            "session": session,
            "messages": messages,
            "questions": questions,
            "responses": responses,
        }

    def _lock_session_row(self, db, session_id: str) -> InterviewSessionDB | None:
        stmt = select(InterviewSessionDB).where(InterviewSessionDB.id == str(session_id)).with_for_update()
        return db.execute(stmt).scalars().first()

    def _next_question_order(self, db, session_id: str) -> int:
        current_max = db.execute(
            select(func.max(InterviewQuestionDB.order)).where(InterviewQuestionDB.session_id == str(session_id))
        ).scalar()
        return 1 if current_max is None else int(current_max) + 1


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; every stored value is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _load_question_types(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    return [str(item) for item in parsed] if isinstance(parsed, list) else None


def _session_to_dict(row: InterviewSessionDB) -> dict:
    return {
        "id": row.id,
        "userId": row.user_id,
        "title": row.title,
        "mode": row.mode,
        "status": row.status,
        "jobRole": row.job_role,
        "company": row.company,
        "difficulty": row.difficulty,
        "duration": row.duration,
        "currentQuestionIndex": row.current_question_index,
        "totalQuestions": row.total_questions,
        "overallScore": row.overall_score,
        "customInstructions": row.custom_instructions,
        "questionTypes": _load_question_types(row.question_types),
        "startedAt": _as_utc(row.started_at),
        "completedAt": _as_utc(row.completed_at),
        "createdAt": _as_utc(row.created_at),
        "updatedAt": _as_utc(row.updated_at),
    }


def _question_to_dict(row: InterviewQuestionDB) -> dict:
    return {
        "id": row.id,
        "sessionId": row.session_id,
        "type": row.type,
        "question": row.question,
        "context": row.context,
        "expectedAnswerPoints": list(row.expected_answer_points or []),
        "difficulty": row.difficulty,
        "timeLimit": row.time_limit,
        "order": row.order,
        "askedAt": _as_utc(row.asked_at),
        "answeredAt": _as_utc(row.answered_at),
        "createdAt": _as_utc(row.created_at),
    }


def _response_to_dict(row: InterviewResponseDB) -> dict:
    return {
        "id": row.id,
        "questionId": row.question_id,
        "answer": row.answer,
        "audioUrl": row.audio_url,
        "transcription": row.transcription,
        "duration": row.duration,
        "communicationScore": row.communication_score,
        "technicalScore": row.technical_score,
        "completenessScore": row.completeness_score,
        "overallScore": row.overall_score,
        "strengths": list(row.strengths or []),
        "weaknesses": list(row.weaknesses or []),
        "suggestions": list(row.suggestions or []),
        "improvedAnswer": row.improved_answer,
        "submittedAt": _as_utc(row.submitted_at),
        "createdAt": _as_utc(row.created_at),
    }


def _message_to_dict(row: InterviewMessageDB) -> dict:
    created_at = _as_utc(row.created_at)
    return {
        "id": row.id,
        "sessionId": row.session_id,
        "type": row.type,
        "content": row.content,
        "messageIndex": row.message_index,
        "questionId": row.question_id,
        "audioUrl": row.audio_url,
        "transcription": row.transcription,
        "createdAt": created_at,
        "timestamp": created_at,
    }
