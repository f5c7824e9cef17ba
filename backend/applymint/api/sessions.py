from fastapi import APIRouter, Depends

from applymint.api.deps import get_interview_service
from applymint.api.security import get_current_user
from applymint.errors import AuthorizationError, InternalError, NotFoundError
from applymint.models.interview import (
    ConversationEnvelope,
    SessionCreateRequest,
    SessionEnvelope,
    SessionListEnvelope,
    SessionStatsEnvelope,
    SessionUpdateRequest,
)
from applymint.services.interview_service import InterviewService

router = APIRouter(prefix="/api/interview/sessions", tags=["Interview Sessions"])


@router.post("", response_model=SessionEnvelope)
def create_session(
    payload: SessionCreateRequest,
    current_user: dict = Depends(get_current_user),
    service: InterviewService = Depends(get_interview_service),
) -> SessionEnvelope:
    session = service.create_session(str(current_user["userId"]), payload)
    return SessionEnvelope(data=session)


@router.get("", response_model=SessionListEnvelope)
def list_sessions(
    current_user: dict = Depends(get_current_user),
    service: InterviewService = Depends(get_interview_service),
) -> SessionListEnvelope:
    return SessionListEnvelope(data=service.get_user_sessions(str(current_user["userId"])))


@router.get("/stats", response_model=SessionStatsEnvelope)
def get_session_stats(
    current_user: dict = Depends(get_current_user),
    service: InterviewService = Depends(get_interview_service),
) -> SessionStatsEnvelope:
    return SessionStatsEnvelope(data=service.get_user_session_stats(str(current_user["userId"])))


@router.get("/{sessionId}", response_model=ConversationEnvelope)
def get_session_conversation(
    sessionId: str,
    current_user: dict = Depends(get_current_user),
    service: InterviewService = Depends(get_interview_service),
) -> ConversationEnvelope:
    conversation = service.get_session_conversation(sessionId)
    if conversation is None:
        raise NotFoundError("Session not found")
    if conversation["session"]["userId"] != str(current_user["userId"]):
        raise AuthorizationError("Forbidden")
    return ConversationEnvelope(data=conversation)


@router.patch("/{sessionId}", response_model=SessionEnvelope)
def update_session(
    sessionId: str,
    payload: SessionUpdateRequest,
    current_user: dict = Depends(get_current_user),
    service: InterviewService = Depends(get_interview_service),
) -> SessionEnvelope:
    session = service.get_session_by_id(sessionId)
    if session is None or session["userId"] != str(current_user["userId"]):
        raise NotFoundError("Session not found or access denied")

    updated = service.update_session(sessionId, payload.model_dump(exclude_unset=True))
    if updated is None:
        raise InternalError("Failed to update session")
    return SessionEnvelope(data=updated)
