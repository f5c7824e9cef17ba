from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from applymint.api.deps import get_interview_flow
from applymint.api.security import get_current_user
from applymint.errors import AuthorizationError, NotFoundError, ValidationError
from applymint.models.stream import FeedbackDTO, StreamCommandRequest, StreamCommandResponse, SummaryDTO
from applymint.services.interview_flow import InterviewFlow
from applymint.services.interview_stream import SSE_HEADERS, InterviewEventChannel, stream_channel

router = APIRouter(prefix="/api/interview/stream", tags=["Interview Stream"])


@router.get("")
async def open_interview_stream(
    sessionId: str | None = Query(default=None),
    current_user: dict = Depends(get_current_user),
    flow: InterviewFlow = Depends(get_interview_flow),
) -> StreamingResponse:
    session_id = (sessionId or "").strip()
    if not session_id:
        raise ValidationError("Session ID required")
    session = await run_in_threadpool(flow.service.get_session_by_id, session_id)
    if session is None:
        raise NotFoundError("Session not found")
    if session["userId"] != str(current_user["userId"]):
        raise AuthorizationError("Forbidden")

    channel = InterviewEventChannel(session_id, lambda: flow.ask_next_question(session_id))
    return StreamingResponse(
        stream_channel(channel),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("", response_model=StreamCommandResponse)
def handle_stream_command(
    payload: StreamCommandRequest,
    current_user: dict = Depends(get_current_user),
    flow: InterviewFlow = Depends(get_interview_flow),
) -> StreamCommandResponse:
    if payload.sessionId:
        session = flow.service.get_session_by_id(payload.sessionId)
        if session is not None and session["userId"] != str(current_user["userId"]):
            raise AuthorizationError("Forbidden")

    if payload.type == "answer_submitted":
        body = payload.payload if isinstance(payload.payload, dict) else {}
        feedback = flow.submit_answer(payload.sessionId, body)
        return StreamCommandResponse(data={"feedback": FeedbackDTO(**feedback).model_dump(mode="json")})

    if payload.type == "session_end":
        summary = flow.end_session(payload.sessionId)
        return StreamCommandResponse(data={"summary": SummaryDTO(**summary).model_dump(mode="json")})

    # Unknown event types are acknowledged so newer clients keep working.
    return StreamCommandResponse(data={"message": "Message received"})
