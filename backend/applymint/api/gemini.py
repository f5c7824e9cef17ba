from fastapi import APIRouter, Depends, status

from applymint.api.security import get_current_user
from applymint.errors import UpstreamError, ValidationError
from applymint.models.gemini import GeminiTokenData, GeminiTokenRequest, GeminiTokenResponse
from applymint.services.gemini_token import GeminiNotConfiguredError, create_gemini_ephemeral_token

router = APIRouter(prefix="/api/interview", tags=["Gemini"])


@router.post("/gemini-token", response_model=GeminiTokenResponse)
def create_gemini_token(
    payload: GeminiTokenRequest,
    current_user: dict = Depends(get_current_user),
) -> GeminiTokenResponse:
    _ = current_user
    session_id = (payload.sessionId or "").strip()
    if not session_id:
        raise ValidationError("Session ID is required")
    try:
        data = create_gemini_ephemeral_token(
            session_id=session_id,
            model=(payload.model or "").strip() or None,
        )
    except GeminiNotConfiguredError as exc:
        raise UpstreamError(str(exc), status_code=status.HTTP_503_SERVICE_UNAVAILABLE) from exc
    return GeminiTokenResponse(data=GeminiTokenData(**data))
