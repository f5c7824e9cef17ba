import json
import logging
import os
import urllib.error
import urllib.request

from applymint.errors import UpstreamError

LOGGER = logging.getLogger(__name__)

DEFAULT_GEMINI_TOKEN_URL = "https://generativelanguage.googleapis.com/v1alpha/ephemeralTokens"
DEFAULT_LIVE_MODEL = "gemini-live-2.5-flash-preview"
TOKEN_TTL = "3600s"
TOKEN_SCOPES = ["https://www.googleapis.com/auth/generative-language.retriever"]

AUDIO_CONFIG = {
    "sampleRate": 16000,
    "channels": 1,
    "bitDepth": 16,
    "encoding": "linear16",
}


class GeminiNotConfiguredError(Exception):
    pass


def gemini_api_key() -> str:
    return os.getenv("GEMINI_API_KEY", "").strip()


def gemini_token_url() -> str:
    return os.getenv("GEMINI_TOKEN_URL", DEFAULT_GEMINI_TOKEN_URL).strip()


def create_gemini_ephemeral_token(*, session_id: str, model: str | None = None) -> dict:
    api_key = gemini_api_key()
    if not api_key:
        raise GeminiNotConfiguredError("Gemini API not configured")

    token_data = _post_json(
        gemini_token_url(),
        {"ttl": TOKEN_TTL, "scopes": TOKEN_SCOPES},
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        },
    )
    token = str(token_data.get("token") or "").strip()
    if not token:
        raise UpstreamError("Failed to create ephemeral token")
    LOGGER.info("Issued Gemini ephemeral token for session %s", session_id)
    return {
        "ephemeralToken": token,
        "expiresAt": token_data.get("expiresAt"),
        "model": model or DEFAULT_LIVE_MODEL,
        "audioConfig": dict(AUDIO_CONFIG),
    }


def _post_json(url: str, payload: dict, headers: dict[str, str]) -> dict:
    req = urllib.request.Request(
        url=url,
        data=json.dumps(payload, ensure_ascii=True).encode("utf-8"),
        headers=headers,
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=30) as response:
            raw = response.read().decode("utf-8")
            return json.loads(raw) if raw else {}
    except urllib.error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore")
        LOGGER.warning("Gemini token request failed with HTTP %s: %s", exc.code, body[:500])
        raise UpstreamError("Failed to create ephemeral token", status_code=exc.code) from exc
    except urllib.error.URLError as exc:
        LOGGER.warning("Gemini token request failed: %s", exc.reason)
        raise UpstreamError("Failed to create ephemeral token") from exc
    except ValueError as exc:
        raise UpstreamError("Failed to create ephemeral token") from exc
