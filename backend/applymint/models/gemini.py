from pydantic import BaseModel


class GeminiTokenRequest(BaseModel):
    sessionId: str | None = None
    model: str | None = None


class AudioConfig(BaseModel):
    sampleRate: int
    channels: int
    bitDepth: int
    encoding: str


class GeminiTokenData(BaseModel):
    ephemeralToken: str
    expiresAt: str | None = None
    model: str
    audioConfig: AudioConfig


class GeminiTokenResponse(BaseModel):
    success: bool = True
    data: GeminiTokenData
