from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

InterviewMode = Literal["text", "voice"]
SessionStatus = Literal["pending", "active", "paused", "completed", "cancelled", "failed"]
DifficultyLevel = Literal["entry", "junior", "mid", "senior", "expert"]
QuestionType = Literal["technical", "behavioral", "situational", "general"]
MessageType = Literal["system", "user", "assistant"]


class SessionCreateRequest(BaseModel):
    # Required fields are checked by the service so a missing one yields a
    # plain "Missing required fields" error.
    title: str | None = Field(default=None, max_length=255)
    jobRole: str | None = None
    mode: InterviewMode | None = None
    company: str | None = None
    difficulty: DifficultyLevel | None = None
    duration: int | None = Field(default=None, ge=15, le=120)
    questionTypes: list[QuestionType] | None = None
    customInstructions: str | None = None


class SessionUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    mode: InterviewMode | None = None
    status: SessionStatus | None = None
    jobRole: str | None = Field(default=None, min_length=1)
    company: str | None = None
    difficulty: DifficultyLevel | None = None
    duration: int | None = Field(default=None, ge=15, le=120)
    currentQuestionIndex: int | None = Field(default=None, ge=0)
    totalQuestions: int | None = Field(default=None, ge=1, le=20)
    overallScore: int | None = Field(default=None, ge=0, le=10)
    customInstructions: str | None = None
    questionTypes: list[QuestionType] | None = None


class QuestionCreate(BaseModel):
    type: QuestionType
    question: str = Field(..., min_length=1)
    context: str | None = None
    expectedAnswerPoints: list[str] = Field(default_factory=list)
    difficulty: DifficultyLevel = "mid"
    timeLimit: int = Field(default=300, ge=30, le=1800)
    order: int | None = Field(default=None, ge=1)
    askedAt: datetime | None = None


class ResponseCreate(BaseModel):
    answer: str = Field(..., min_length=1)
    audioUrl: str | None = None
    transcription: str | None = None
    duration: int = Field(default=0, ge=0)
    communicationScore: int = Field(..., ge=0, le=10)
    technicalScore: int = Field(..., ge=0, le=10)
    completenessScore: int = Field(..., ge=0, le=10)
    overallScore: int | None = Field(default=None, ge=0, le=10)
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    improvedAnswer: str | None = None
    submittedAt: datetime | None = None


class MessageCreate(BaseModel):
    type: MessageType
    content: str = Field(..., min_length=1)
    questionId: str | None = None
    audioUrl: str | None = None
    transcription: str | None = None
    messageIndex: int | None = Field(default=None, ge=0)


class SessionDTO(BaseModel):
    id: str
    userId: str
    title: str
    mode: str
    status: str
    jobRole: str
    company: str | None = None
    difficulty: str
    duration: int
    currentQuestionIndex: int
    totalQuestions: int
    overallScore: int | None = None
    customInstructions: str | None = None
    questionTypes: list[str] | None = None
    startedAt: datetime | None = None
    completedAt: datetime | None = None
    createdAt: datetime
    updatedAt: datetime


class QuestionDTO(BaseModel):
    id: str
    sessionId: str
    type: str
    question: str
    context: str | None = None
    expectedAnswerPoints: list[str] = Field(default_factory=list)
    difficulty: str
    timeLimit: int
    order: int
    askedAt: datetime | None = None
    answeredAt: datetime | None = None


class ResponseDTO(BaseModel):
    id: str
    questionId: str
    answer: str
    audioUrl: str | None = None
    transcription: str | None = None
    duration: int
    communicationScore: int
    technicalScore: int
    completenessScore: int
    overallScore: int
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    improvedAnswer: str | None = None
    submittedAt: datetime


class MessageDTO(BaseModel):
    id: str
    type: str
    content: str
    messageIndex: int
    timestamp: datetime
    questionId: str | None = None
    audioUrl: str | None = None
    transcription: str | None = None


class ConversationDTO(BaseModel):
    session: SessionDTO
    messages: list[MessageDTO] = Field(default_factory=list)
    questions: list[QuestionDTO] = Field(default_factory=list)
    responses: list[ResponseDTO] = Field(default_factory=list)


class SessionStatsDTO(BaseModel):
    totalSessions: int
    completedSessions: int
    averageScore: float
    totalPracticeTime: int


class SessionEnvelope(BaseModel):
    success: bool = True
    data: SessionDTO


class SessionListEnvelope(BaseModel):
    success: bool = True
    data: list[SessionDTO] = Field(default_factory=list)


class ConversationEnvelope(BaseModel):
    success: bool = True
    data: ConversationDTO


class SessionStatsEnvelope(BaseModel):
    success: bool = True
    data: SessionStatsDTO
