from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class StreamCommandRequest(BaseModel):
    type: str = Field(..., min_length=1)
    payload: Any = None
    sessionId: str | None = None


class FeedbackDTO(BaseModel):
    id: str
    answerId: str | None = None
    questionId: str | None = None
    sessionId: str | None = None
    communicationScore: int
    technicalScore: int
    completenessScore: int
    overallScore: int
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    improvedAnswer: str | None = None
    createdAt: datetime


class CategoryScore(BaseModel):
    answered: int = 0
    avgScore: float = 0.0


class SummaryDTO(BaseModel):
    sessionId: str | None = None
    overallScore: float = Field(..., ge=0.0, le=10.0)
    totalQuestions: int
    answeredQuestions: int
    averageResponseTime: float
    communicationAvg: float
    technicalAvg: float
    completenessAvg: float
    technicalQuestions: CategoryScore
    behavioralQuestions: CategoryScore
    situationalQuestions: CategoryScore
    topStrengths: list[str] = Field(default_factory=list)
    areasForImprovement: list[str] = Field(default_factory=list)
    recommendedResources: list[str] = Field(default_factory=list)
    nextSteps: list[str] = Field(default_factory=list)
    generatedAt: datetime


class StreamCommandResponse(BaseModel):
    success: bool = True
    data: dict[str, Any] = Field(default_factory=dict)
