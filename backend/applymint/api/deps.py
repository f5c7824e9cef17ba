from fastapi import Request

from applymint.services.interview_flow import InterviewFlow
from applymint.services.interview_service import InterviewService


def get_interview_service(request: Request) -> InterviewService:
    return request.app.state.interview_service


def get_interview_flow(request: Request) -> InterviewFlow:
    return request.app.state.interview_flow
