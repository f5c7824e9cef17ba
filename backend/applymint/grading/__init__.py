from applymint.grading.graders import (
    Grader,
    OpenAIGrader,
    PlaceholderGrader,
    StaticGrader,
    build_grader,
    compute_overall_score,
    round_half_up,
)
from applymint.grading.summary import build_session_summary

__all__ = [
    "Grader",
    "OpenAIGrader",
    "PlaceholderGrader",
    "StaticGrader",
    "build_grader",
    "build_session_summary",
    "compute_overall_score",
    "round_half_up",
]
