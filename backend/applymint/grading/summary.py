from collections import Counter
from datetime import datetime, timezone
from statistics import mean
from typing import Any

CATEGORY_KEYS = {
    "technical": "technicalQuestions",
    "behavioral": "behavioralQuestions",
    "situational": "situationalQuestions",
}

SCORE_FIELDS = {
    "communicationAvg": "communicationScore",
    "technicalAvg": "technicalScore",
    "completenessAvg": "completenessScore",
}

RESOURCES_BY_FOCUS = {
    "communicationAvg": [
        "Practice answers with the STAR method",
        "Record a mock answer and review pacing",
    ],
    "technicalAvg": [
        "System Design Interview book",
        "LeetCode algorithms practice",
    ],
    "completenessAvg": [
        "Review edge cases and trade-offs for common designs",
        "Write out expected answer points before practicing",
    ],
}

MAX_HIGHLIGHTS = 3


def build_session_summary(
    session_id: str | None,
    *,
    session: dict | None,
    questions: list[dict],
    responses: list[dict],
) -> dict[str, Any]:
    """Aggregate stored responses of one session into the end-of-session summary.

    Averages are on the 0-10 scale and rounded to one decimal; sessions with no
    responses produce zeros and empty highlight lists.
    """
    questions_by_id = {question["id"]: question for question in questions}

    averages = {
        key: _avg([response[field] for response in responses]) for key, field in SCORE_FIELDS.items()
    }

    categories: dict[str, dict[str, Any]] = {}
    for question_type, key in CATEGORY_KEYS.items():
        scores = [
            response["overallScore"]
            for response in responses
            if (questions_by_id.get(response["questionId"]) or {}).get("type") == question_type
        ]
        categories[key] = {"answered": len(scores), "avgScore": _avg(scores)}

    total_questions = len(questions)
    if session is not None:
        total_questions = max(int(session.get("totalQuestions") or 0), total_questions)

    weakest = min(averages, key=lambda key: averages[key]) if responses else None

    return {
        "sessionId": session_id,
        "overallScore": _avg([response["overallScore"] for response in responses]),
        "totalQuestions": total_questions,
        "answeredQuestions": len(responses),
        "averageResponseTime": _avg([response.get("duration") or 0 for response in responses]),
        **averages,
        **categories,
        "topStrengths": _most_common(response.get("strengths") for response in responses),
        "areasForImprovement": _most_common(response.get("weaknesses") for response in responses),
        "recommendedResources": list(RESOURCES_BY_FOCUS.get(weakest, [])),
        "nextSteps": _most_common(response.get("suggestions") for response in responses),
        "generatedAt": datetime.now(timezone.utc),
    }


def _avg(values: list[float]) -> float:
    if not values:
        return 0.0
    return round(float(mean(values)), 1)


def _most_common(groups) -> list[str]:
    counter: Counter[str] = Counter()
    for group in groups:
        for item in group or []:
            text = str(item).strip()
            if text:
                counter[text] += 1
    return [text for text, _ in counter.most_common(MAX_HIGHLIGHTS)]
