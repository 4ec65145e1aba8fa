from __future__ import annotations

from typing import TYPE_CHECKING, Any

from app.meyden.audit import record_event
from app.meyden.constants import SURVEY_ACTIVE
from app.meyden.modules.ai_readiness.models import Question, QuestionResponse, Survey, SurveyResponse
from app.meyden.utils import iso, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.meyden.models import User


GRADE_BANDS: tuple[tuple[float, str], ...] = (
    (90.0, "Expert"),
    (80.0, "Advanced"),
    (70.0, "Intermediate"),
    (60.0, "Beginner"),
)
GRADE_FLOOR = "Novice"


def grade_for(percentage: float) -> str:
    for threshold, label in GRADE_BANDS:
        if percentage >= threshold:
            return label
    return GRADE_FLOOR


def _option_index(options: list[Any], answer: Any) -> int | None:
    if isinstance(answer, bool):
        return None
    if isinstance(answer, int):
        return answer if 0 <= answer < len(options) else None
    if isinstance(answer, str):
        wanted = answer.strip().lower()
        for i, opt in enumerate(options):
            if str(opt).strip().lower() == wanted:
                return i
    return None


def _option_weight(n: int, index: int) -> float:
    if n <= 1:
        return 1.0
    return (n - 1 - index) / (n - 1)


def score_answer(question: Question, answer: Any) -> float:
    """Score one answer on 0..question.max_score.

    Choice options are stored best first, so earlier options weigh more.
    Anything unanswered or unrecognised scores zero.
    """
    max_score = float(question.max_score or 0.0)
    if answer is None:
        return 0.0
    qtype = question.type
    options = list(question.options or [])

    if qtype == "SINGLE_CHOICE":
        idx = _option_index(options, answer)
        return 0.0 if idx is None else max_score * _option_weight(len(options), idx)

    if qtype == "MULTIPLE_CHOICE":
        picked = answer if isinstance(answer, list) else [answer]
        indexes = {i for i in (_option_index(options, a) for a in picked) if i is not None}
        if not indexes:
            return 0.0
        weights = [_option_weight(len(options), i) for i in sorted(indexes)]
        return max_score * sum(weights) / len(weights)

    if qtype == "SCALE":
        if isinstance(answer, bool):
            return 0.0
        try:
            value = float(answer)
        except (TypeError, ValueError):
            return 0.0
        lo = float(question.min_value if question.min_value is not None else 1)
        hi = float(question.max_value if question.max_value is not None else 5)
        if hi <= lo:
            return max_score if value >= hi else 0.0
        ratio = (min(max(value, lo), hi) - lo) / (hi - lo)
        return max_score * ratio

    if qtype == "BOOLEAN":
        if isinstance(answer, str):
            return max_score if answer.strip().lower() in ("true", "yes") else 0.0
        return max_score if answer is True else 0.0

    if qtype == "TEXT":
        return max_score if isinstance(answer, str) and answer.strip() else 0.0

    return 0.0


def score_submission(questions: list[Question], answers: dict[int, Any]) -> dict[str, Any]:
    total = 0.0
    possible = 0.0
    per_question: dict[int, float] = {}
    dims: dict[str, dict[str, float]] = {}
    for q in questions:
        pts = score_answer(q, answers.get(q.id))
        per_question[q.id] = pts
        total += pts
        possible += float(q.max_score or 0.0)
        if q.dimension:
            d = dims.setdefault(q.dimension, {"score": 0.0, "maxScore": 0.0})
            d["score"] += pts
            d["maxScore"] += float(q.max_score or 0.0)

    percentage = round(total / possible * 100, 2) if possible else 0.0
    dimensions = {
        name: {
            "score": round(d["score"], 2),
            "maxScore": round(d["maxScore"], 2),
            "percentage": round(d["score"] / d["maxScore"] * 100, 2) if d["maxScore"] else 0.0,
        }
        for name, d in dims.items()
    }
    return {
        "total_score": round(total, 2),
        "max_score": round(possible, 2),
        "percentage": percentage,
        "grade": grade_for(percentage),
        "per_question": per_question,
        "dimensions": dimensions,
    }


def serialize_question(q: Question) -> dict[str, Any]:
    return {
        "id": q.id,
        "text": q.text,
        "description": q.description,
        "type": q.type,
        "options": q.options,
        "minValue": q.min_value,
        "maxValue": q.max_value,
        "dimension": q.dimension,
        "order": q.order,
        "maxScore": q.max_score,
        "isRequired": q.is_required,
    }


def serialize_survey(survey: Survey, *, include_questions: bool = False, **extra: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": survey.id,
        "title": survey.title,
        "description": survey.description,
        "instructions": survey.instructions,
        "category": survey.category,
        "status": survey.status,
        "isPublic": survey.is_public,
        "timeLimit": survey.time_limit,
        "maxAttempts": survey.max_attempts,
        "passingScore": survey.passing_score,
        "totalResponses": survey.total_responses,
        "averageScore": survey.average_score,
        "publishedAt": iso(survey.published_at),
        "createdAt": iso(survey.created_at),
    }
    if include_questions:
        data["questions"] = [serialize_question(q) for q in survey.questions]
    data.update(extra)
    return data


def serialize_response(r: SurveyResponse) -> dict[str, Any]:
    return {
        "id": r.id,
        "surveyId": r.survey_id,
        "totalScore": r.total_score,
        "maxScore": r.max_score,
        "percentage": r.percentage,
        "grade": r.grade,
        "passed": r.passed,
        "dimensions": r.dimension_scores or {},
        "timeSpent": r.time_spent,
        "completedAt": iso(r.completed_at),
        "survey": {"id": r.survey.id, "title": r.survey.title, "category": r.survey.category},
    }


def create_survey(s: "Session", payload: dict[str, Any], user: "User") -> Survey:
    now = utcnow()
    survey = Survey(
        title=payload["title"],
        description=payload.get("description"),
        instructions=payload.get("instructions"),
        category=payload.get("category"),
        is_public=payload.get("is_public", True),
        time_limit=payload.get("time_limit"),
        max_attempts=payload.get("max_attempts"),
        passing_score=payload.get("passing_score"),
        status=SURVEY_ACTIVE,
        published_at=now,
        created_by_user_id=user.id,
    )
    for i, q in enumerate(payload.get("questions") or []):
        survey.questions.append(
            Question(
                text=q["text"],
                description=q.get("description"),
                type=q.get("type") or "SINGLE_CHOICE",
                options=q.get("options"),
                min_value=q.get("min_value"),
                max_value=q.get("max_value"),
                dimension=q.get("dimension"),
                order=q["order"] if q.get("order") is not None else i + 1,
                max_score=q.get("max_score") or 1.0,
                is_required=q.get("is_required", True),
            )
        )
    s.add(survey)
    s.flush()
    record_event(
        s,
        actor=user,
        action="survey.create",
        entity_type="Survey",
        entity_id=str(survey.id),
        metadata={"questions": len(survey.questions)},
    )
    return survey


def record_response(
    s: "Session",
    survey: Survey,
    answers: list[dict[str, Any]],
    *,
    user: "User | None",
    device_info: str | None = None,
    ip_address: str | None = None,
    feedback: str | None = None,
) -> tuple[SurveyResponse, dict[str, Any]]:
    """Score and store a submission; caller validates question ids first."""
    by_question = {a["question_id"]: a for a in answers}
    result = score_submission(survey.questions, {qid: a.get("answer") for qid, a in by_question.items()})

    passed = None
    if survey.passing_score is not None:
        passed = result["percentage"] >= survey.passing_score
    time_spent = sum(int(a.get("time_spent") or 0) for a in answers) or None

    resp = SurveyResponse(
        survey_id=survey.id,
        user_id=user.id if user is not None else None,
        total_score=result["total_score"],
        max_score=result["max_score"],
        percentage=result["percentage"],
        grade=result["grade"],
        passed=passed,
        dimension_scores=result["dimensions"],
        time_spent=time_spent,
        device_info=device_info,
        ip_address=ip_address,
        feedback=feedback,
        completed_at=utcnow(),
    )
    for qid, a in by_question.items():
        resp.answers.append(
            QuestionResponse(
                question_id=qid,
                answer=a.get("answer"),
                score=round(result["per_question"].get(qid, 0.0), 2),
                time_spent=a.get("time_spent"),
                comment=a.get("comment"),
            )
        )
    s.add(resp)

    # Running mean over all stored responses.
    n = survey.total_responses or 0
    prev = survey.average_score or 0.0
    survey.total_responses = n + 1
    survey.average_score = round((prev * n + result["percentage"]) / (n + 1), 2)
    s.flush()

    record_event(
        s,
        actor=user,
        action="survey.response",
        entity_type="Survey",
        entity_id=str(survey.id),
        metadata={"responseId": resp.id, "percentage": resp.percentage, "grade": resp.grade},
    )
    return resp, result
