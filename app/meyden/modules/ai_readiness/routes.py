from __future__ import annotations

from typing import Any, Literal

from flask import Blueprint, g, jsonify, request
from pydantic import Field, field_validator, model_validator
from sqlalchemy import func

from app.meyden.auth import client_ip
from app.meyden.constants import SURVEY_ACTIVE
from app.meyden.db import db_session
from app.meyden.errors import Conflict, NotFound, ValidationFailed
from app.meyden.models import User
from app.meyden.modules.ai_readiness.models import Question, Survey, SurveyResponse
from app.meyden.modules.ai_readiness.service import (
    create_survey,
    record_response,
    serialize_response,
    serialize_survey,
)
from app.meyden.rbac import current_user, require_auth, require_permission
from app.meyden.schemas import CamelModel, parse_body
from app.meyden.utils import get_pagination_params, pagination_meta

bp = Blueprint("ai_readiness", __name__)


class QuestionCreate(CamelModel):
    text: str = Field(min_length=1, max_length=1000)
    description: str | None = None
    type: Literal["SINGLE_CHOICE", "MULTIPLE_CHOICE", "SCALE", "BOOLEAN", "TEXT"] = "SINGLE_CHOICE"
    options: list[str] | None = None
    min_value: int | None = None
    max_value: int | None = None
    dimension: str | None = Field(default=None, max_length=64)
    order: int | None = Field(default=None, ge=0)
    max_score: float = Field(default=1.0, gt=0)
    is_required: bool = True

    @model_validator(mode="after")
    def check_shape(self):
        if self.type in ("SINGLE_CHOICE", "MULTIPLE_CHOICE") and not self.options:
            raise ValueError("Choice questions need at least one option")
        if self.type == "SCALE" and None not in (self.min_value, self.max_value):
            if self.max_value <= self.min_value:  # type: ignore[operator]
                raise ValueError("maxValue must be greater than minValue")
        return self


class SurveyCreate(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    instructions: str | None = Field(default=None, max_length=5000)
    category: str | None = Field(default=None, max_length=100)
    is_public: bool = True
    time_limit: int | None = Field(default=None, ge=1)
    max_attempts: int | None = Field(default=None, ge=1)
    passing_score: float | None = Field(default=None, ge=0, le=100)
    questions: list[QuestionCreate] = Field(default_factory=list)


class AnswerIn(CamelModel):
    question_id: int
    answer: Any = None
    time_spent: int | None = Field(default=None, ge=0)
    comment: str | None = Field(default=None, max_length=2000)


class ResponseCreate(CamelModel):
    survey_id: int
    answers: list[AnswerIn] = Field(min_length=1)
    device_info: str | None = Field(default=None, max_length=255)
    feedback: str | None = Field(default=None, max_length=5000)

    @field_validator("answers")
    @classmethod
    def unique_questions(cls, v: list[AnswerIn]) -> list[AnswerIn]:
        ids = [a.question_id for a in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Each question may only be answered once")
        return v


def _answered(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, list):
        return bool(value)
    return True


def _active_survey(survey_id: int) -> Survey:
    s = db_session()
    survey = s.get(Survey, survey_id)
    if survey is None:
        raise NotFound("Survey not found", code="SURVEY_NOT_FOUND")
    if survey.status != SURVEY_ACTIVE:
        raise NotFound("Survey is not available", code="SURVEY_UNAVAILABLE")
    return survey


@bp.get("/surveys")
def list_surveys():
    page, limit, offset = get_pagination_params()
    s = db_session()
    q = s.query(Survey).filter(Survey.status == SURVEY_ACTIVE)
    category = (request.args.get("category") or "").strip()
    if category:
        q = q.filter(Survey.category.ilike(category))
    if (request.args.get("public") or "").strip().lower() == "true":
        q = q.filter(Survey.is_public.is_(True))
    total = q.count()
    surveys = q.order_by(Survey.published_at.desc(), Survey.id.desc()).offset(offset).limit(limit).all()

    ids = [sv.id for sv in surveys]
    question_counts: dict[int, int] = {}
    response_counts: dict[int, int] = {}
    if ids:
        question_counts = dict(
            s.query(Question.survey_id, func.count(Question.id))
            .filter(Question.survey_id.in_(ids))
            .group_by(Question.survey_id)
            .all()
        )
        response_counts = dict(
            s.query(SurveyResponse.survey_id, func.count(SurveyResponse.id))
            .filter(SurveyResponse.survey_id.in_(ids))
            .group_by(SurveyResponse.survey_id)
            .all()
        )
    data = [
        serialize_survey(
            sv,
            questionCount=int(question_counts.get(sv.id, 0)),
            responseCount=int(response_counts.get(sv.id, 0)),
        )
        for sv in surveys
    ]
    return jsonify({"surveys": data, "pagination": pagination_meta(page, limit, total)})


@bp.get("/surveys/<int:survey_id>")
def get_survey(survey_id: int):
    survey = _active_survey(survey_id)
    return jsonify({"survey": serialize_survey(survey, include_questions=True)})


@bp.post("/surveys")
@require_permission("surveys.manage")
def post_survey():
    body = parse_body(SurveyCreate)
    s = db_session()
    survey = create_survey(s, body.model_dump(), current_user())
    s.commit()
    return (
        jsonify({"message": "Survey created successfully", "survey": serialize_survey(survey, include_questions=True)}),
        201,
    )


@bp.post("/responses")
def post_response():
    body = parse_body(ResponseCreate)
    survey = _active_survey(body.survey_id)
    s = db_session()
    user: User | None = getattr(g, "current_user", None)

    known = {q.id for q in survey.questions}
    unknown = sorted(a.question_id for a in body.answers if a.question_id not in known)
    if unknown:
        raise ValidationFailed(
            "Answers reference questions outside this survey", code="INVALID_QUESTION", questionIds=unknown
        )
    answered = {a.question_id for a in body.answers if _answered(a.answer)}
    missing = [q.id for q in survey.questions if q.is_required and q.id not in answered]
    if missing:
        raise ValidationFailed("Required questions were not answered", code="MISSING_REQUIRED_ANSWERS", questionIds=missing)

    if user is not None and survey.max_attempts:
        attempts = (
            s.query(func.count(SurveyResponse.id))
            .filter(SurveyResponse.survey_id == survey.id, SurveyResponse.user_id == user.id)
            .scalar()
        )
        if attempts >= survey.max_attempts:
            raise Conflict(
                "Maximum attempts reached for this survey", code="MAX_ATTEMPTS_REACHED", maxAttempts=survey.max_attempts
            )

    resp, result = record_response(
        s,
        survey,
        [a.model_dump() for a in body.answers],
        user=user,
        device_info=body.device_info,
        ip_address=client_ip(),
        feedback=body.feedback,
    )
    s.commit()
    return (
        jsonify(
            {
                "message": "Survey response recorded",
                "response": {
                    "id": resp.id,
                    "surveyId": survey.id,
                    "totalScore": resp.total_score,
                    "maxScore": resp.max_score,
                    "percentage": resp.percentage,
                    "grade": resp.grade,
                    "passed": resp.passed,
                    "dimensions": result["dimensions"],
                },
            }
        ),
        201,
    )


@bp.get("/responses/my")
@require_auth
def my_responses():
    page, limit, offset = get_pagination_params()
    s = db_session()
    q = s.query(SurveyResponse).filter(SurveyResponse.user_id == current_user().id)
    total = q.count()
    rows = q.order_by(SurveyResponse.completed_at.desc(), SurveyResponse.id.desc()).offset(offset).limit(limit).all()
    return jsonify({"responses": [serialize_response(r) for r in rows], "pagination": pagination_meta(page, limit, total)})
