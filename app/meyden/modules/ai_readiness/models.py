from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.meyden.models import Base
from app.meyden.utils import utcnow

if TYPE_CHECKING:
    from app.meyden.models import User


class Survey(Base):
    __tablename__ = "surveys"
    __table_args__ = (Index("idx_surveys_status", "status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="DRAFT")
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    time_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)  # minutes
    max_attempts: Mapped[int | None] = mapped_column(Integer, nullable=True)
    passing_score: Mapped[float | None] = mapped_column(Float, nullable=True)  # percentage

    total_responses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow
    )

    questions: Mapped[list["Question"]] = relationship(
        back_populates="survey",
        cascade="all, delete-orphan",
        order_by="Question.order",
        lazy="selectin",
    )
    responses: Mapped[list["SurveyResponse"]] = relationship(back_populates="survey", lazy="select")


class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (Index("idx_questions_survey_order", "survey_id", "order"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    survey_id: Mapped[int] = mapped_column(ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False)

    text: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="SINGLE_CHOICE")
    # Choice options, best first.
    options: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    min_value: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_value: Mapped[int | None] = mapped_column(Integer, nullable=True)
    dimension: Mapped[str | None] = mapped_column(String(64), nullable=True)  # e.g. "Data", "Governance"

    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_score: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    survey: Mapped[Survey] = relationship(back_populates="questions")


class SurveyResponse(Base):
    __tablename__ = "survey_responses"
    __table_args__ = (Index("idx_survey_responses_survey_user", "survey_id", "user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    survey_id: Mapped[int] = mapped_column(ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    total_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    max_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    grade: Mapped[str] = mapped_column(String(32), nullable=False)
    passed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    dimension_scores: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    time_spent: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds
    device_info: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)

    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    survey: Mapped[Survey] = relationship(back_populates="responses", lazy="joined")
    user: Mapped["User | None"] = relationship()
    answers: Mapped[list["QuestionResponse"]] = relationship(
        back_populates="response", cascade="all, delete-orphan", lazy="selectin"
    )


class QuestionResponse(Base):
    __tablename__ = "question_responses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    response_id: Mapped[int] = mapped_column(ForeignKey("survey_responses.id", ondelete="CASCADE"), nullable=False)
    question_id: Mapped[int] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)

    answer: Mapped[Any] = mapped_column(JSON, nullable=True)
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    time_spent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    response: Mapped[SurveyResponse] = relationship(back_populates="answers")
    question: Mapped[Question] = relationship()
