from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class EvaluationModel(Base):
    """
    One row per evaluated candidate: sequence id -> parameters -> outcome.
    """

    __tablename__ = "evaluations"
    __table_args__ = (
        UniqueConstraint("experiment_id", "sequence_id", name="uq_evaluation_sequence"),
        Index("ix_evaluations_experiment", "experiment_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    experiment_id: Mapped[str] = mapped_column(String, nullable=False)
    target: Mapped[str] = mapped_column(String, nullable=False)
    sequence_id: Mapped[int] = mapped_column(Integer, nullable=False)
    parameters: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    # NULL when the evaluation was aborted
    score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    aborted: Mapped[bool] = mapped_column(Boolean, default=False)
    results: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    wall_time: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
