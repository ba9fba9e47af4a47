"""
SQLite ledger of every evaluation an experiment performs.

The ledger is an archival side effect: it lets a run be correlated back to
the parameters that produced it, but the search never reads from it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import create_engine, distinct, select
from sqlalchemy.orm import sessionmaker

from biopsy.storage.schema import Base, EvaluationModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationRecord:
    experiment_id: str
    target: str
    sequence_id: int
    parameters: Dict[str, Any]
    score: Optional[float]
    aborted: bool
    wall_time: float
    created_at: datetime
    results: Optional[Dict[str, Any]] = None


class EvaluationLedger:
    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        if not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(f"sqlite:///{self.db_path}", echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)
        Base.metadata.create_all(self.engine)
        logger.debug(f"Initialized EvaluationLedger at {self.db_path}")

    def record(
        self,
        experiment_id: str,
        target: str,
        sequence_id: int,
        parameters: Mapping[str, Any],
        score: Optional[float],
        wall_time: float,
        results: Optional[Mapping[str, Any]] = None,
    ) -> None:
        aborted = score is None or not math.isfinite(score)
        row = EvaluationModel(
            experiment_id=experiment_id,
            target=target,
            sequence_id=sequence_id,
            parameters=dict(parameters),
            score=None if aborted else float(score),
            aborted=aborted,
            results=dict(results) if results is not None else None,
            wall_time=float(wall_time),
            created_at=datetime.now(timezone.utc),
        )
        with self.SessionLocal() as session:
            session.add(row)
            session.commit()

    def list_evaluations(self, experiment_id: Optional[str] = None) -> List[EvaluationRecord]:
        with self.SessionLocal() as session:
            stmt = select(EvaluationModel)
            if experiment_id is not None:
                stmt = stmt.where(EvaluationModel.experiment_id == experiment_id)
            stmt = stmt.order_by(EvaluationModel.id)
            return [self._to_record(row) for row in session.scalars(stmt)]

    def list_experiments(self) -> List[str]:
        with self.SessionLocal() as session:
            stmt = select(distinct(EvaluationModel.experiment_id))
            return sorted(session.scalars(stmt))

    @staticmethod
    def _to_record(row: EvaluationModel) -> EvaluationRecord:
        return EvaluationRecord(
            experiment_id=row.experiment_id,
            target=row.target,
            sequence_id=row.sequence_id,
            parameters=dict(row.parameters),
            score=row.score,
            aborted=row.aborted,
            wall_time=row.wall_time,
            created_at=row.created_at,
            results=row.results,
        )
