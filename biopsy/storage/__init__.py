from __future__ import annotations

from .ledger import EvaluationLedger, EvaluationRecord

__all__ = ["EvaluationLedger", "EvaluationRecord"]
