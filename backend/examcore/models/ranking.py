"""Ranking scope and leaderboard models"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from .attempt import ResultStatus


class ScopeKind(str, Enum):
    EXAM = "exam"
    COMPETITION = "competition"
    DEPARTMENT = "department"
    COLLEGE = "college"
    GLOBAL = "global"


class RankingScope(BaseModel):
    """Population a ranking is computed over"""
    model_config = ConfigDict(frozen=True, use_enum_values=True, validate_default=True)
    kind: ScopeKind
    value: Optional[str] = None

    @model_validator(mode="after")
    def _value_required(self):
        if self.kind != ScopeKind.GLOBAL and not self.value:
            raise ValueError(f"scope '{self.kind}' requires a value")
        if self.kind == ScopeKind.GLOBAL and self.value:
            raise ValueError("global scope takes no value")
        return self

    @classmethod
    def for_exam(cls, exam_id: str) -> "RankingScope":
        return cls(kind=ScopeKind.EXAM, value=exam_id)

    @property
    def key(self) -> str:
        if self.kind == ScopeKind.GLOBAL:
            return ScopeKind.GLOBAL.value
        return f"{self.kind}:{self.value}"

    def result_filter(self) -> Dict[str, Any]:
        """Mongo filter selecting the evaluated results of this scope."""
        query: Dict[str, Any] = {"status": ResultStatus.EVALUATED.value}
        if self.kind in (ScopeKind.EXAM, ScopeKind.COMPETITION):
            query["exam_id"] = self.value
            query["assessment_kind"] = self.kind
        elif self.kind == ScopeKind.DEPARTMENT:
            query["department_id"] = self.value
        elif self.kind == ScopeKind.COLLEGE:
            query["college_id"] = self.value
        return query


class LeaderboardEntry(BaseModel):
    student_id: str
    attempt_id: str
    exam_id: str
    score: float
    percentage: float
    rank: int
    submitted_at: Optional[datetime] = None
