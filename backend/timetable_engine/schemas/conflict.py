from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, List, Optional

ConflictType = Literal["teacher_overlap", "room_overlap", "class_overlap", "constraint_violation"]
Severity = Literal["high", "medium", "low"]


class Conflict(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: ConflictType
    severity: Severity
    description: str
    affected_entries: List[str]  # ScheduleEntry ids involved
    suggested_resolution: Optional[str] = None


class ConflictReport(BaseModel):
    conflicts: List[Conflict] = Field(default_factory=list)
