from fastapi import APIRouter

from timetable_engine.schemas.constraints import ConstraintDefinition
from timetable_engine.services.constraints import default_constraints

router = APIRouter()


@router.get("/constraints/defaults", response_model=list[ConstraintDefinition])
def list_default_constraints() -> list[ConstraintDefinition]:
    return default_constraints()
