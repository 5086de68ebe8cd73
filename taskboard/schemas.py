from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, constr


class ValidationResult(BaseModel):
    loc: str
    msg: str


class TodoCreate(BaseModel):
    description: constr(strip_whitespace=True, min_length=1, max_length=2000)
    complete: bool = False


class TodoUpdate(BaseModel):
    description: Optional[constr(strip_whitespace=True, min_length=1, max_length=2000)] = None
    complete: Optional[bool] = None


class TodoToggle(BaseModel):
    complete: bool


class TodoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    description: str
    complete: bool
    user_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


def format_errors(exc: ValidationError) -> List[ValidationResult]:
    return [
        ValidationResult(loc=".".join(str(p) for p in error["loc"]), msg=error["msg"])
        for error in exc.errors()
    ]
