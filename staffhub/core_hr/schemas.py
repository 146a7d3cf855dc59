"""Core HR Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create  → request bodies (write)
  - *Brief   → compact embedded representations
"""


import uuid
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class EmployeeCreate(BaseModel):
    """Payload for creating a new employee."""

    employee_code: str = Field(..., min_length=1, max_length=20)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    designation: Optional[str] = Field(None, max_length=100)
    department: Optional[str] = Field(None, max_length=100)
    join_date: date


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in leave and attendance responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    first_name: str
    last_name: str
    designation: Optional[str] = None
    department: Optional[str] = None
