# Pydantic schemas for API input and output

from typing import Any, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime


class HairstyleOption(BaseModel):
    name: str = Field(min_length=1)
    cover: Optional[str] = None  # reference image URL


class HairColorOption(BaseModel):
    name: str = Field(min_length=1)
    value: Optional[str] = None  # hex color, empty for "keep original"
    cover: Optional[str] = None


class CreateHairstyleRequest(BaseModel):
    hairstyle: List[HairstyleOption] = Field(min_length=1)
    hair_color: HairColorOption
    detail: Optional[str] = None
    type: Literal["gpt-4o", "kontext"] = "gpt-4o"


# Public projection of an AiTask row
class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    task_no: str
    task_id: Optional[str] = None
    created_at: datetime
    status: str
    completed_at: Optional[datetime] = None
    aspect: Optional[str] = None
    result_url: Optional[str] = None
    fail_reason: Optional[str] = None
    ext: dict[str, Any] = Field(default_factory=dict)


class TaskProgressOut(BaseModel):
    task: TaskOut
    progress: float


class CreditConsumptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    credits: int
    created_at: datetime


class HairstyleTasksOut(BaseModel):
    tasks: List[TaskOut]
    consumption: CreditConsumptionOut
