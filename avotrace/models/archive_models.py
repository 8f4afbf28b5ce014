# avotrace/models/archive_models.py
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class BoxCreateModel(BaseModel):
    title: str = Field(min_length=1, max_length=120)
    color: str = "#4f7d5c"
    icon: str = "folder"

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title is required")
        return v


class BoxItemCreateModel(BaseModel):
    """Form fields sent alongside the (optional) uploaded file."""
    name: str = Field(min_length=1, max_length=200)
    type: Optional[str] = None
