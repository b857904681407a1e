"""In-memory page state structures produced by the visual analyzer."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class VisualSnapshot(BaseModel):
    """Structured read of page state at one instant."""
    has_content: bool = False
    is_blank: bool = True
    text_content: str = ""  # first 500 chars of visible text
    element_count: int = 0
    image_count: int = 0
    has_errors: bool = False
    error_messages: list[str] = Field(default_factory=list)
    loading_indicators: list[str] = Field(default_factory=list)
    performance_timings: Optional[dict[str, float]] = None


class VisualDiff(BaseModel):
    has_significant_change: bool
    change_percentage: float  # 0-100
    changed_elements: list[str] = Field(default_factory=list)
