"""
Completed visit data sent by the front-end to generate a clinical history.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import Field

from protocols_api.models.common import CamelModel


class Measurement(CamelModel):
    value: Any = None
    date: Optional[str] = None
    time: Optional[str] = None


class CompletedActivity(CamelModel):
    """One filled-in activity; ``value`` is a scalar, a list or a compound mapping."""

    id: Optional[str] = None
    name: str = ""
    description: Optional[str] = None
    value: Any = None
    measurements: List[Measurement] = Field(default_factory=list)
    date: Optional[str] = None
    time: Optional[str] = None


class VisitData(CamelModel):
    visit_name: Optional[str] = None
    timestamp: Optional[datetime] = None
    activities: List[CompletedActivity]


class ClinicalHistoryRequest(CamelModel):
    visit_data: VisitData
