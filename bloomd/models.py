"""
Core data models
"""
from enum import Enum
from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class Status(str, Enum):
    """Single-line status replies the server is known to send"""

    DONE = "Done"
    EXISTS = "Exists"
    YES = "Yes"
    NO = "No"
    FILTER_NOT_FOUND = "Filter does not exist"
    UNRECOGNIZED = "unrecognized"


class FilterSpec(BaseModel):
    """Parameters for creating a filter on the server"""

    model_config = ConfigDict(frozen=True)

    name: str
    capacity: Optional[int] = Field(default=None, ge=1)
    # 0 leaves the choice to the server, like an unset probability
    prob: Optional[float] = Field(default=None, ge=0, lt=1)
    in_memory: bool = False


class FilterInfo(BaseModel):
    """Filter details parsed from an info block"""

    name: str
    capacity: int
    probability: float
    in_memory: bool
    fields: Dict[str, str] = Field(default_factory=dict)
