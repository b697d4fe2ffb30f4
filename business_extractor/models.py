"""Core data models shared by the search and enrichment pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class TaskState(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.COMPLETED, TaskState.FAILED)


@dataclass(slots=True)
class SearchRequest:
    """Categories x locations to search; ``save_to_database=None`` means use the configured default."""

    categories: List[str]
    locations: List[str]
    save_to_database: Optional[bool] = None


@dataclass(slots=True)
class TaskStatus:
    """Progress of one (category, location) pipeline."""

    id: str
    category: str
    location: str
    status: TaskState = TaskState.PENDING
    processed_items: int = 0
    total_items: Optional[int] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass(slots=True)
class BusinessRecord:
    """A business found through Google Places, keyed by its place id."""

    id: str
    business_name: Optional[str] = None
    real_category: Optional[str] = None
    category: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    maps_link: Optional[str] = None
    details_link: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class SearchResults:
    businesses: List[BusinessRecord] = field(default_factory=list)
    total: int = 0
    status: TaskState = TaskState.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "businesses": [business.to_dict() for business in self.businesses],
            "total": self.total,
            "status": self.status.value,
        }
