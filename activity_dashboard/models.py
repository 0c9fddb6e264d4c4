from datetime import datetime
from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, Optional, Union

# category name -> number of videos; "Unknown" collects missing categories
CategorySummary = Dict[str, int]
# activity type -> number of interactions
ActivitySummary = Dict[str, int]


class User(BaseModel):
    userId: str
    displayName: str


class ContentRecord(BaseModel):
    """Video metadata document; unknown fields are carried through as-is."""

    model_config = ConfigDict(extra="allow")

    id: str
    title: Optional[Any] = None
    category: Optional[Any] = None


class Interaction(BaseModel):
    model_config = ConfigDict(extra="allow")

    interactionId: str
    time: Union[datetime, int, float]
    activity: Optional[Any] = None
    content: Optional[Any] = None
    videoId: Optional[Any] = None


class JoinedInteraction(Interaction):
    video: Optional[ContentRecord] = None
    details: Optional[Dict[str, Any]] = None


class CacheEntry(BaseModel):
    data: CategorySummary
    timestamp: int
