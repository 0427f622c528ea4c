from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime


class EventBase(BaseModel):
    title: str
    description: str
    overview: str
    image: str
    venue: str
    location: str
    date: str
    time: str
    mode: str
    audience: str
    agenda: List[str]
    organizer: str
    tags: List[str]


class EventCreate(EventBase):
    pass


class EventUpdate(BaseModel):
    """Partial update; only the fields that are set are validated and written"""

    title: Optional[str] = None
    description: Optional[str] = None
    overview: Optional[str] = None
    image: Optional[str] = None
    venue: Optional[str] = None
    location: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    mode: Optional[str] = None
    audience: Optional[str] = None
    agenda: Optional[List[str]] = None
    organizer: Optional[str] = None
    tags: Optional[List[str]] = None


class EventOut(EventBase):
    id: str
    slug: str
    createdAt: datetime
    updatedAt: datetime
