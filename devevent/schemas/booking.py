from pydantic import BaseModel
from datetime import datetime


class BookingCreate(BaseModel):
    eventId: str
    email: str


class BookingOut(BaseModel):
    id: str
    eventId: str
    email: str
    createdAt: datetime
    updatedAt: datetime
