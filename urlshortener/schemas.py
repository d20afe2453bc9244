from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime


class LinkCreate(BaseModel):
    # Only types are checked here; ShortenerService validates values so bad input is a 400.
    # target_url stays a plain string so the stored target is byte-for-byte what was submitted.
    target_url: str
    code: Optional[str] = None
    ttl_seconds: Optional[int] = None


class LinkResponse(BaseModel):
    code: str
    short_url: str
    target_url: str
    created_at: datetime
    expires_at: Optional[datetime]


class PagedLinks(BaseModel):
    data: List[LinkResponse]
    last: Optional[str]


class AuthRequest(BaseModel):
    authorization_code: str


class AuthResponse(BaseModel):
    access_token: str
    token_type: str


class MeResponse(BaseModel):
    email: str
