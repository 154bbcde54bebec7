from typing import List, Optional

from pydantic import BaseModel


class UserInfo(BaseModel):
    """Normalized caller identity (from access token or authorizer claims)"""
    user_type: str  # "Clinic" or "Professional"
    sub: str
    clinic_id: Optional[str] = None
    email: str = ""
    name: str = ""
    groups: List[str] = []
    participant_key: str
