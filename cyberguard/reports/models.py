from pydantic import BaseModel
from typing import Optional


class ClientInfo(BaseModel):
    ip_address: str = "unknown"
    user_agent: str = "unknown"


class ReportDraft(BaseModel):
    """A submission that passed validation and sanitization"""
    reporter_name: str
    reporter_email: Optional[str] = None
    reporter_phone: Optional[str] = None
    crime_type: str
    description: str
    latitude: float
    longitude: float


class SubmissionResult(BaseModel):
    report_number: str
    report_id: int
    timestamp: str


class SubmissionStats(BaseModel):
    total_submissions: int
    today_submissions: int
    week_submissions: int
