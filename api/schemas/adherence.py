"""
Adherence Schemas
Pydantic models for dose tracking API requests and responses
"""

from typing import Optional, List
from datetime import datetime, date
from pydantic import BaseModel, Field, ConfigDict


# ==================== REQUEST SCHEMAS ====================

class DoseStatusUpdate(BaseModel):
    """
    Schema for marking a dose. ``status`` and ``scheduled_time`` are checked
    case-insensitively by the service.
    """
    patient_id: int
    status: str = Field(..., examples=["taken", "missed", "pending"])
    scheduled_time: str = Field(..., examples=["morning", "afternoon", "evening"])
    scheduled_date: Optional[date] = None
    medicine_id: Optional[int] = None
    prescription_id: Optional[int] = None
    medication: Optional[str] = Field(None, max_length=255)
    is_new_medication: bool = False


# ==================== RESPONSE SCHEMAS ====================

class AdherenceRecordResponse(BaseModel):
    """Schema for a persisted ledger entry"""
    id: int
    patient_id: int
    prescription_id: Optional[int] = None
    medicine_id: Optional[int] = None
    medication: Optional[str] = None
    scheduled_date: date
    scheduled_time: str
    status: str
    missed_doses: int
    reminder_sent: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DoseResponse(BaseModel):
    """
    Schema for one dose of a day. Virtual doses (not yet in the ledger)
    have no id.
    """
    id: Optional[int] = None
    patient_id: int
    prescription_id: Optional[int] = None
    medicine_id: Optional[int] = None
    medication: Optional[str] = None
    dosage: Optional[str] = None
    instructions: Optional[str] = None
    scheduled_date: date
    scheduled_time: str
    status: str
    missed_doses: int = 0
    reminder_sent: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    is_virtual: bool = False


class StatsSummary(BaseModel):
    """Schema for the adherence summary"""
    total_medications: int
    taken_count: int
    missed_count: int
    pending_count: int
    total_missed_doses: int
    adherence_rate: float


class DailyStat(BaseModel):
    """Schema for one day of the adherence breakdown"""
    date: date
    total: int
    taken: int
    missed: int
    pending: int
    adherence_rate: float


class AdherenceStats(BaseModel):
    """Schema for adherence statistics"""
    patient_id: int
    days: int
    summary: StatsSummary
    daily_stats: List[DailyStat] = []


# ==================== ADMIN SCHEMAS ====================

class ReminderRunRequest(BaseModel):
    """Schema for a manual reminder run"""
    period: str = Field(..., examples=["morning", "afternoon", "evening"])
    on_date: Optional[date] = None


class ReminderRunResponse(BaseModel):
    """Schema for a reminder run summary"""
    period: str
    date: date
    emails_sent: int
    records_created: int
    records_updated: int
    failed_patients: List[int] = []


class SweepResponse(BaseModel):
    """Schema for a sweep summary"""
    date: date
    periods: List[str]
    changed: int
    per_patient: dict = {}
    skipped: bool = False
