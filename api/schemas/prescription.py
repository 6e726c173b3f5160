"""
Prescription Schemas
Pydantic models for prescription API requests and responses
"""

from typing import Optional, List, Dict, Union
from datetime import datetime, date
from pydantic import BaseModel, Field, ConfigDict


# ==================== REQUEST SCHEMAS ====================

class MedicineTiming(BaseModel):
    """Daily periods a medicine is due"""
    morning: bool = False
    afternoon: bool = False
    evening: bool = False


class MedicineCreate(BaseModel):
    """One medicine line of a new prescription"""
    id: Optional[Union[str, int]] = Field(None, description="Catalog reference of the medicine")
    name: str = Field(..., min_length=1, max_length=255)
    dosage: str = Field(..., min_length=1, max_length=100)
    duration: Optional[str] = Field(None, max_length=50, examples=["7 days", "2 weeks", "1 month"])
    instructions: Optional[str] = None
    timing: MedicineTiming


class PrescriptionCreate(BaseModel):
    """Schema for creating a prescription"""
    patient_id: int
    medicines: List[MedicineCreate] = Field(default_factory=list)
    condition: Optional[str] = Field(None, max_length=255)


# ==================== RESPONSE SCHEMAS ====================

class PrescribedMedicineResponse(BaseModel):
    """Schema for a prescribed medicine"""
    id: int
    catalog_id: Optional[str] = None
    name: str
    dosage: str
    duration: Optional[str] = None
    instructions: Optional[str] = None
    timing: Dict[str, bool]

    model_config = ConfigDict(from_attributes=True)


class PrescriptionResponse(BaseModel):
    """Schema for a prescription with its medicines"""
    id: int
    patient_id: int
    doctor_id: int
    date: date
    condition: Optional[str] = None
    created_at: datetime
    medicines: List[PrescribedMedicineResponse] = []

    model_config = ConfigDict(from_attributes=True)


class PrescriptionDeleteResponse(BaseModel):
    """Schema for a prescription deletion"""
    message: str
    prescription_id: int
    medicines_deleted: int
    records_deleted: int
