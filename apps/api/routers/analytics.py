from fastapi import APIRouter, Query
from datetime import datetime
from typing import Optional

from ..deps import StorageDep

router = APIRouter(prefix="/api/analytics", tags=["analytics"])

@router.get("/patient/{patient_id}")
def get_patient_analytics(
    patient_id: str,
    storage: StorageDep,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
):
    """
    Aggregate statistics over a patient's readings.

    Returns averages of heart rate, dialysis progress and flow rate, the
    reading count and the peak seismic magnitude, or ``{}`` when no
    reading matches.
    """
    return storage.patient_analytics(patient_id, start_date, end_date)
