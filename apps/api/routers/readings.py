from fastapi import APIRouter, Query, status
from datetime import datetime
from typing import List, Optional
import logging

from ..deps import StorageDep
from ..errors import StoreUnavailable
from packages.dialysis_core.schemas import Reading, ReadingCreate, ReadingStored, to_document

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/readings", tags=["readings"])

DEFAULT_READING_LIMIT = 100
MAX_READING_LIMIT = 1000

@router.post("", response_model=ReadingStored, status_code=status.HTTP_201_CREATED)
def record_reading(reading: ReadingCreate, storage: StorageDep):
    doc = to_document(reading)
    if reading.patient_id is None:
        patient_id = storage.session_patient_id(reading.session_id)
        if patient_id is not None:
            doc["patientId"] = patient_id

    reading_id = storage.insert_reading(doc)

    progress = reading.reported_progress
    if progress is None:
        return ReadingStored(reading_id=reading_id)

    # Best-effort: the reading above is already durable
    try:
        synced = storage.sync_session_progress(reading.session_id, progress)
    except StoreUnavailable as e:
        logger.warning("Progress sync failed for session %s: %s", reading.session_id, e.__cause__ or e)
        synced = False
    if not synced:
        logger.warning("Session %s progress not updated from reading %s", reading.session_id, reading_id)
    return ReadingStored(reading_id=reading_id, progress_synced=synced)

@router.get("/{session_id}", response_model=List[Reading])
def get_readings(
    session_id: str,
    storage: StorageDep,
    limit: int = Query(DEFAULT_READING_LIMIT, ge=1, le=MAX_READING_LIMIT),
    start_time: Optional[datetime] = Query(None, alias="startTime"),
    end_time: Optional[datetime] = Query(None, alias="endTime"),
):
    """Readings for a session, newest first, within the optional time window."""
    return storage.load_readings(session_id, since=start_time, until=end_time, limit=limit)
