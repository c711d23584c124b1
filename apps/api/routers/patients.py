from fastapi import APIRouter, status
from typing import List

from ..deps import StorageDep
from ..errors import NotFound
from packages.dialysis_core.schemas import Patient, PatientCreate, Session, Report, to_document

router = APIRouter(prefix="/api/patients", tags=["patients"])

@router.get("", response_model=List[Patient])
def list_patients(storage: StorageDep):
    """Retrieve every patient record."""
    return storage.list_patients()

@router.post("", response_model=Patient, status_code=status.HTTP_201_CREATED)
def create_patient(patient: PatientCreate, storage: StorageDep):
    """Create a new patient record; patientId must be unused."""
    return storage.create_patient(to_document(patient))

@router.get("/{patient_id}", response_model=Patient)
def get_patient(patient_id: str, storage: StorageDep):
    """Retrieve a single patient by their ID."""
    patient = storage.get_patient(patient_id)
    if patient is None:
        raise NotFound("Patient not found")
    return patient

@router.get("/{patient_id}/sessions", response_model=List[Session])
def get_patient_sessions(patient_id: str, storage: StorageDep):
    """Session history, most recent start first."""
    return storage.list_sessions_for_patient(patient_id)

@router.get("/{patient_id}/reports", response_model=List[Report])
def get_patient_reports(patient_id: str, storage: StorageDep):
    return storage.list_reports_for_patient(patient_id)
