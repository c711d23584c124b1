from fastapi import APIRouter, status

from ..deps import StorageDep
from ..errors import NotFound
from packages.dialysis_core.schemas import Report, ReportCreate, to_document

router = APIRouter(prefix="/api/reports", tags=["reports"])

@router.post("", response_model=Report, status_code=status.HTTP_201_CREATED)
def create_report(report: ReportCreate, storage: StorageDep):
    """Archive a treatment report; summary values are stored as sent."""
    return storage.create_report(to_document(report))

@router.get("/{report_id}", response_model=Report)
def get_report(report_id: str, storage: StorageDep):
    report = storage.get_report(report_id)
    if report is None:
        raise NotFound("Report not found")
    return report
