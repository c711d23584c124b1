from fastapi import APIRouter, status

from ..deps import StorageDep
from ..errors import NotFound, ValidationError
from packages.dialysis_core.schemas import Session, SessionCreate, SessionUpdate, to_document

router = APIRouter(prefix="/api/sessions", tags=["sessions"])

@router.post("", response_model=Session, status_code=status.HTTP_201_CREATED)
def create_session(session: SessionCreate, storage: StorageDep):
    """Open a treatment session; the server issues the sessionId."""
    return storage.create_session(to_document(session))

@router.get("/{session_id}", response_model=Session)
def get_session(session_id: str, storage: StorageDep):
    session = storage.get_session(session_id)
    if session is None:
        raise NotFound("Session not found")
    return session

@router.patch("/{session_id}", response_model=Session)
def update_session(session_id: str, session_update: SessionUpdate, storage: StorageDep):
    """Merge the supplied fields into the session and stamp updatedAt."""
    update_data = session_update.model_dump(by_alias=True, exclude_unset=True)
    if not update_data:
        raise ValidationError("No update data provided")

    session = storage.update_session(session_id, update_data)
    if session is None:
        raise NotFound("Session not found")
    return session
