from fastapi import APIRouter
import logging

from ..deps import StorageDep
from ..errors import NotFound
from packages.dialysis_core.schemas import EmergencyEventCreate, EmergencyLogged

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["emergency"])

@router.post("/emergency", response_model=EmergencyLogged)
def log_emergency_event(event: EmergencyEventCreate, storage: StorageDep):
    """Append an event to the session log, timestamped on receipt."""
    entry = event.model_dump(by_alias=True, exclude={"session_id"})
    session = storage.append_emergency_event(event.session_id, entry)
    if session is None:
        raise NotFound("Session not found")

    logger.warning(
        "Emergency event '%s' (magnitude=%s) logged for session %s",
        event.type, event.magnitude, event.session_id
    )
    return {"success": True, "session": session}
