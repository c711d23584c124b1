from fastapi import Request, Depends
from typing import Annotated

from .errors import StoreUnavailable
from .services.storage import Storage

def get_storage(request: Request) -> Storage:
    """Get storage instance from app state"""
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        raise StoreUnavailable("Storage service not initialized")
    return storage

StorageDep = Annotated[Storage, Depends(get_storage)]
