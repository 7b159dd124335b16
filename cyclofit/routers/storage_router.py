import mimetypes
import os

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from ..dependencies import get_storage
from ..exceptions import StorageFault
from ..utils import verify_object_token
from ..application.ports.storage_gateway import StorageGateway
from ..infrastructure.storage.local_storage import LocalStorageGateway

router = APIRouter(prefix="/storage", tags=["Storage"])


@router.get("/{key:path}")
def download_object(
    key: str,
    token: str = Query(...),
    storage: StorageGateway = Depends(get_storage),
):
    """Serve a locally stored object to holders of a link minted by LocalStorageGateway.sign_url."""
    if not isinstance(storage, LocalStorageGateway):
        raise HTTPException(status_code=404, detail="Not found")
    if not verify_object_token(token, key):
        raise HTTPException(status_code=403, detail="Invalid or expired link")
    try:
        path = storage.path_for(key)
    except StorageFault:
        raise HTTPException(status_code=403, detail="Invalid or expired link")
    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="Not found")
    media_type, _ = mimetypes.guess_type(path)
    return FileResponse(path, media_type=media_type or "application/octet-stream")
