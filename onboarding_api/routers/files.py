"""Local-backend file downloads (HR only). S3 deployments use signed URLs instead."""

import mimetypes
import os

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from onboarding_api.core.deps import HRSession, get_hr_session
from onboarding_api.services import storage_service

router = APIRouter(prefix="/files", tags=["files"])


@router.get("/{key:path}")
def download_file(key: str, session: HRSession = Depends(get_hr_session)):
    path = storage_service.get_local_file_path(key)
    if not path:
        raise HTTPException(status_code=404, detail="File not found")
    media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return FileResponse(path, media_type=media_type, filename=os.path.basename(path))
