# file_api.py
from fastapi import APIRouter, Depends

import models
from auth import get_current_user
from schemas import envelope
from storage import describe_url

router = APIRouter(prefix="/api/files", tags=["files"])


@router.get("/preview")
def preview(url: str = "", current_user: models.User = Depends(get_current_user)):
    return envelope(describe_url(url), "File preview.")

@router.get("/info")
def info(url: str = "", current_user: models.User = Depends(get_current_user)):
    data = describe_url(url)
    return envelope({"mime_type": data["mime_type"], "size": data["size"], "is_base64": data["is_base64"]},
                    "File info retrieved.")
