import logging
import re
from pathlib import Path
from uuid import uuid4

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse

from app.auth.deps import Principal, get_principal
from app.core.config import settings
from app.core.errors import GatewayError, ValidationFailed

logger = logging.getLogger(__name__)

router = APIRouter()

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class ObjectNotFound(GatewayError):
    status_code = 404
    code = "not_found"


class ObjectTooLarge(GatewayError):
    status_code = 413
    code = "payload_too_large"


def storage_root() -> Path:
    return Path(settings.STORAGE_DIR).resolve()


def object_path(bucket: str, key: str) -> Path:
    segments = [bucket, *[s for s in key.split("/") if s]]
    if len(segments) < 2 or not all(_SAFE_SEGMENT.match(s) for s in segments):
        raise ValidationFailed("Invalid bucket or object key")
    root = storage_root()
    path = root.joinpath(*segments).resolve()
    if root not in path.parents:
        raise ValidationFailed("Invalid bucket or object key")
    return path


def _safe_filename(name: str | None) -> str:
    stem = re.sub(r"[^A-Za-z0-9._-]", "_", Path(name or "upload").name).lstrip("._-")
    return f"{uuid4().hex}-{stem or 'upload'}"


async def _store(bucket: str, key: str, file: UploadFile) -> dict:
    path = object_path(bucket, key)
    raw = await file.read()
    if len(raw) > settings.STORAGE_MAX_BYTES:
        raise ObjectTooLarge(f"File too large (max {settings.STORAGE_MAX_BYTES} bytes)")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(raw)
    logger.info("Stored object %s/%s (%d bytes)", bucket, key, len(raw))
    return {"Key": f"{bucket}/{key}", "Id": key}


@router.post("/object/{bucket}")
async def upload_object(
    bucket: str,
    file: UploadFile = File(...),
    principal: Principal = Depends(get_principal),
):
    return await _store(bucket, _safe_filename(file.filename), file)


@router.get("/object/public/{bucket}/{key:path}")
def read_public_object(bucket: str, key: str):
    path = object_path(bucket, key)
    if not path.is_file():
        raise ObjectNotFound("Not found")
    return FileResponse(path)


@router.get("/object/sign/{bucket}/{key:path}")
def sign_object(bucket: str, key: str, principal: Principal = Depends(get_principal)):
    object_path(bucket, key)
    return {"signedURL": f"/storage/v1/object/public/{bucket}/{key}"}


@router.post("/object/{bucket}/{key:path}")
async def upload_object_at(
    bucket: str,
    key: str,
    file: UploadFile = File(...),
    principal: Principal = Depends(get_principal),
):
    return await _store(bucket, key, file)
