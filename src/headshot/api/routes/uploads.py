"""Signed browser uploads of input photos.

The browser uploads straight to Cloudinary; this endpoint only signs the
upload parameters, pinning the destination folder to the caller's own.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from headshot.api.dependencies import get_current_user, get_image_host
from headshot.models.user import User
from headshot.services.exceptions import PermanentError
from headshot.services.storage.cloudinary_client import CloudinaryClient

logger = structlog.get_logger()
router = APIRouter(prefix="/api/uploads", tags=["uploads"])


class SignUploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    params_to_sign: dict[str, str | int] = Field(default_factory=dict, alias="paramsToSign")


class SignUploadResponse(BaseModel):
    timestamp: str
    signature: str
    api_key: str = Field(serialization_alias="apiKey")
    cloud_name: str = Field(serialization_alias="cloudName")
    folder: str


@router.post("/signature", response_model=SignUploadResponse)
async def sign_upload(
    body: SignUploadRequest | None = None,
    user: User = Depends(get_current_user),
    image_host: CloudinaryClient = Depends(get_image_host),
) -> SignUploadResponse:
    """Sign a direct Cloudinary upload for the authenticated user.

    Request body (optional): ``{"paramsToSign": {...}}``. A ``folder`` in it is
    ignored; uploads go to ``headshot/users/{id}/input``.

    Raises:
        HTTPException: 401 unauthenticated, 503 uploads not configured
    """
    params = {key: str(value) for key, value in (body.params_to_sign if body else {}).items()}

    try:
        signed = image_host.sign_client_upload(user.id, params)  # type: ignore[arg-type]
    except PermanentError as e:
        logger.error("upload.signature_unavailable", user_id=user.id, error_message=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Image uploads are not configured",
        )

    return SignUploadResponse(
        timestamp=signed.timestamp,
        signature=signed.signature,
        api_key=signed.api_key,
        cloud_name=signed.cloud_name,
        folder=signed.folder,
    )
