"""Cloudinary client for storing generated headshots."""

import asyncio
import hashlib
import time
from dataclasses import dataclass

import httpx
import structlog

from headshot.services.exceptions import PermanentError, TransientError

logger = structlog.get_logger(__name__)

# Browser uploads always land in the owner's input folder
USER_INPUT_FOLDER = "headshot/users/{user_id}/input"

# Sent with an upload but never part of the signed string
UNSIGNED_PARAMS = frozenset({"file", "cloud_name", "resource_type", "api_key", "signature"})


@dataclass(frozen=True)
class UploadResult:
    """Stable location of an uploaded image."""

    secure_url: str
    public_id: str


@dataclass(frozen=True)
class UploadSignature:
    """Parameters a browser needs for a direct signed upload."""

    timestamp: str
    signature: str
    api_key: str
    cloud_name: str
    folder: str


def sign_params(params: dict[str, str], api_secret: str) -> str:
    """Compute a Cloudinary API signature.

    Parameters are sorted by name, joined as ``key=value`` pairs with ``&`` and
    hashed with SHA-1 together with the API secret.
    """
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] != "")
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class CloudinaryClient:
    """Image upload client using Cloudinary's signed upload API."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        folder: str = "headshots",
        max_attempts: int = 3,
        retry_delay_seconds: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Cloudinary client.

        Args:
            cloud_name: Cloudinary cloud name
            api_key: Cloudinary API key
            api_secret: Cloudinary API secret (server-side only)
            folder: Folder that generated headshots are stored in
            max_attempts: Upload attempts before giving up (transient errors only)
            retry_delay_seconds: Linear back-off unit; attempt N waits N * delay
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self.transport = transport
        self.upload_url = f"https://api.cloudinary.com/v1_1/{cloud_name}/image/upload"

    async def upload_from_url(self, file_url: str, public_id: str) -> UploadResult:
        """Copy a remote image into Cloudinary under a deterministic public id.

        Uploads use ``overwrite=true`` so repeating the upload for the same
        generation replaces the stored asset instead of duplicating it.

        Args:
            file_url: HTTP/HTTPS URL of image to store (e.g., Replicate CDN URL)
            public_id: Stable asset name within the configured folder

        Returns:
            UploadResult with the permanent secure URL

        Raises:
            TransientError: Still failing after ``max_attempts`` transient failures
            PermanentError: Invalid credentials (401/403) or bad request (400)
        """
        if not (self.cloud_name and self.api_key and self.api_secret):
            raise PermanentError("Cloudinary credentials not configured")

        last_error: TransientError | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._upload_once(file_url, public_id)
            except TransientError as e:
                last_error = e
                logger.warning(
                    "cloudinary.upload.retry",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    public_id=public_id,
                    error_message=str(e),
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(attempt * self.retry_delay_seconds)

        raise TransientError(
            f"Cloudinary upload failed after {self.max_attempts} attempts: {last_error}"
        )

    async def _upload_once(self, file_url: str, public_id: str) -> UploadResult:
        params = {
            "folder": self.folder,
            "overwrite": "true",
            "public_id": public_id,
            "timestamp": str(int(time.time())),
        }
        data = {
            **params,
            "file": file_url,
            "api_key": self.api_key,
            "signature": sign_params(params, self.api_secret),
        }

        try:
            async with httpx.AsyncClient(timeout=60.0, transport=self.transport) as client:
                response = await client.post(self.upload_url, data=data)
        except httpx.TimeoutException as e:
            raise TransientError(f"Request timeout after 60s: {str(e)}")
        except httpx.HTTPError as e:
            raise TransientError(f"Network error: {str(e)}")

        # Error classification
        if response.status_code == 429:
            raise TransientError(f"Rate limit exceeded: {response.text}")
        elif response.status_code >= 500:
            raise TransientError(f"Service unavailable ({response.status_code}): {response.text}")
        elif response.status_code in (401, 403):
            raise PermanentError(
                "Unauthorized: Invalid Cloudinary credentials. "
                "Check CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET configuration."
            )
        elif response.status_code >= 400:
            raise PermanentError(f"Bad request ({response.status_code}): {response.text}")

        try:
            result = response.json()
            return UploadResult(secure_url=result["secure_url"], public_id=result["public_id"])
        except (ValueError, KeyError) as e:
            raise PermanentError(f"Unexpected upload response: {e}") from e

    def sign_client_upload(
        self, user_id: int, params: dict[str, str] | None = None
    ) -> UploadSignature:
        """Sign a browser upload into the user's input folder.

        ``folder`` and ``timestamp`` are always set here; values the client
        sends for them are dropped. Other parameters (e.g. ``source``,
        ``upload_preset``) are signed as given.

        Raises:
            PermanentError: Credentials not configured
        """
        if not (self.cloud_name and self.api_key and self.api_secret):
            raise PermanentError("Cloudinary credentials not configured")

        folder = USER_INPUT_FOLDER.format(user_id=user_id)
        to_sign = {
            key: str(value)
            for key, value in (params or {}).items()
            if key not in UNSIGNED_PARAMS and key not in ("folder", "timestamp")
        }
        to_sign["folder"] = folder
        to_sign["timestamp"] = str(int(time.time()))

        logger.debug("cloudinary.upload_signed", user_id=user_id, params=sorted(to_sign))
        return UploadSignature(
            timestamp=to_sign["timestamp"],
            signature=sign_params(to_sign, self.api_secret),
            api_key=self.api_key,
            cloud_name=self.cloud_name,
            folder=folder,
        )
