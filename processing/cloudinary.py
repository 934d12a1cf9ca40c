import cloudinary
import cloudinary.uploader
import cloudinary.utils
import requests
from dotenv import load_dotenv
import os

from storage import BackingReadError, BackingWriteError
from utils.logger import logger

load_dotenv()

DOWNLOAD_TIMEOUT = 30


class CloudinaryBacking:
    """
    Keeps artifact bytes in Cloudinary as "raw" resources.

    The location of an artifact is its public_id, ``<folder>/<artifact_id>``.
    """

    def __init__(self, folder: str = "temp-pdf"):
        self.folder = folder
        cloudinary.config(
            cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
            api_key=os.getenv("CLOUDINARY_API_KEY"),
            api_secret=os.getenv("CLOUDINARY_API_SECRET"),
            secure=True
        )

    def write(self, artifact_id: str, content: bytes) -> str:
        """
        Upload bytes to Cloudinary.

        Args:
            artifact_id: Id the resource is named after
            content: Bytes of the PDF

        Returns:
            str: public_id of the uploaded resource
        """
        try:
            upload_result = cloudinary.uploader.upload(
                content,
                public_id=artifact_id,
                folder=self.folder,
                resource_type="raw",
                overwrite=False,
            )
        except Exception as e:
            raise BackingWriteError(f"Cloudinary upload failed: {str(e)}") from e

        public_id = upload_result.get("public_id")
        if not public_id:
            raise BackingWriteError(f"Cloudinary upload returned no public_id for {artifact_id}")
        return public_id

    def read(self, location: str) -> bytes:
        url, _ = cloudinary.utils.cloudinary_url(location, resource_type="raw", secure=True)
        try:
            response = requests.get(url, timeout=DOWNLOAD_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            raise BackingReadError(f"Cloudinary download failed for {location}: {str(e)}") from e
        return response.content

    def delete(self, location: str) -> None:
        """
        Delete a raw resource. A resource that is already gone counts as deleted.
        """
        result = cloudinary.uploader.destroy(location, resource_type="raw")
        if result.get("result") not in ("ok", "not found"):
            raise RuntimeError(f"Cloudinary deletion failed for {location}: {result.get('result', 'unknown error')}")
        logger.info(f"Deleted raw resource: {location}")
