"""Storage service for video files kept in S3, R2, or the local filesystem.

Supports:
- AWS S3
- Cloudflare R2 (S3-compatible)
- Local filesystem (for development)
"""
import logging
import uuid
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Literal

import aiofiles
import aiofiles.os
from botocore.exceptions import BotoCoreError, ClientError

from src.config.settings import settings

logger = logging.getLogger(__name__)

LOCAL_URL_PREFIX = "/uploads/"


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


class StorageService:
    """Service for duplicating and managing files in cloud storage."""

    def __init__(self):
        self._s3_client = None

    async def _get_s3_client(self):
        """Get or create S3 client (lazy initialization)."""
        if self._s3_client is not None:
            return self._s3_client

        if settings.STORAGE_PROVIDER == "local":
            return None

        if not settings.storage_enabled:
            logger.warning("S3 credentials not configured, cloud storage disabled")
            return None

        import aioboto3

        session = aioboto3.Session(
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.AWS_REGION,
        )

        self._s3_client = session.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL or None,
        )
        return self._s3_client

    def _generate_file_path(
        self,
        file_type: Literal["videos", "thumbnails"],
        owner_id: int | None = None,
        extension: str = "",
    ) -> str:
        """Generate a unique file path for storage."""
        timestamp = datetime.now().strftime("%Y%m%d")
        unique_id = uuid.uuid4().hex[:12]

        if owner_id is not None:
            return f"{file_type}/{owner_id}/{timestamp}_{unique_id}{extension}"
        return f"{file_type}/{timestamp}_{unique_id}{extension}"

    def _public_url(self, path: str) -> str:
        if settings.STORAGE_PROVIDER == "local":
            return f"{LOCAL_URL_PREFIX}{path}"
        if settings.S3_ENDPOINT_URL:
            # R2 URL
            return f"{settings.S3_ENDPOINT_URL.rstrip('/')}/{settings.S3_BUCKET_NAME}/{path}"
        return f"https://{settings.S3_BUCKET_NAME}.s3.{settings.AWS_REGION}.amazonaws.com/{path}"

    def _path_from_url(self, url: str) -> str:
        if url.startswith(LOCAL_URL_PREFIX):
            return url[len(LOCAL_URL_PREFIX):]
        if f"{settings.S3_BUCKET_NAME}/" in url:
            return url.split(f"{settings.S3_BUCKET_NAME}/", 1)[1]
        if ".amazonaws.com/" in url:
            return url.split(".amazonaws.com/", 1)[1]
        # Bare object key
        return url.lstrip("/")

    async def _copy_local(self, source_path: str, target_path: str) -> None:
        root = Path(settings.LOCAL_STORAGE_PATH)
        source = root / source_path
        target = root / target_path

        if not await aiofiles.os.path.exists(source):
            raise StorageError(f"Source file not found: {source_path}")

        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        async with aiofiles.open(source, "rb") as src, aiofiles.open(target, "wb") as dst:
            while chunk := await src.read(1024 * 1024):
                await dst.write(chunk)

    async def _copy_s3(self, source_path: str, target_path: str) -> None:
        client = await self._get_s3_client()
        if client is None:
            raise StorageError("S3 client not available")

        try:
            async with client as s3:
                await s3.copy_object(
                    Bucket=settings.S3_BUCKET_NAME,
                    Key=target_path,
                    CopySource={"Bucket": settings.S3_BUCKET_NAME, "Key": source_path},
                    # Cache for 1 year (immutable files with unique names)
                    CacheControl="public, max-age=31536000, immutable",
                    MetadataDirective="REPLACE",
                )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to copy file: {e}") from e
        finally:
            # aioboto3 clients are single-use context managers
            self._s3_client = None

    async def copy_file(
        self,
        url: str,
        file_type: Literal["videos", "thumbnails"],
        owner_id: int | None = None,
    ) -> str:
        """Duplicate a stored file under a fresh key.

        Args:
            url: Public URL (or object key) of the existing file
            file_type: Storage folder for the copy
            owner_id: Owner of the copy, used for path generation

        Returns:
            Public URL of the copy

        Raises:
            StorageError: If the copy fails
        """
        source_path = self._path_from_url(url)
        extension = PurePosixPath(source_path).suffix
        target_path = self._generate_file_path(file_type, owner_id, extension)

        try:
            if settings.STORAGE_PROVIDER == "local":
                await self._copy_local(source_path, target_path)
            else:
                await self._copy_s3(source_path, target_path)
        except OSError as e:
            raise StorageError(f"Failed to copy file: {e}") from e

        logger.info(f"Copied {source_path} -> {target_path}")
        return self._public_url(target_path)

    async def delete_file(self, url: str) -> bool:
        """Delete a file from storage.

        Returns:
            True if deleted successfully, False otherwise
        """
        path = self._path_from_url(url)
        try:
            if settings.STORAGE_PROVIDER == "local":
                local_path = Path(settings.LOCAL_STORAGE_PATH) / path
                if await aiofiles.os.path.exists(local_path):
                    await aiofiles.os.remove(local_path)
                    logger.info(f"Deleted local file: {path}")
                    return True
                return False

            client = await self._get_s3_client()
            if client is None:
                return False

            try:
                async with client as s3:
                    await s3.delete_object(Bucket=settings.S3_BUCKET_NAME, Key=path)
            finally:
                self._s3_client = None

            logger.info(f"Deleted S3 file: {path}")
            return True

        except (BotoCoreError, ClientError, OSError) as e:
            logger.error(f"Failed to delete file: {e}")
            return False


# Singleton instance
storage_service = StorageService()
