# services/cloudinary_service.py

import asyncio
from typing import Dict

import cloudinary.uploader
from config import CLOUDINARY_FOLDER, logger


def _upload(file_bytes: bytes, file_name: str) -> dict:
    return cloudinary.uploader.upload(
        file_bytes,
        public_id=file_name,
        resource_type="image",
        folder=CLOUDINARY_FOLDER
    )


async def upload_image(file_bytes: bytes, file_name: str) -> Dict[str, str]:
    try:
        result = await asyncio.to_thread(_upload, file_bytes, file_name)
        return {
            "url": result["secure_url"],
            "file_id": result["public_id"]
        }
    except Exception:
        logger.error("Cloudinary upload failed", exc_info=True)
        raise


async def delete_image(file_id: str) -> dict:
    result = await asyncio.to_thread(
        cloudinary.uploader.destroy,
        file_id,
        resource_type="image"
    )
    logger.info(f"Cloudinary image deleted | public_id={file_id}")
    return result
