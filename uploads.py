import logging
import os
import random
import time
from typing import List, Optional

from fastapi import UploadFile

import config

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".webp"}
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}
PRODUCT_URL_PREFIX = "/uploads/products/"


class UploadRejected(ValueError):
    pass


def product_upload_dir() -> str:
    path = os.path.join(config.UPLOAD_DIR, "products")
    os.makedirs(path, exist_ok=True)
    return path


def allowed_image(upload: UploadFile) -> bool:
    extension = os.path.splitext(upload.filename or "")[1].lower()
    return extension in ALLOWED_EXTENSIONS and (upload.content_type or "").lower() in ALLOWED_CONTENT_TYPES


def _unique_filename(original: str) -> str:
    extension = os.path.splitext(original)[1].lower()
    return f"product-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{extension}"


async def save_product_images(files: Optional[List[UploadFile]]) -> List[str]:
    """
    Store uploaded product images and return their public URLs.

    Either every file in the batch is stored or none is: on the first
    rejected file the ones already written are removed again.
    """
    uploads = [f for f in (files or []) if f is not None and f.filename]
    if len(uploads) > config.MAX_PRODUCT_IMAGES:
        raise UploadRejected(f"At most {config.MAX_PRODUCT_IMAGES} images are allowed")

    saved: List[str] = []
    try:
        for upload in uploads:
            if not allowed_image(upload):
                raise UploadRejected("Only image files are allowed")
            content = await upload.read(config.MAX_UPLOAD_BYTES + 1)
            if len(content) > config.MAX_UPLOAD_BYTES:
                raise UploadRejected("Image exceeds the maximum upload size")
            filename = _unique_filename(upload.filename)
            with open(os.path.join(product_upload_dir(), filename), "wb") as fh:
                fh.write(content)
            saved.append(PRODUCT_URL_PREFIX + filename)
    except (UploadRejected, OSError):
        for url in saved:
            remove_product_image(url)
        raise
    logger.info("Stored %d product image(s)", len(saved))
    return saved


def remove_product_image(url: str) -> None:
    if not url or not url.startswith(PRODUCT_URL_PREFIX):
        return
    path = os.path.join(product_upload_dir(), os.path.basename(url))
    try:
        os.remove(path)
    except FileNotFoundError:
        logger.warning("Product image already gone: %s", path)
