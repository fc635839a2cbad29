"""
Editor image service: images pasted into rich-text fields.

Storage backend follows EDITOR_IMAGE_STORAGE:
    filesystem  UPLOAD_DIR/editor-images/<uuid>.<ext>
    database    bytes kept in editor_images.data
"""

import logging
import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

from qahub.core.exceptions import DomainError
from qahub.models import db
from qahub.models.editor import EditorImage
from qahub.services.helpers.scoped_queries import get_scoped
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}
IMAGE_SUBDIR = "editor-images"


def _image_dir():
    path = os.path.join(current_app.config["UPLOAD_DIR"], IMAGE_SUBDIR)
    os.makedirs(path, exist_ok=True)
    return path


def upload_image(*, user_id: int, file_storage) -> EditorImage:
    if file_storage is None or not file_storage.filename:
        raise DomainError("No image file provided", code="NO_FILE")

    mime_type = (file_storage.mimetype or "").lower()
    if mime_type not in ALLOWED_MIME_TYPES:
        raise DomainError(
            "Invalid file type. Allowed: jpeg, png, gif, webp, svg",
            code="INVALID_FILE_TYPE",
        )

    payload = file_storage.read()
    max_bytes = current_app.config.get("EDITOR_IMAGE_MAX_BYTES", 10 * 1024 * 1024)
    if len(payload) > max_bytes:
        raise DomainError(
            f"Image exceeds the {max_bytes // (1024 * 1024)} MB limit",
            code="FILE_TOO_LARGE",
            status=413,
        )

    storage = current_app.config.get("EDITOR_IMAGE_STORAGE", "filesystem")
    filename = f"{uuid.uuid4().hex}.{ALLOWED_MIME_TYPES[mime_type]}"
    image = EditorImage(
        user_id=user_id,
        filename=filename,
        original_name=secure_filename(file_storage.filename) or filename,
        mime_type=mime_type,
        size=len(payload),
        storage=storage,
    )
    if storage == "database":
        image.data = payload
    else:
        image.storage = "filesystem"
        image.path = os.path.join(_image_dir(), filename)
        with open(image.path, "wb") as fh:
            fh.write(payload)

    db.session.add(image)
    commit_or_raise()
    logger.info("Editor image stored id=%s storage=%s size=%d", image.id, image.storage, image.size)
    return image


def list_query(*, user_id: int):
    return EditorImage.query.filter_by(user_id=user_id).order_by(
        EditorImage.created_at.desc(), EditorImage.id.desc(),
    )


def get_image(*, user_id: int, image_id: int) -> EditorImage:
    return get_scoped(EditorImage, image_id, resource="Image", user_id=user_id)


def read_bytes(image: EditorImage) -> bytes:
    if image.storage == "database":
        return image.data or b""
    if not image.path or not os.path.exists(image.path):
        raise DomainError("Image file is missing", code="FILE_NOT_FOUND", status=404)
    with open(image.path, "rb") as fh:
        return fh.read()


def delete_image(*, user_id: int, image_id: int) -> None:
    image = get_image(user_id=user_id, image_id=image_id)
    path = image.path if image.storage == "filesystem" else None
    db.session.delete(image)
    commit_or_raise()
    if path and os.path.exists(path):
        try:
            os.remove(path)
        except OSError:
            logger.warning("Could not remove editor image file %s", path, exc_info=True)
    logger.info("Editor image deleted id=%s", image_id)
