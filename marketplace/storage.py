"""
Image storage access.

Images live in the ``images`` storage alias so that the backend (local
filesystem, S3, ...) can be swapped through ``settings.STORAGES`` without
touching the services.
"""
import logging
import secrets

from django.core.files.storage import storages

from .errors import StorageError

logger = logging.getLogger(__name__)


def get_image_storage():
    return storages['images']


def generate_key(prefix, nbytes=32):
    return f"{prefix}/{secrets.token_hex(nbytes)}"


def save_image(upload, prefix):
    """
    Store an uploaded file under a random key and return ``(key, url)``.
    """
    storage = get_image_storage()
    try:
        key = storage.save(generate_key(prefix), upload)
        url = storage.url(key)
    except Exception as exc:
        logger.exception("unable to upload image to storage")
        raise StorageError() from exc
    return key, url


def delete_images(keys):
    """
    Delete every object in ``keys``. Returns the keys that could not be
    deleted; an empty list means everything is gone.
    """
    storage = get_image_storage()
    failed = []
    for key in keys:
        if not key:
            continue
        try:
            storage.delete(key)
        except Exception:
            logger.exception("unable to delete image %s from storage", key)
            failed.append(key)
    return failed
