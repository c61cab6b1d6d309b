import logging

from celery import shared_task

from .errors import StorageError
from .storage import delete_images

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=5)
def purge_storage_objects(self, keys):
    """
    Delete image objects whose synchronous deletion failed.
    Keys that still cannot be deleted are retried with exponential backoff.
    """
    failed = delete_images(keys)
    if failed:
        logger.warning("Still unable to delete %d image(s) from storage", len(failed))
        raise self.retry(
            args=(failed,),
            exc=StorageError(),
            countdown=60 * 2 ** self.request.retries,
        )

    return f"Purged {len(keys)} images"


def queue_storage_purge(keys):
    if keys:
        logger.info("Queueing %d image(s) for deletion retry", len(keys))
        purge_storage_objects.delay(list(keys))
