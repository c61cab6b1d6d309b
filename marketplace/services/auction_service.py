import logging

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from rest_framework.exceptions import NotFound, ValidationError

from marketplace import rules
from marketplace.errors import StorageError
from marketplace.models import Auction
from marketplace.storage import delete_images, save_image
from marketplace.tasks import queue_storage_purge

logger = logging.getLogger(__name__)


def dashboard_cache_key(auction_id):
    return f"auction-dashboard:{auction_id}"


def invalidate_dashboard(auction_id):
    cache.delete(dashboard_cache_key(auction_id))


class AuctionService:
    @staticmethod
    def get_owned_auction(*, user, auction_id):
        auction = Auction.objects.filter(pk=auction_id, owner=user).first()
        if auction is None:
            raise NotFound("Auction not found.")
        return auction

    @staticmethod
    def create_auction(*, user, data, now=None):
        rules.check_auction_dates(data['starts_at'], data['ends_at'], now)

        auction = Auction.objects.create(
            title=data['title'],
            location=data['location'],
            starts_at=data['starts_at'],
            ends_at=data['ends_at'],
            owner=user,
        )
        logger.info("Auction %s created by user %s", auction.id, user.id)
        return auction

    @staticmethod
    def update_auction(*, auction, data, now=None):
        starts_at = data.get('starts_at', auction.starts_at)
        ends_at = data.get('ends_at', auction.ends_at)
        rules.check_auction_update(auction, starts_at, ends_at, now)

        auction.title = data.get('title', auction.title)
        auction.location = data.get('location', auction.location)
        auction.starts_at = starts_at
        auction.ends_at = ends_at
        auction.save(update_fields=['title', 'location', 'starts_at', 'ends_at', 'updated_at'])

        invalidate_dashboard(auction.id)
        logger.info("Auction %s updated", auction.id)
        return auction

    @staticmethod
    def delete_auction(*, auction):
        """
        Delete an auction that holds no lots, then its image.
        """
        with transaction.atomic():
            if auction.lots.exists():
                raise ValidationError(
                    "An auction must be emptied of its lots before it can be deleted.",
                    code='has_lots'
                )
            auction_id, img_key = auction.id, auction.img_key
            auction.delete()

        invalidate_dashboard(auction_id)
        logger.info("Auction %s deleted", auction_id)

        if not img_key:
            return

        failed = delete_images([img_key])
        if failed:
            queue_storage_purge(failed)
            raise StorageError("The auction was deleted but its image could not be removed from storage.")

    @staticmethod
    def set_image(*, auction, upload):
        """
        Replace the auction image. The previous object is removed from
        storage once the new one is saved.
        """
        rules.check_image_file(upload)

        previous_key = auction.img_key
        auction.img_upload_status = 'PROCESSING'
        auction.save(update_fields=['img_upload_status', 'updated_at'])

        try:
            key, url = save_image(upload, prefix=f"auctions/{auction.id}")
        except StorageError:
            auction.img_upload_status = 'FAILED'
            auction.save(update_fields=['img_upload_status', 'updated_at'])
            raise

        auction.img_key = key
        auction.img_url = url
        auction.img_upload_status = 'SUCCESS'
        auction.save(update_fields=['img_key', 'img_url', 'img_upload_status', 'updated_at'])
        invalidate_dashboard(auction.id)

        if previous_key and previous_key != key:
            failed = delete_images([previous_key])
            if failed:
                queue_storage_purge(failed)
                raise StorageError("The new image was saved but the previous one could not be removed.")

        return auction


def get_dashboard(auction, build):
    """
    Return the cached dashboard payload of ``auction``, building it with
    ``build(auction)`` on a miss.
    """
    return cache.get_or_set(
        dashboard_cache_key(auction.id),
        lambda: build(auction),
        settings.AUCTION_DASHBOARD_CACHE_TIMEOUT,
    )
