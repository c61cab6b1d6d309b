import logging

from django.db import transaction
from django.db.models import F
from rest_framework.exceptions import NotFound

from marketplace import rules
from marketplace.errors import StorageError
from marketplace.models import Auction, Lot, LotImage
from marketplace.storage import delete_images, save_image
from marketplace.tasks import queue_storage_purge

logger = logging.getLogger(__name__)


def get_lot_or_404(lot_id):
    lot = Lot.objects.select_related('auction').filter(pk=lot_id).first()
    if lot is None:
        raise NotFound("Lot not found.")
    return lot


class LotService:
    @staticmethod
    def create_lot(*, user, auction_id, data, now=None):
        with transaction.atomic():
            # lock the auction so concurrent creations get distinct numbers
            auction = (
                Auction.objects
                .select_for_update()
                .filter(pk=auction_id, owner=user)
                .first()
            )
            if auction is None:
                raise NotFound("Auction not found.")

            lot_number = rules.check_lot_creation(auction, auction.lots.count(), now)

            lot = Lot.objects.create(
                auction=auction,
                lot_number=lot_number,
                title=data['title'],
                description=data['description'],
                category=data['category'],
                min_bid=data['min_bid'],
            )

        logger.info("Lot %s created as number %s of auction %s", lot.id, lot_number, auction.id)
        return lot

    @staticmethod
    def update_lot(*, user, lot_id, data):
        lot = get_lot_or_404(lot_id)
        rules.check_lot_owner(lot, user)

        for field in ('title', 'description', 'category'):
            if field in data:
                setattr(lot, field, data[field])

        # the floor is frozen once bidding has started
        if 'min_bid' in data:
            if lot.top_bid_id is None:
                lot.min_bid = data['min_bid']
            else:
                logger.info("Ignoring min_bid change on lot %s with bids", lot.id)

        lot.save(update_fields=['title', 'description', 'category', 'min_bid'])
        return lot

    @staticmethod
    def delete_lot(*, user, lot_id):
        """
        Delete a lot, close the gap it leaves in the auction's numbering and
        remove its images from storage.

        The database changes are committed before storage is touched. Images
        that cannot be deleted are queued for a retry and the call fails.
        """
        lot = get_lot_or_404(lot_id)
        rules.check_lot_owner(lot, user)

        image_keys = list(lot.images.values_list('img_key', flat=True))

        with transaction.atomic():
            # deletes and creations in one auction are serialized on the
            # auction row, and the number is read again under that lock
            Auction.objects.select_for_update().filter(pk=lot.auction_id).first()
            lot = Lot.objects.filter(pk=lot.pk).first()
            if lot is None:
                raise NotFound("Lot not found.")

            auction_id, lot_number = lot.auction_id, lot.lot_number
            lot.delete()
            renumbered = (
                Lot.objects
                .filter(auction_id=auction_id, lot_number__gt=lot_number)
                .update(lot_number=F('lot_number') - 1)
            )

        logger.info(
            "Lot %s deleted from auction %s, %d lot(s) renumbered",
            lot_id, auction_id, renumbered
        )

        failed = delete_images(image_keys)
        if failed:
            queue_storage_purge(failed)
            raise StorageError("The lot was deleted but some images could not be removed from storage.")

    @staticmethod
    def add_images(*, user, lot_id, files):
        lot = get_lot_or_404(lot_id)
        rules.check_lot_owner(lot, user)
        rules.check_image_upload(lot.images.count(), files)

        images = []
        for upload in files:
            key, url = save_image(upload, prefix=f"lots/{lot.id}")
            images.append(LotImage.objects.create(lot=lot, img_url=url, img_key=key))

        if images and not lot.main_img_url:
            lot.main_img_url = images[0].img_url
            lot.save(update_fields=['main_img_url'])

        return images

    @staticmethod
    def remove_images(*, user, images):
        """
        Remove images given as ``{'id': ..., 'img_url': ...}`` items.

        Ownership of every image is checked before anything is deleted.
        Storage objects go first; the rows are only deleted once storage
        deletion succeeded.
        """
        ids = [image['id'] for image in images]
        found = {
            image.id: image
            for image in LotImage.objects.filter(pk__in=ids).select_related('lot__auction')
        }

        for image_id in ids:
            image = found.get(image_id)
            if image is None:
                raise NotFound(f"Image {image_id} not found.")
            rules.check_lot_owner(image.lot, user)

        to_delete = list(found.values())
        failed = delete_images([image.img_key for image in to_delete])
        if failed:
            raise StorageError()

        affected_lots = {image.lot_id: image.lot for image in to_delete}
        removed_urls = {image.img_url for image in to_delete}

        with transaction.atomic():
            LotImage.objects.filter(pk__in=found.keys()).delete()

            for lot in affected_lots.values():
                if lot.main_img_url in removed_urls:
                    next_image = lot.images.first()
                    lot.main_img_url = next_image.img_url if next_image else ''
                    lot.save(update_fields=['main_img_url'])

        logger.info("Removed %d image(s) for user %s", len(to_delete), user.id)
        return len(to_delete)
