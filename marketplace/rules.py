"""
Auction, lot and image rules shared by the serializers and the services.

Every check raises a DRF exception carrying its own ``code`` so callers can
tell the failures apart. The bidding rules live with the bid ledger in
``services.bid_service``.
"""
from django.conf import settings
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from .constants import ACCEPTED_IMAGE_TYPES, MAX_IMAGE_SIZE


def check_auction_dates(starts_at, ends_at, now=None):
    now = now or timezone.now()
    if starts_at <= now:
        raise ValidationError("The start date must be in the future.", code='start_in_past')
    if starts_at > ends_at:
        raise ValidationError(
            "The start date must be before or equal to the end date.",
            code='start_after_end'
        )


def check_auction_update(auction, starts_at, ends_at, now=None):
    now = now or timezone.now()

    if auction.ends_at < now:
        raise ValidationError("A finished auction cannot be updated.", code='auction_closed')

    start_changed = starts_at != auction.starts_at

    if auction.starts_at < now and start_changed:
        raise ValidationError(
            "The start date of an auction that has started cannot be changed.",
            code='start_locked'
        )

    if start_changed and starts_at <= now:
        raise ValidationError("The start date must be in the future.", code='start_in_past')

    if starts_at > ends_at:
        raise ValidationError(
            "The start date must be before or equal to the end date.",
            code='start_after_end'
        )


def check_lot_creation(auction, lot_count, now=None):
    """
    Validate that ``auction`` can take one more lot and return the number
    the new lot gets.
    """
    now = now or timezone.now()

    if auction.state(now) != auction.SCHEDULED:
        raise ValidationError(
            "Lots cannot be added to an auction that has started.",
            code='auction_started'
        )

    if lot_count >= settings.MAX_NUM_LOTS_PER_AUCTION:
        raise ValidationError(
            f"An auction cannot have more than {settings.MAX_NUM_LOTS_PER_AUCTION} lots.",
            code='too_many_lots'
        )

    return lot_count + 1


def check_lot_owner(lot, user):
    if lot.auction.owner_id != user.id:
        raise PermissionDenied("You do not own the auction of this lot.")


def check_image_upload(existing_count, files):
    if existing_count + len(files) > settings.MAX_NUM_IMGS:
        raise ValidationError(
            f"A lot cannot have more than {settings.MAX_NUM_IMGS} images.",
            code='too_many_images'
        )

    for upload in files:
        check_image_file(upload)


def check_image_file(upload):
    if upload.content_type not in ACCEPTED_IMAGE_TYPES:
        raise ValidationError("Incorrect file type.", code='unsupported_image_type')
    if upload.size > MAX_IMAGE_SIZE:
        raise ValidationError("File too large.", code='image_too_large')
