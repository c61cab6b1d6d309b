from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .models import Bid, Lot, LotImage
from .services.auction_service import invalidate_dashboard


@receiver(post_save, sender=Lot)
@receiver(post_delete, sender=Lot)
def refresh_dashboard_on_lot_change(sender, instance, **kwargs):
    """
    The auction dashboard lists its lots, so any lot change makes the
    cached copy stale.
    """
    invalidate_dashboard(instance.auction_id)


@receiver(post_save, sender=Bid)
def refresh_dashboard_on_bid(sender, instance, created, **kwargs):
    if created:
        invalidate_dashboard(instance.lot.auction_id)


@receiver(post_save, sender=LotImage)
@receiver(post_delete, sender=LotImage)
def refresh_dashboard_on_image_change(sender, instance, **kwargs):
    lot = Lot.objects.filter(pk=instance.lot_id).only('auction_id').first()
    if lot is not None:
        invalidate_dashboard(lot.auction_id)
