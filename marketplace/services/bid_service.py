import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from marketplace.constants import MAX_AMOUNT, USER_BIDS_LIMIT
from marketplace.errors import Unauthorized
from marketplace.models import Bid, Lot

logger = logging.getLogger(__name__)


class BidService:
    @staticmethod
    def validate_bid(*, lot, user, amount, now):
        """
        Apply the bidding rules in order; the first failing rule wins.
        """
        if lot.auction.owner_id == user.id:
            raise Unauthorized("Sellers cannot bid on their own lots.")

        if lot.is_closed(now):
            raise ValidationError("This lot has closed.", code='lot_closed')

        top_bid = lot.top_bid
        if top_bid is not None:
            if top_bid.bidder_id == user.id:
                raise Unauthorized("You cannot out-bid yourself.")
            if amount < top_bid.amount + settings.MIN_NEXT_BID_DELTA:
                raise ValidationError(
                    f"Your bid must be at least ${top_bid.amount + settings.MIN_NEXT_BID_DELTA}.",
                    code='below_increment'
                )

        if amount < lot.min_bid:
            raise ValidationError(
                f"Your bid must be at least ${lot.min_bid}.",
                code='below_min_bid'
            )

        if amount > lot.min_bid + settings.MAX_NEXT_BID_DELTA:
            raise ValidationError(
                f"Your bid cannot exceed ${lot.min_bid + settings.MAX_NEXT_BID_DELTA}.",
                code='above_max_jump'
            )

        # the next minimum bid must still fit the money columns
        if amount + settings.MIN_NEXT_BID_DELTA > MAX_AMOUNT:
            raise ValidationError(
                f"Bids cannot exceed ${MAX_AMOUNT - settings.MIN_NEXT_BID_DELTA}.",
                code='above_max_amount'
            )

    @staticmethod
    def place_bid(*, user, lot_id, amount, now=None):
        """
        Record a bid and make it the lot's leading bid.

        The lot row is locked for the duration of the transaction so two
        bids on the same lot cannot both read the same leader.
        """
        now = now or timezone.now()

        with transaction.atomic():
            lot = (
                Lot.objects
                .select_for_update()
                .filter(pk=lot_id)
                .first()
            )
            if lot is None:
                raise NotFound("Lot not found.")

            BidService.validate_bid(lot=lot, user=user, amount=amount, now=now)

            bid = Bid.objects.create(lot=lot, bidder=user, amount=amount)

            lot.min_bid = amount + settings.MIN_NEXT_BID_DELTA
            lot.top_bid = bid
            lot.top_bidder = user
            lot.save(update_fields=['min_bid', 'top_bid', 'top_bidder'])

        logger.info("Bid %s of %s placed on lot %s by user %s", bid.id, amount, lot.id, user.id)
        return bid

    @staticmethod
    def get_user_bids(*, user, limit=USER_BIDS_LIMIT):
        """
        Split the user's latest bids into the ones currently leading their
        lot and, for every other lot, the user's best trailing bid together
        with the first name of the bidder who leads it.
        """
        bids = list(
            Bid.objects
            .filter(bidder=user)
            .select_related('lot', 'lot__auction', 'lot__top_bidder')
            .order_by('-created_at', '-id')[:limit]
        )

        leading_bids = [bid for bid in bids if bid.id == bid.lot.top_bid_id]

        best_per_lot = {}
        for bid in bids:
            if bid.lot.top_bidder_id == user.id:
                continue
            best = best_per_lot.get(bid.lot_id)
            if best is None or bid.amount > best.amount:
                best_per_lot[bid.lot_id] = bid

        trailing_bids = sorted(best_per_lot.values(), key=lambda b: (b.created_at, b.id), reverse=True)
        leader_names = [
            bid.lot.top_bidder.first_name if bid.lot.top_bidder else ''
            for bid in trailing_bids
        ]

        return {
            'leading_bids': leading_bids,
            'trailing_bids': trailing_bids,
            'leader_names': leader_names,
        }
