from datetime import timedelta
from decimal import Decimal

from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from marketplace.constants import MAX_AMOUNT
from marketplace.errors import Unauthorized
from marketplace.models import Bid, Lot
from marketplace.services import BidService

from .factories import AuctionFactory, LotFactory, UserFactory, open_auction


@override_settings(LOT_TIME_DELTA=30, MIN_NEXT_BID_DELTA=Decimal('1'), MAX_NEXT_BID_DELTA=Decimal('1000'))
class PlaceBidTestCase(TestCase):
    def setUp(self):
        self.auction = open_auction()
        self.seller = self.auction.owner
        self.lot = LotFactory(auction=self.auction, lot_number=1, min_bid=Decimal('10.00'))
        self.alice = UserFactory(first_name='Alice')
        self.bob = UserFactory(first_name='Bob')

    def bid(self, user, amount, lot=None, now=None):
        return BidService.place_bid(
            user=user,
            lot_id=(lot or self.lot).id,
            amount=Decimal(amount),
            now=now
        )

    def assertRejected(self, exc_class, code, user, amount, **kwargs):
        bids_before = Bid.objects.count()
        lot_before = Lot.objects.get(pk=self.lot.pk)

        with self.assertRaises(exc_class) as ctx:
            self.bid(user, amount, **kwargs)

        if code:
            self.assertEqual(ctx.exception.get_codes(), [code])
        self.assertEqual(Bid.objects.count(), bids_before)
        lot_after = Lot.objects.get(pk=self.lot.pk)
        self.assertEqual(lot_after.min_bid, lot_before.min_bid)
        self.assertEqual(lot_after.top_bid_id, lot_before.top_bid_id)
        self.assertEqual(lot_after.top_bidder_id, lot_before.top_bidder_id)

    def test_first_bid_becomes_leader(self):
        bid = self.bid(self.alice, '10.00')

        self.lot.refresh_from_db()
        self.assertEqual(self.lot.top_bid, bid)
        self.assertEqual(self.lot.top_bidder, self.alice)
        self.assertEqual(self.lot.min_bid, Decimal('11.00'))

    def test_unknown_lot(self):
        with self.assertRaises(NotFound):
            BidService.place_bid(user=self.alice, lot_id=999999, amount=Decimal('10'))

    def test_seller_cannot_bid_on_own_lot(self):
        for amount in ('10.00', '50.00', '1010.00'):
            self.assertRejected(Unauthorized, None, self.seller, amount)

    def test_cannot_outbid_yourself(self):
        self.bid(self.alice, '10.00')
        self.assertRejected(Unauthorized, None, self.alice, '20.00')

    def test_bid_below_min_bid(self):
        self.assertRejected(ValidationError, 'below_min_bid', self.alice, '9.99')

    def test_bid_below_increment_over_leader(self):
        self.bid(self.alice, '15.00')
        # min_bid is now 16, so 15.50 fails on the increment over the leader
        self.assertRejected(ValidationError, 'below_increment', self.bob, '15.50')

    def test_bid_above_max_jump(self):
        self.assertRejected(ValidationError, 'above_max_jump', self.alice, '1010.01')
        self.bid(self.alice, '1010.00')

    def test_bid_must_leave_room_for_the_next_minimum(self):
        lot = LotFactory(auction=self.auction, lot_number=2, min_bid=Decimal('99999998.99'))

        with self.assertRaises(ValidationError) as ctx:
            self.bid(self.alice, '99999999.99', lot=lot)
        self.assertEqual(ctx.exception.get_codes(), ['above_max_amount'])

        lot.refresh_from_db()
        self.assertIsNone(lot.top_bid)
        self.assertEqual(lot.min_bid, Decimal('99999998.99'))

        self.bid(self.alice, '99999998.99', lot=lot)
        lot.refresh_from_db()
        self.assertEqual(lot.min_bid, MAX_AMOUNT)

    def test_closed_lot(self):
        third = LotFactory(auction=self.auction, lot_number=3, min_bid=Decimal('10.00'))
        ends_at = self.auction.ends_at

        with self.assertRaises(ValidationError) as ctx:
            self.bid(self.alice, '10.00', lot=third, now=ends_at + timedelta(seconds=91))
        self.assertEqual(ctx.exception.get_codes(), ['lot_closed'])

        self.bid(self.alice, '10.00', lot=third, now=ends_at + timedelta(seconds=89))

    def test_seller_check_runs_before_closed_check(self):
        late = self.auction.ends_at + timedelta(days=1)
        with self.assertRaises(Unauthorized):
            self.bid(self.seller, '10.00', now=late)

    def test_bid_sequence(self):
        """Alice and Bob take turns leading the lot."""
        self.bid(self.alice, '10.00')
        self.lot.refresh_from_db()
        self.assertEqual(self.lot.min_bid, Decimal('11.00'))

        self.assertRejected(ValidationError, None, self.bob, '10.50')

        bob_bid = self.bid(self.bob, '11.00')
        self.lot.refresh_from_db()
        self.assertEqual(self.lot.min_bid, Decimal('12.00'))
        self.assertEqual(self.lot.top_bid, bob_bid)
        self.assertEqual(self.lot.top_bidder, self.bob)

        alice_bid = self.bid(self.alice, '12.00')
        self.lot.refresh_from_db()
        self.assertEqual(self.lot.top_bid, alice_bid)
        self.assertEqual(self.lot.top_bidder, self.alice)
        self.assertEqual(self.lot.min_bid, Decimal('13.00'))

        # earlier bids are kept unchanged
        self.assertEqual(Bid.objects.filter(lot=self.lot).count(), 3)
        self.assertEqual(Bid.objects.get(pk=bob_bid.pk).amount, Decimal('11.00'))

    def test_leader_always_references_last_accepted_bid(self):
        bidders = [self.alice, self.bob]
        amount = Decimal('10.00')
        for i in range(6):
            bid = self.bid(bidders[i % 2], str(amount))
            self.lot.refresh_from_db()
            self.assertEqual(self.lot.top_bid_id, bid.id)
            self.assertEqual(self.lot.min_bid, amount + 1)
            amount += Decimal('3.25')


class UserBidsTestCase(TestCase):
    def setUp(self):
        self.auction = open_auction()
        self.alice = UserFactory(first_name='Alice')
        self.bob = UserFactory(first_name='Bob')
        self.lot_a = LotFactory(auction=self.auction, lot_number=1, min_bid=Decimal('10.00'))
        self.lot_b = LotFactory(auction=self.auction, lot_number=2, min_bid=Decimal('10.00'))

    def place(self, user, lot, amount):
        return BidService.place_bid(user=user, lot_id=lot.id, amount=Decimal(amount))

    def test_leading_and_trailing_bids(self):
        alice_leading = self.place(self.alice, self.lot_a, '10.00')

        self.place(self.alice, self.lot_b, '10.00')
        self.place(self.bob, self.lot_b, '11.00')
        alice_best = self.place(self.alice, self.lot_b, '12.00')
        self.place(self.bob, self.lot_b, '13.00')

        result = BidService.get_user_bids(user=self.alice)

        self.assertEqual(result['leading_bids'], [alice_leading])
        self.assertEqual(result['trailing_bids'], [alice_best])
        self.assertEqual(result['leader_names'], ['Bob'])

    def test_no_bids(self):
        result = BidService.get_user_bids(user=self.alice)
        self.assertEqual(result, {'leading_bids': [], 'trailing_bids': [], 'leader_names': []})

    def test_other_auctions_do_not_leak(self):
        other_lot = LotFactory(
            auction=AuctionFactory(starts_at=timezone.now() - timedelta(hours=1)),
            lot_number=1,
        )
        self.place(self.bob, other_lot, '10.00')

        result = BidService.get_user_bids(user=self.alice)
        self.assertEqual(result['trailing_bids'], [])
