from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.core.files.storage import storages
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db.models import Deferrable
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from marketplace.errors import StorageError
from marketplace.models import Lot, LotImage
from marketplace.services import BidService, LotService

from .factories import (
    IN_MEMORY_STORAGES,
    AdminFactory,
    AuctionFactory,
    LotFactory,
    LotImageFactory,
    UserFactory,
    open_auction,
)


def lot_data(**kwargs):
    data = {
        'title': 'Antique clock',
        'description': 'A clock from 1890.',
        'category': 'Antiques and Vintage Items',
        'min_bid': Decimal('25.00'),
    }
    data.update(kwargs)
    return data


def png(name='photo.png'):
    return SimpleUploadedFile(name, b'\x89PNG fake image', content_type='image/png')


class CreateLotTestCase(TestCase):
    def setUp(self):
        self.auction = AuctionFactory()
        self.owner = self.auction.owner

    def test_lots_are_numbered_sequentially(self):
        first = LotService.create_lot(user=self.owner, auction_id=self.auction.id, data=lot_data())
        second = LotService.create_lot(user=self.owner, auction_id=self.auction.id, data=lot_data())

        self.assertEqual(first.lot_number, 1)
        self.assertEqual(second.lot_number, 2)
        self.assertEqual(second.min_bid, Decimal('25.00'))
        self.assertIsNone(second.top_bid)

    def test_auction_of_another_admin(self):
        with self.assertRaises(NotFound):
            LotService.create_lot(user=AdminFactory(), auction_id=self.auction.id, data=lot_data())

    def test_auction_already_started(self):
        auction = open_auction(owner=self.owner)
        with self.assertRaises(ValidationError) as ctx:
            LotService.create_lot(user=self.owner, auction_id=auction.id, data=lot_data())
        self.assertEqual(ctx.exception.get_codes(), ['auction_started'])

    @override_settings(MAX_NUM_LOTS_PER_AUCTION=100)
    def test_hundredth_lot_accepted_hundred_and_first_rejected(self):
        Lot.objects.bulk_create([
            Lot(
                auction=self.auction,
                lot_number=n,
                title=f'Lot {n}',
                description='Filler item',
                category='Toys and Games',
                min_bid=Decimal('1.00'),
            )
            for n in range(1, 100)
        ])

        hundredth = LotService.create_lot(user=self.owner, auction_id=self.auction.id, data=lot_data())
        self.assertEqual(hundredth.lot_number, 100)

        with self.assertRaises(ValidationError) as ctx:
            LotService.create_lot(user=self.owner, auction_id=self.auction.id, data=lot_data())
        self.assertEqual(ctx.exception.get_codes(), ['too_many_lots'])
        self.assertEqual(self.auction.lots.count(), 100)


class UpdateLotTestCase(TestCase):
    def setUp(self):
        self.auction = open_auction()
        self.owner = self.auction.owner
        self.lot = LotFactory(auction=self.auction, lot_number=1, min_bid=Decimal('10.00'))

    def test_update_fields(self):
        LotService.update_lot(
            user=self.owner,
            lot_id=self.lot.id,
            data=lot_data(title='New title', min_bid=Decimal('30.00'))
        )
        self.lot.refresh_from_db()
        self.assertEqual(self.lot.title, 'New title')
        self.assertEqual(self.lot.category, 'Antiques and Vintage Items')
        self.assertEqual(self.lot.min_bid, Decimal('30.00'))

    def test_min_bid_frozen_once_bidding_started(self):
        BidService.place_bid(user=UserFactory(), lot_id=self.lot.id, amount=Decimal('10.00'))

        LotService.update_lot(
            user=self.owner,
            lot_id=self.lot.id,
            data=lot_data(title='Renamed', min_bid=Decimal('500.00'))
        )
        self.lot.refresh_from_db()
        self.assertEqual(self.lot.title, 'Renamed')
        self.assertEqual(self.lot.min_bid, Decimal('11.00'))

    def test_update_by_non_owner(self):
        with self.assertRaises(PermissionDenied):
            LotService.update_lot(user=AdminFactory(), lot_id=self.lot.id, data=lot_data())

    def test_update_unknown_lot(self):
        with self.assertRaises(NotFound):
            LotService.update_lot(user=self.owner, lot_id=999999, data=lot_data())


class DeleteLotTestCase(TestCase):
    def setUp(self):
        self.auction = AuctionFactory()
        self.owner = self.auction.owner
        self.lots = [
            LotFactory(auction=self.auction, lot_number=n, title=f'Lot {n}')
            for n in range(1, 6)
        ]
        self.other_lot = LotFactory(auction=AuctionFactory(owner=self.owner), lot_number=4)

    @patch('marketplace.services.lot_service.delete_images', return_value=[])
    def test_delete_renumbers_following_lots(self, mock_delete):
        LotService.delete_lot(user=self.owner, lot_id=self.lots[2].id)

        remaining = list(self.auction.lots.order_by('lot_number').values_list('title', 'lot_number'))
        self.assertEqual(remaining, [('Lot 1', 1), ('Lot 2', 2), ('Lot 4', 3), ('Lot 5', 4)])

        # lots of other auctions are untouched
        self.other_lot.refresh_from_db()
        self.assertEqual(self.other_lot.lot_number, 4)

    @patch('marketplace.services.lot_service.delete_images', return_value=[])
    def test_delete_last_and_first_lot(self, mock_delete):
        LotService.delete_lot(user=self.owner, lot_id=self.lots[4].id)
        LotService.delete_lot(user=self.owner, lot_id=self.lots[0].id)

        numbers = list(self.auction.lots.order_by('lot_number').values_list('lot_number', flat=True))
        self.assertEqual(numbers, [1, 2, 3])

    @patch('marketplace.services.lot_service.delete_images', return_value=[])
    def test_delete_with_stale_lot_number(self, mock_delete):
        """A lot read before a sibling was deleted is renumbered from its current number"""
        stale = Lot.objects.select_related('auction').get(pk=self.lots[3].id)
        self.assertEqual(stale.lot_number, 4)

        LotService.delete_lot(user=self.owner, lot_id=self.lots[1].id)

        with patch('marketplace.services.lot_service.get_lot_or_404', return_value=stale):
            LotService.delete_lot(user=self.owner, lot_id=stale.id)

        numbers = list(self.auction.lots.order_by('lot_number').values_list('lot_number', flat=True))
        self.assertEqual(numbers, [1, 2, 3])
        self.assertEqual(Lot.objects.get(pk=self.lots[4].id).lot_number, 3)

    def test_lot_numbers_are_unique_per_auction(self):
        constraint = next(c for c in Lot._meta.constraints if c.name == 'lot_unique_number_per_auction')
        self.assertEqual(tuple(constraint.fields), ('auction', 'lot_number'))
        self.assertEqual(constraint.deferrable, Deferrable.DEFERRED)

    @patch('marketplace.services.lot_service.delete_images', return_value=[])
    def test_delete_removes_images(self, mock_delete):
        lot = self.lots[0]
        LotImageFactory(lot=lot, img_key='lots/a')
        LotImageFactory(lot=lot, img_key='lots/b')

        LotService.delete_lot(user=self.owner, lot_id=lot.id)

        mock_delete.assert_called_once_with(['lots/a', 'lots/b'])
        self.assertFalse(LotImage.objects.filter(lot_id=lot.id).exists())

    @patch('marketplace.services.lot_service.queue_storage_purge')
    @patch('marketplace.services.lot_service.delete_images', return_value=['lots/b'])
    def test_storage_failure_is_reported_and_queued(self, mock_delete, mock_queue):
        lot = self.lots[0]
        LotImageFactory(lot=lot, img_key='lots/a')
        LotImageFactory(lot=lot, img_key='lots/b')

        with self.assertRaises(StorageError):
            LotService.delete_lot(user=self.owner, lot_id=lot.id)

        mock_queue.assert_called_once_with(['lots/b'])
        self.assertFalse(Lot.objects.filter(pk=lot.id).exists())
        self.assertEqual(self.auction.lots.count(), 4)

    def test_delete_by_non_owner(self):
        with self.assertRaises(PermissionDenied):
            LotService.delete_lot(user=AdminFactory(), lot_id=self.lots[0].id)
        self.assertEqual(self.auction.lots.count(), 5)

    def test_delete_unknown_lot(self):
        with self.assertRaises(NotFound):
            LotService.delete_lot(user=self.owner, lot_id=999999)


@override_settings(STORAGES=IN_MEMORY_STORAGES, MAX_NUM_IMGS=5)
class LotImagesTestCase(TestCase):
    def setUp(self):
        self.auction = AuctionFactory(starts_at=timezone.now() + timedelta(days=1))
        self.owner = self.auction.owner
        self.lot = LotFactory(auction=self.auction, lot_number=1)
        self.storage = storages['images']

    def test_first_image_becomes_main_image(self):
        images = LotService.add_images(user=self.owner, lot_id=self.lot.id, files=[png('a.png'), png('b.png')])

        self.assertEqual(len(images), 2)
        for image in images:
            self.assertTrue(self.storage.exists(image.img_key))
            self.assertTrue(image.img_key.startswith(f'lots/{self.lot.id}/'))

        self.lot.refresh_from_db()
        self.assertEqual(self.lot.main_img_url, images[0].img_url)

        more = LotService.add_images(user=self.owner, lot_id=self.lot.id, files=[png('c.png')])
        self.lot.refresh_from_db()
        self.assertEqual(self.lot.main_img_url, images[0].img_url)
        self.assertNotEqual(more[0].img_url, images[0].img_url)

    def test_image_limit(self):
        LotService.add_images(user=self.owner, lot_id=self.lot.id, files=[png() for _ in range(4)])
        with self.assertRaises(ValidationError):
            LotService.add_images(user=self.owner, lot_id=self.lot.id, files=[png(), png()])
        self.assertEqual(self.lot.images.count(), 4)

    def test_add_images_non_owner(self):
        with self.assertRaises(PermissionDenied):
            LotService.add_images(user=AdminFactory(), lot_id=self.lot.id, files=[png()])

    def test_remove_images(self):
        first, second = LotService.add_images(user=self.owner, lot_id=self.lot.id, files=[png(), png()])

        removed = LotService.remove_images(
            user=self.owner,
            images=[{'id': first.id, 'img_url': first.img_url}]
        )

        self.assertEqual(removed, 1)
        self.assertFalse(self.storage.exists(first.img_key))
        self.assertTrue(self.storage.exists(second.img_key))
        self.assertFalse(LotImage.objects.filter(pk=first.id).exists())

        # the next image is promoted
        self.lot.refresh_from_db()
        self.assertEqual(self.lot.main_img_url, second.img_url)

    def test_remove_all_images_clears_main_image(self):
        images = LotService.add_images(user=self.owner, lot_id=self.lot.id, files=[png()])
        LotService.remove_images(user=self.owner, images=[{'id': images[0].id}])

        self.lot.refresh_from_db()
        self.assertEqual(self.lot.main_img_url, '')

    def test_remove_checks_every_image_before_deleting(self):
        mine = LotService.add_images(user=self.owner, lot_id=self.lot.id, files=[png()])[0]
        foreign = LotImageFactory(lot=LotFactory(lot_number=1))

        with self.assertRaises(PermissionDenied):
            LotService.remove_images(
                user=self.owner,
                images=[{'id': mine.id}, {'id': foreign.id}]
            )

        self.assertTrue(LotImage.objects.filter(pk=mine.id).exists())
        self.assertTrue(self.storage.exists(mine.img_key))

    def test_remove_unknown_image(self):
        with self.assertRaises(NotFound):
            LotService.remove_images(user=self.owner, images=[{'id': 999999}])

    @patch('marketplace.services.lot_service.delete_images', return_value=['lots/x'])
    def test_remove_storage_failure_keeps_rows(self, mock_delete):
        image = LotImageFactory(lot=self.lot, img_key='lots/x')

        with self.assertRaises(StorageError):
            LotService.remove_images(user=self.owner, images=[{'id': image.id}])

        self.assertTrue(LotImage.objects.filter(pk=image.id).exists())
