from datetime import timedelta

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from .constants import CATEGORIES


class User(AbstractUser):
    ROLE_CHOICES = (
        ('ADMIN', 'Admin'),
        ('USER', 'User'),
    )

    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default='USER')

    @property
    def is_admin(self):
        return self.role == 'ADMIN'


class Auction(models.Model):
    UPLOAD_STATUS_CHOICES = (
        ('PENDING', 'Pending'),
        ('PROCESSING', 'Processing'),
        ('SUCCESS', 'Success'),
        ('FAILED', 'Failed'),
    )

    SCHEDULED = 'scheduled'
    OPEN = 'open'
    CLOSED = 'closed'

    title = models.CharField(max_length=50)
    location = models.CharField(max_length=100)
    starts_at = models.DateTimeField()
    ends_at = models.DateTimeField()
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='auctions')
    img_url = models.CharField(max_length=500, blank=True)
    img_key = models.CharField(max_length=255, blank=True)
    img_upload_status = models.CharField(max_length=10, choices=UPLOAD_STATUS_CHOICES, default='PENDING')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['starts_at']
        indexes = [
            models.Index(fields=['owner'], name='auction_owner_idx'),
            models.Index(fields=['ends_at'], name='auction_ends_at_idx'),
        ]

    def __str__(self):
        return f"{self.title} ({self.location})"

    def clean(self):
        if self.starts_at and self.ends_at and self.starts_at > self.ends_at:
            raise ValidationError("The start date must be before or equal to the end date")

    def state(self, now=None):
        """
        Scheduled until the start date passes, open until the end date
        passes, closed afterwards.
        """
        now = now or timezone.now()
        if now < self.starts_at:
            return self.SCHEDULED
        if now < self.ends_at:
            return self.OPEN
        return self.CLOSED


class Lot(models.Model):
    CATEGORY_CHOICES = [(category, category) for category in CATEGORIES]

    auction = models.ForeignKey(Auction, on_delete=models.CASCADE, related_name='lots')
    lot_number = models.PositiveIntegerField()
    title = models.CharField(max_length=100)
    description = models.TextField()
    category = models.CharField(max_length=50, choices=CATEGORY_CHOICES)
    min_bid = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])
    top_bid = models.OneToOneField(
        'Bid',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='leading_lot'
    )
    top_bidder = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='leading_lots'
    )
    main_img_url = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['auction', 'lot_number']
        constraints = [
            # renumbering shifts whole ranges, so uniqueness is checked at commit
            models.UniqueConstraint(
                fields=['auction', 'lot_number'],
                name='lot_unique_number_per_auction',
                deferrable=models.Deferrable.DEFERRED,
            ),
        ]
        indexes = [
            models.Index(fields=['auction', 'lot_number'], name='lot_auction_number_idx'),
            models.Index(fields=['top_bidder'], name='lot_top_bidder_idx'),
        ]

    def __str__(self):
        return f"Lot {self.lot_number}: {self.title}"

    @property
    def closes_at(self):
        # lots of one auction close one after another
        return self.auction.ends_at + timedelta(seconds=self.lot_number * settings.LOT_TIME_DELTA)

    def is_closed(self, now=None):
        now = now or timezone.now()
        return now >= self.closes_at


class LotImage(models.Model):
    lot = models.ForeignKey(Lot, on_delete=models.CASCADE, related_name='images')
    img_url = models.CharField(max_length=500)
    img_key = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"Image {self.img_key} of {self.lot}"


class Bid(models.Model):
    lot = models.ForeignKey(Lot, on_delete=models.CASCADE, related_name='bids')
    bidder = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='bids')
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['lot', 'amount'], name='bid_lot_amount_idx'),
            models.Index(fields=['bidder'], name='bid_bidder_idx'),
        ]

    def __str__(self):
        return f"Bid of ${self.amount} by {self.bidder.username} on {self.lot}"
