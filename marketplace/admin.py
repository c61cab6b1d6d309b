from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import Auction, Bid, Lot, LotImage, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('username', 'email', 'first_name', 'last_name', 'role', 'is_staff')
    list_filter = BaseUserAdmin.list_filter + ('role',)
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Marketplace', {'fields': ('role',)}),
    )


class LotInline(admin.TabularInline):
    model = Lot
    fields = ('lot_number', 'title', 'category', 'min_bid', 'top_bidder')
    readonly_fields = ('lot_number', 'min_bid', 'top_bidder')
    extra = 0
    can_delete = False
    ordering = ('lot_number',)

    def has_add_permission(self, request, obj=None):
        return False


class LotImageInline(admin.TabularInline):
    model = LotImage
    fields = ('img_url', 'img_key', 'created_at')
    readonly_fields = ('img_url', 'img_key', 'created_at')
    extra = 0
    can_delete = False


class BidInline(admin.TabularInline):
    model = Bid
    fields = ('bidder', 'amount', 'created_at')
    readonly_fields = ('bidder', 'amount', 'created_at')
    extra = 0
    can_delete = False
    ordering = ('-amount',)


@admin.register(Auction)
class AuctionAdmin(admin.ModelAdmin):
    list_display = ('title', 'location', 'owner', 'starts_at', 'ends_at', 'img_upload_status')
    list_filter = ('starts_at', 'ends_at', 'img_upload_status')
    search_fields = ('title', 'location', 'owner__username')
    readonly_fields = ('img_url', 'img_key', 'created_at', 'updated_at')
    date_hierarchy = 'starts_at'
    inlines = [LotInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('title', 'location', 'owner')
        }),
        ('Auction Timing', {
            'fields': ('starts_at', 'ends_at')
        }),
        ('Image', {
            'fields': ('img_url', 'img_key', 'img_upload_status')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def has_change_permission(self, request, obj=None):
        # Finished auctions are frozen
        if obj and obj.state() == Auction.CLOSED:
            return False
        return super().has_change_permission(request, obj)

    def has_delete_permission(self, request, obj=None):
        # Auctions must be emptied of their lots first
        if obj and obj.lots.exists():
            return False
        return super().has_delete_permission(request, obj)


@admin.register(Lot)
class LotAdmin(admin.ModelAdmin):
    list_display = ('title', 'auction', 'lot_number', 'category', 'min_bid', 'top_bidder')
    list_filter = ('category', 'auction')
    search_fields = ('title', 'description', 'auction__title')
    readonly_fields = ('auction', 'lot_number', 'min_bid', 'top_bid', 'top_bidder', 'created_at')
    inlines = [LotImageInline, BidInline]

    def has_add_permission(self, request):
        # Lots are numbered by the API
        return False

    def has_delete_permission(self, request, obj=None):
        # Deleting lots goes through the API so siblings get renumbered
        return False


@admin.register(Bid)
class BidAdmin(admin.ModelAdmin):
    list_display = ('id', 'lot', 'bidder', 'amount', 'created_at')
    list_filter = ('created_at',)
    search_fields = ('lot__title', 'bidder__username')
    readonly_fields = ('created_at',)
    date_hierarchy = 'created_at'

    def has_change_permission(self, request, obj=None):
        # Bids cannot be edited after creation
        return False

    def has_delete_permission(self, request, obj=None):
        # The bid ledger is append-only
        return False
