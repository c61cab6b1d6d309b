from decimal import Decimal

from django.conf import settings
from django.db.models import Count
from rest_framework import serializers

from .constants import CATEGORIES, LOTS_WITH_BIDS_TOP_BIDS
from .models import Auction, Bid, Lot, LotImage, User
from .services import AuctionService, LotService


class UserSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'password', 'first_name', 'last_name', 'role']
        read_only_fields = ['id', 'role']

    def create(self, validated_data):
        user = User.objects.create_user(
            username=validated_data['username'],
            email=validated_data.get('email', ''),
            password=validated_data['password'],
            first_name=validated_data.get('first_name', ''),
            last_name=validated_data.get('last_name', '')
        )
        return user


class ProfileSerializer(serializers.ModelSerializer):
    is_admin = serializers.BooleanField(read_only=True)
    auction_count = serializers.IntegerField(read_only=True)
    leading_lot_count = serializers.IntegerField(read_only=True)
    bid_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'username', 'email', 'first_name', 'last_name', 'role', 'is_admin',
            'auction_count', 'leading_lot_count', 'bid_count'
        ]
        read_only_fields = fields


class AuctionSerializer(serializers.ModelSerializer):
    owner_username = serializers.ReadOnlyField(source='owner.username')
    state = serializers.SerializerMethodField()
    lot_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Auction
        fields = [
            'id', 'title', 'location', 'starts_at', 'ends_at', 'owner', 'owner_username',
            'img_url', 'img_upload_status', 'state', 'lot_count', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_state(self, obj):
        return obj.state()


class AuctionCreateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Auction
        fields = ['id', 'title', 'location', 'starts_at', 'ends_at']
        read_only_fields = ['id']

    def create(self, validated_data):
        return AuctionService.create_auction(
            user=self.context['request'].user,
            data=validated_data
        )


class AuctionUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Auction
        fields = ['id', 'title', 'location', 'starts_at', 'ends_at']
        read_only_fields = ['id']

    def update(self, instance, validated_data):
        return AuctionService.update_auction(auction=instance, data=validated_data)


class LotImageSerializer(serializers.ModelSerializer):
    class Meta:
        model = LotImage
        fields = ['id', 'img_url']
        read_only_fields = fields


class ImageRefSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    img_url = serializers.CharField(required=False, allow_blank=True)


class ImageUploadSerializer(serializers.Serializer):
    images = serializers.ListField(child=serializers.FileField(), allow_empty=False)


class AuctionImageSerializer(serializers.Serializer):
    image = serializers.FileField()


class LotListSerializer(serializers.ModelSerializer):
    bid_count = serializers.IntegerField(read_only=True)
    auction_ends_at = serializers.ReadOnlyField(source='auction.ends_at')
    closes_at = serializers.ReadOnlyField()

    class Meta:
        model = Lot
        fields = [
            'id', 'auction', 'lot_number', 'title', 'category', 'min_bid', 'top_bidder',
            'main_img_url', 'bid_count', 'auction_ends_at', 'closes_at'
        ]
        read_only_fields = fields


class LotSerializer(serializers.ModelSerializer):
    bid_count = serializers.IntegerField(read_only=True)
    images = LotImageSerializer(many=True, read_only=True)
    auction_owner = serializers.ReadOnlyField(source='auction.owner_id')
    auction_ends_at = serializers.ReadOnlyField(source='auction.ends_at')
    closes_at = serializers.ReadOnlyField()

    class Meta:
        model = Lot
        fields = [
            'id', 'auction', 'auction_owner', 'auction_ends_at', 'lot_number', 'title',
            'description', 'category', 'min_bid', 'top_bid', 'top_bidder', 'main_img_url',
            'images', 'bid_count', 'closes_at', 'created_at'
        ]
        read_only_fields = fields


class LotCreateSerializer(serializers.ModelSerializer):
    auction = serializers.IntegerField(source='auction_id')
    category = serializers.ChoiceField(choices=CATEGORIES)
    min_bid = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'))

    class Meta:
        model = Lot
        fields = ['id', 'auction', 'lot_number', 'title', 'description', 'category', 'min_bid']
        read_only_fields = ['id', 'lot_number']

    def create(self, validated_data):
        return LotService.create_lot(
            user=self.context['request'].user,
            auction_id=validated_data.pop('auction_id'),
            data=validated_data
        )


class LotUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=100)
    description = serializers.CharField()
    category = serializers.ChoiceField(choices=CATEGORIES)
    min_bid = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'))


class BidSerializer(serializers.ModelSerializer):
    bidder_username = serializers.ReadOnlyField(source='bidder.username')

    class Meta:
        model = Bid
        fields = ['id', 'lot', 'bidder', 'bidder_username', 'amount', 'created_at']
        read_only_fields = fields


class PlaceBidSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))


class BidLotSerializer(serializers.ModelSerializer):
    auction_title = serializers.ReadOnlyField(source='auction.title')
    auction_ends_at = serializers.ReadOnlyField(source='auction.ends_at')
    closes_at = serializers.ReadOnlyField()

    class Meta:
        model = Lot
        fields = [
            'id', 'title', 'lot_number', 'description', 'min_bid', 'top_bid', 'top_bidder',
            'auction_title', 'auction_ends_at', 'closes_at'
        ]
        read_only_fields = fields


class UserBidSerializer(serializers.ModelSerializer):
    lot = BidLotSerializer(read_only=True)

    class Meta:
        model = Bid
        fields = ['id', 'lot', 'amount', 'created_at']
        read_only_fields = fields


class UserBidsSerializer(serializers.Serializer):
    leading_bids = UserBidSerializer(many=True, read_only=True)
    trailing_bids = UserBidSerializer(many=True, read_only=True)
    leader_names = serializers.ListField(child=serializers.CharField(), read_only=True)


class TopBidSerializer(serializers.ModelSerializer):
    email = serializers.ReadOnlyField(source='bidder.email')
    first_name = serializers.ReadOnlyField(source='bidder.first_name')
    last_name = serializers.ReadOnlyField(source='bidder.last_name')

    class Meta:
        model = Bid
        fields = ['id', 'amount', 'email', 'first_name', 'last_name']
        read_only_fields = fields


class LotWithBidsSerializer(serializers.ModelSerializer):
    bid_count = serializers.IntegerField(read_only=True)
    top_bids = serializers.SerializerMethodField()

    class Meta:
        model = Lot
        fields = ['id', 'title', 'lot_number', 'main_img_url', 'bid_count', 'top_bids']
        read_only_fields = fields

    def get_top_bids(self, obj):
        bids = obj.bids.select_related('bidder').order_by('-amount')[:LOTS_WITH_BIDS_TOP_BIDS]
        return TopBidSerializer(bids, many=True).data


class AuctionDashboardSerializer(serializers.ModelSerializer):
    lots = serializers.SerializerMethodField()
    lot_count = serializers.SerializerMethodField()
    bid_count = serializers.SerializerMethodField()
    max_lots = serializers.SerializerMethodField()

    class Meta:
        model = Auction
        fields = [
            'id', 'title', 'location', 'starts_at', 'ends_at', 'img_url', 'img_upload_status',
            'lot_count', 'max_lots', 'bid_count', 'lots'
        ]
        read_only_fields = fields

    def get_lots(self, obj):
        lots = (
            obj.lots
            .select_related('auction')
            .annotate(bid_count=Count('bids'))
            .order_by('lot_number')
        )
        return LotListSerializer(lots, many=True).data

    def get_lot_count(self, obj):
        return obj.lots.count()

    def get_bid_count(self, obj):
        return Bid.objects.filter(lot__auction=obj).count()

    def get_max_lots(self, obj):
        return settings.MAX_NUM_LOTS_PER_AUCTION
