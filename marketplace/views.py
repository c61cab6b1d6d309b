from django.db.models import Count
from drf_yasg.utils import swagger_auto_schema
from rest_framework import filters, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response

from .models import Auction, Lot
from .pagination import AuctionLotsCursorPagination, PublicLotsPagination
from .permissions import IsAdminRole
from .serializers import (
    AuctionCreateSerializer,
    AuctionDashboardSerializer,
    AuctionImageSerializer,
    AuctionSerializer,
    AuctionUpdateSerializer,
    BidSerializer,
    ImageRefSerializer,
    ImageUploadSerializer,
    LotCreateSerializer,
    LotImageSerializer,
    LotListSerializer,
    LotSerializer,
    LotUpdateSerializer,
    LotWithBidsSerializer,
    PlaceBidSerializer,
    UserBidsSerializer,
)
from .services import AuctionService, BidService, LotService
from .services.auction_service import get_dashboard


class AuctionViewSet(viewsets.ModelViewSet):
    """
    API endpoint for auctions.
    """
    queryset = Auction.objects.all()
    lookup_value_regex = r'\d+'
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ['title', 'location']
    ordering_fields = ['starts_at', 'ends_at', 'created_at']
    ordering = ['starts_at']

    # actions restricted to the owner of the auction
    owner_actions = [
        'update', 'partial_update', 'destroy', 'lots', 'lots_with_bids', 'dashboard', 'image'
    ]

    def get_serializer_class(self):
        if self.action == 'create':
            return AuctionCreateSerializer
        elif self.action in ['update', 'partial_update']:
            return AuctionUpdateSerializer
        return AuctionSerializer

    def get_permissions(self):
        """
        - List and retrieve: anyone
        - Everything else: admins, and only on auctions they own
        """
        if self.action in ['list', 'retrieve']:
            permission_classes = [permissions.AllowAny]
        else:
            permission_classes = [permissions.IsAuthenticated, IsAdminRole]
        return [permission() for permission in permission_classes]

    def get_queryset(self):
        """
        Filter auctions based on query parameters:
        - my: only the auctions of the current admin (if true)
        Owner-only actions never see auctions of other users.
        """
        queryset = (
            Auction.objects
            .select_related('owner')
            .annotate(lot_count=Count('lots'))
        )
        user = self.request.user

        if self.action in self.owner_actions:
            return queryset.filter(owner=user)

        my_auctions = self.request.query_params.get('my')
        if my_auctions and my_auctions.lower() == 'true' and user.is_authenticated:
            queryset = queryset.filter(owner=user)

        return queryset

    def perform_destroy(self, instance):
        AuctionService.delete_auction(auction=instance)

    @action(detail=True, methods=['get'], pagination_class=AuctionLotsCursorPagination, filter_backends=[])
    def lots(self, request, pk=None):
        """
        Cursor-paginated lots of one of the admin's auctions.
        The auction search and ordering filters do not apply here; the
        paginator orders lots by number.
        """
        auction = self.get_object()
        queryset = (
            auction.lots
            .select_related('auction')
            .annotate(bid_count=Count('bids'))
        )
        page = self.paginate_queryset(queryset)
        serializer = LotListSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @action(detail=True, methods=['get'], url_path='lots-with-bids')
    def lots_with_bids(self, request, pk=None):
        """
        Lots of the auction that received bids, with their best bids.
        """
        auction = self.get_object()
        lots = (
            auction.lots
            .filter(top_bid__isnull=False, top_bidder__isnull=False)
            .annotate(bid_count=Count('bids'))
            .order_by('lot_number')
        )
        serializer = LotWithBidsSerializer(lots, many=True)
        return Response(serializer.data)

    @action(detail=True, methods=['get'])
    def dashboard(self, request, pk=None):
        auction = self.get_object()
        data = get_dashboard(auction, lambda a: dict(AuctionDashboardSerializer(a).data))
        # the state moves with the clock, so it is never cached
        data['state'] = auction.state()
        return Response(data)

    @swagger_auto_schema(request_body=AuctionImageSerializer, responses={200: AuctionSerializer})
    @action(detail=True, methods=['post'], parser_classes=[MultiPartParser, FormParser])
    def image(self, request, pk=None):
        auction = self.get_object()
        serializer = AuctionImageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        AuctionService.set_image(auction=auction, upload=serializer.validated_data['image'])
        return Response(AuctionSerializer(self.get_object()).data)


class LotViewSet(viewsets.ModelViewSet):
    """
    API endpoint for lots.
    Anyone can browse lots, admins manage the lots of their auctions and
    authenticated users bid on them.
    """
    queryset = Lot.objects.all()
    lookup_value_regex = r'\d+'
    pagination_class = PublicLotsPagination

    def get_serializer_class(self):
        if self.action == 'create':
            return LotCreateSerializer
        elif self.action in ['update', 'partial_update']:
            return LotUpdateSerializer
        elif self.action == 'list':
            return LotListSerializer
        return LotSerializer

    def get_permissions(self):
        """
        - List and retrieve: anyone
        - Bid: any authenticated user
        - Everything else: admins (ownership is checked per lot)
        """
        if self.action in ['list', 'retrieve']:
            permission_classes = [permissions.AllowAny]
        elif self.action == 'bid':
            permission_classes = [permissions.IsAuthenticated]
        else:
            permission_classes = [permissions.IsAuthenticated, IsAdminRole]
        return [permission() for permission in permission_classes]

    def get_queryset(self):
        """
        Filter lots based on query parameters:
        - auction: only the lots of one auction
        """
        queryset = (
            Lot.objects
            .select_related('auction')
            .prefetch_related('images')
            .annotate(bid_count=Count('bids'))
        )

        auction_id = self.request.query_params.get('auction')
        if auction_id:
            if not auction_id.isdigit():
                return queryset.none()
            queryset = queryset.filter(auction_id=auction_id)

        return queryset.order_by('auction_id', 'lot_number')

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        serializer = self.get_serializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        LotService.update_lot(user=request.user, lot_id=kwargs['pk'], data=serializer.validated_data)
        lot = self.get_queryset().get(pk=kwargs['pk'])
        return Response(LotSerializer(lot).data)

    def destroy(self, request, *args, **kwargs):
        LotService.delete_lot(user=request.user, lot_id=kwargs['pk'])
        return Response(status=status.HTTP_204_NO_CONTENT)

    @swagger_auto_schema(request_body=ImageUploadSerializer, responses={201: LotImageSerializer(many=True)})
    @action(detail=True, methods=['post'], parser_classes=[MultiPartParser, FormParser])
    def images(self, request, pk=None):
        """
        Upload images for a lot. The first image becomes the main image.
        """
        serializer = ImageUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        images = LotService.add_images(
            user=request.user,
            lot_id=pk,
            files=serializer.validated_data['images']
        )
        return Response(LotImageSerializer(images, many=True).data, status=status.HTTP_201_CREATED)

    @swagger_auto_schema(request_body=ImageRefSerializer(many=True))
    @action(detail=False, methods=['post'], url_path='remove-images', parser_classes=[JSONParser])
    def remove_images(self, request):
        serializer = ImageRefSerializer(data=request.data, many=True, allow_empty=False)
        serializer.is_valid(raise_exception=True)
        removed = LotService.remove_images(user=request.user, images=serializer.validated_data)
        return Response({'removed': removed})

    @swagger_auto_schema(
        request_body=PlaceBidSerializer,
        responses={
            201: BidSerializer,
            400: 'Bad Request - Bid too low, too high, or lot closed',
            401: 'Unauthorized - Bidding on own lot or out-bidding yourself',
            404: 'Not Found - Lot does not exist'
        },
        operation_description="Place a bid on a lot"
    )
    @action(detail=True, methods=['post'])
    def bid(self, request, pk=None):
        """
        Place a bid on a specific lot.
        """
        serializer = PlaceBidSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        bid = BidService.place_bid(
            user=request.user,
            lot_id=pk,
            amount=serializer.validated_data['amount']
        )
        return Response(BidSerializer(bid).data, status=status.HTTP_201_CREATED)


class BidViewSet(viewsets.GenericViewSet):
    """
    API endpoint for the bids of the current user.
    """
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = UserBidsSerializer

    def list(self, request):
        """
        The user's leading bids, and their best trailing bid on every lot
        where somebody else leads.
        """
        bids = BidService.get_user_bids(user=request.user)
        return Response(UserBidsSerializer(bids).data)
