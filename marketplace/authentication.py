import logging

from django.db.models import Count
from django.utils.decorators import method_decorator
from drf_yasg.utils import swagger_auto_schema
from rest_framework import generics, permissions

from .models import User
from .serializers import ProfileSerializer, UserSerializer

logger = logging.getLogger(__name__)


@method_decorator(name='post', decorator=swagger_auto_schema(
    responses={201: UserSerializer, 400: 'Bad Request - Invalid data or username taken'},
    operation_description="Open a bidder account. Admins are promoted from the Django admin."
))
class RegisterView(generics.CreateAPIView):
    """
    Sign-up for bidders. Every new account gets the USER role.
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []
    serializer_class = UserSerializer

    def perform_create(self, serializer):
        user = serializer.save()
        logger.info("User %s registered", user.id)


@method_decorator(name='get', decorator=swagger_auto_schema(
    responses={200: ProfileSerializer, 401: 'Unauthorized - Authentication credentials not provided'},
    operation_description="The logged-in user's role with their auction and bidding counts"
))
class UserProfileView(generics.RetrieveAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ProfileSerializer

    def get_object(self):
        return (
            User.objects
            .annotate(
                auction_count=Count('auctions', distinct=True),
                leading_lot_count=Count('leading_lots', distinct=True),
                bid_count=Count('bids', distinct=True),
            )
            .get(pk=self.request.user.pk)
        )
