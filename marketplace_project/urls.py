"""
Routes for the lot auction service.

Everything under ``api/v1/`` is the public API and is the only part the
OpenAPI schema describes. The Django admin is where admins are promoted.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import include, path
from drf_yasg import openapi
from drf_yasg.views import get_schema_view
from rest_framework.permissions import AllowAny

api_v1 = [
    path('api/v1/', include('marketplace.urls')),
]

schema_view = get_schema_view(
    openapi.Info(
        title="Lot Auction API",
        default_version='v1',
        description=(
            "Admins run scheduled auctions with up to "
            f"{settings.MAX_NUM_LOTS_PER_AUCTION} numbered lots; users bid on open lots."
        ),
    ),
    public=True,
    permission_classes=[AllowAny],
    patterns=api_v1,
)

urlpatterns = api_v1 + [
    path('admin/', admin.site.urls),
    path('api/docs/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('api/docs/redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
    path('api/schema.json', schema_view.without_ui(cache_timeout=0), name='schema-json'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
