from django.conf import settings
from django.core.paginator import Page
from rest_framework.exceptions import NotFound
from rest_framework.pagination import CursorPagination, PageNumberPagination


class AuctionLotsCursorPagination(CursorPagination):
    """
    Infinite scrolling over the lots of one auction, newest numbers first.
    """
    ordering = '-lot_number'
    page_size = 10
    page_size_query_param = 'limit'
    max_page_size = settings.MAX_NUM_LOTS_PER_AUCTION


class PublicLotsPagination(PageNumberPagination):
    """
    Page size is clamped to 5..20; pages past the end come back empty.
    """
    page_size = 10
    page_size_query_param = 'page_size'
    max_page_size = 20
    min_page_size = 5

    def get_page_size(self, request):
        page_size = super().get_page_size(request)
        return max(page_size, self.min_page_size)

    def paginate_queryset(self, queryset, request, view=None):
        try:
            return super().paginate_queryset(queryset, request, view)
        except NotFound:
            paginator = self.django_paginator_class(queryset, self.get_page_size(request))
            self.page = Page([], paginator.num_pages + 1, paginator)
            self.request = request
            return []
