from rest_framework import exceptions, status


class Unauthorized(exceptions.APIException):
    """
    The caller is authenticated but is not allowed to act, e.g. a seller
    bidding on their own lot or a bidder out-bidding themselves.
    """
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'You are not allowed to perform this action.'
    default_code = 'unauthorized'


class StorageError(exceptions.APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Unable to reach the image storage.'
    default_code = 'storage_error'
