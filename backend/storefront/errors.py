from __future__ import annotations

from rest_framework import status
from rest_framework.exceptions import APIException


class StorefrontError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Storefront request failed."
    default_code = "storefront_error"


class NotFoundError(StorefrontError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found."
    default_code = "not_found"

    def __init__(self, entity: str, key: object):
        self.entity = entity
        self.key = key
        super().__init__(f'{entity} with identifier "{key}" was not found.')


class DomainValidationError(StorefrontError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request."
    default_code = "validation_error"


class PaymentError(StorefrontError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Payment gateway request failed."
    default_code = "payment_error"


class DownloadError(StorefrontError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Download is not allowed."
    default_code = "download_error"


class StorageUnavailableError(StorefrontError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "File storage is unavailable."
    default_code = "storage_unavailable"
