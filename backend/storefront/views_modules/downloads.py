from __future__ import annotations

from django.http import FileResponse
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from ..services import process_download, validate_token


class DigitalDownloadView(APIView):
    """Public file endpoint: the rotating token is the only credential."""

    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_scope = "download_file"

    def get(self, request, token: str):
        access, stream = process_download(token)
        product = access.product
        response = FileResponse(
            stream,
            as_attachment=True,
            filename=product.digital_file_name,
            content_type=product.digital_mime_type or "application/octet-stream",
        )
        response["Cache-Control"] = "no-store"
        return response


class DigitalDownloadValidateView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_scope = "download_access"

    def get(self, request, token: str):
        return Response({"valid": validate_token(token)})
