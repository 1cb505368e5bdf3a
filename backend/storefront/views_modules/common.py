from __future__ import annotations

from datetime import datetime, timezone

from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from ..serializers import CustomerAccountSerializer
from .helpers import get_request_claims, get_request_customer_account


class HealthView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        return Response(
            {
                "status": "ok",
                "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            }
        )


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        claims = get_request_claims(request)
        customer_account = get_request_customer_account(request)
        return Response(
            {
                "clerk_user_id": claims.get("sub"),
                "email": claims.get("email"),
                "roles": sorted(request.user.roles),
                "customer_account": CustomerAccountSerializer(customer_account).data,
            }
        )
