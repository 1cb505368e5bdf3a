from __future__ import annotations

from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from ..errors import NotFoundError
from ..models import CustomerAccount, Order, OrderItem
from ..serializers import (
    DigitalAccessGrantSerializer,
    DigitalAccessSerializer,
    DigitalAccessUpdateSerializer,
    OrderRangeQuerySerializer,
    OrderSerializer,
    OrderStatusUpdateSerializer,
    PaymentReviewSerializer,
    PaymentSerializer,
)
from ..services import (
    approve_offline_payment,
    cleanup_expired_access,
    get_access,
    get_order,
    grant_access,
    list_expired_access,
    list_orders_in_range,
    list_pending_offline_payments,
    revoke_access,
    update_access,
    update_order_status,
)
from ..tools.auth import IsStoreStaff
from .helpers import get_request_actor


class StaffOrderListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated, IsStoreStaff]
    serializer_class = OrderSerializer

    def get_queryset(self):
        query = OrderRangeQuerySerializer(data=self.request.query_params)
        query.is_valid(raise_exception=True)
        filters = query.validated_data

        if filters.get("start") is not None:
            queryset = list_orders_in_range(filters["start"], filters["end"])
        else:
            queryset = Order.objects.prefetch_related("items")

        customer_account_id = filters.get("customer_account_id")
        if customer_account_id:
            account = CustomerAccount.objects.filter(pk=customer_account_id).first()
            if account is None:
                raise NotFoundError("CustomerAccount", customer_account_id)
            queryset = queryset.filter(customer_account=account)
        return queryset


class StaffOrderStatusView(APIView):
    permission_classes = [IsAuthenticated, IsStoreStaff]

    def post(self, request, order_id: int):
        serializer = OrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = update_order_status(
            get_order(order_id),
            serializer.validated_data["status"],
            reason=serializer.validated_data.get("reason", ""),
        )
        return Response({"order": OrderSerializer(order).data})


class StaffPendingPaymentListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated, IsStoreStaff]
    serializer_class = PaymentSerializer

    def get_queryset(self):
        return list_pending_offline_payments()


class StaffPaymentReviewView(APIView):
    permission_classes = [IsAuthenticated, IsStoreStaff]

    def post(self, request, payment_id: int):
        serializer = PaymentReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payment = approve_offline_payment(
            payment_id,
            approve=serializer.validated_data["approve"],
            notes=serializer.validated_data.get("notes", ""),
            approved_by=get_request_actor(request),
        )
        return Response({"payment": PaymentSerializer(payment).data})


class StaffDigitalAccessGrantView(APIView):
    permission_classes = [IsAuthenticated, IsStoreStaff]

    def post(self, request):
        serializer = DigitalAccessGrantSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order_item_id = serializer.validated_data["order_item_id"]

        order_item = (
            OrderItem.objects.select_related("order", "product")
            .filter(pk=order_item_id, order__is_deleted=False)
            .first()
        )
        if order_item is None:
            raise NotFoundError("OrderItem", order_item_id)
        access = grant_access(order_item)
        return Response(DigitalAccessSerializer(access).data, status=status.HTTP_201_CREATED)


class StaffDigitalAccessDetailView(APIView):
    permission_classes = [IsAuthenticated, IsStoreStaff]

    def get(self, request, access_id: int):
        return Response(DigitalAccessSerializer(get_access(access_id)).data)

    def patch(self, request, access_id: int):
        serializer = DigitalAccessUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        access = update_access(access_id, **serializer.validated_data)
        return Response(DigitalAccessSerializer(access).data)

    def delete(self, request, access_id: int):
        access = revoke_access(access_id)
        return Response(DigitalAccessSerializer(access).data)


class StaffExpiredAccessListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated, IsStoreStaff]
    serializer_class = DigitalAccessSerializer

    def get_queryset(self):
        return list_expired_access().select_related("product", "order_item", "order_item__order")


class StaffAccessCleanupView(APIView):
    permission_classes = [IsAuthenticated, IsStoreStaff]

    def post(self, request):
        return Response({"deactivated": cleanup_expired_access()})
