from __future__ import annotations

import logging

from django.db import transaction
from rest_framework import generics, status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from ..errors import NotFoundError
from ..models import Cart, CartItem, Order, Product
from ..serializers import (
    BankAccountSerializer,
    CartItemWriteSerializer,
    CartSerializer,
    CheckoutContactSerializer,
    DigitalAccessSerializer,
    DownloadLinkSerializer,
    OfflinePaymentSerializer,
    OrderCancelSerializer,
    OrderCreateSerializer,
    OrderSerializer,
    PaymentSerializer,
)
from ..services import (
    CustomerContact,
    OrderLine,
    cancel_order,
    create_order,
    create_order_from_cart,
    generate_download_link,
    get_access_for_order_item,
    get_order_by_number,
    get_primary_bank_account,
    list_access_for_customer,
    list_bank_accounts,
    list_orders_for_customer,
    list_payments_for_order,
    process_offline_payment,
    process_online_payment,
    verify_payment,
)
from .helpers import get_request_customer_account

logger = logging.getLogger(__name__)


def _contact_from(validated: dict) -> CustomerContact:
    return CustomerContact(
        name=validated.get("customer_name", ""),
        email=validated.get("customer_email", ""),
        phone=validated.get("customer_phone", ""),
    )


def _order_payload(order: Order) -> dict:
    return {
        "order": OrderSerializer(order).data,
        "payments": PaymentSerializer(list_payments_for_order(order), many=True).data,
    }


class AccountCartView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        account = get_request_customer_account(request)
        cart, _ = Cart.objects.get_or_create(customer_account=account)
        return Response(CartSerializer(cart).data)


class AccountCartItemView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = CartItemWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        product_id = serializer.validated_data["product_id"]
        quantity = serializer.validated_data["quantity"]

        product = Product.objects.filter(pk=product_id, status=Product.Status.PUBLISHED).first()
        if product is None:
            raise NotFoundError("Product", product_id)

        account = get_request_customer_account(request)
        with transaction.atomic():
            cart, _ = Cart.objects.get_or_create(customer_account=account)
            item, created = CartItem.objects.select_for_update().get_or_create(
                cart=cart,
                product=product,
                defaults={"quantity": quantity},
            )
            if not created:
                item.quantity += quantity
                item.save(update_fields=["quantity", "updated_at"])

        return Response(CartSerializer(cart).data, status=status.HTTP_201_CREATED)

    def delete(self, request, product_id: int):
        account = get_request_customer_account(request)
        deleted, _ = CartItem.objects.filter(cart__customer_account=account, product_id=product_id).delete()
        if not deleted:
            raise NotFoundError("CartItem", product_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class AccountOrderListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer

    def get_queryset(self):
        return list_orders_for_customer(get_request_customer_account(self.request))


class AccountOrderCreateView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "checkout_create"

    def post(self, request):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = create_order(
            [OrderLine(product_id=line["product_id"], quantity=line["quantity"]) for line in data["items"]],
            customer_account=get_request_customer_account(request),
            payment_method=data["payment_method"],
            contact=_contact_from(data),
            shipping_address=data.get("shipping_address", ""),
            notes=data.get("notes", ""),
        )
        return Response(_order_payload(order), status=status.HTTP_201_CREATED)


class AccountOrderFromCartView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "checkout_create"

    def post(self, request):
        serializer = CheckoutContactSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = create_order_from_cart(
            get_request_customer_account(request),
            payment_method=data["payment_method"],
            contact=_contact_from(data),
            shipping_address=data.get("shipping_address", ""),
            notes=data.get("notes", ""),
        )
        return Response(_order_payload(order), status=status.HTTP_201_CREATED)


class AccountOrderDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, order_number: str):
        order = get_order_by_number(order_number, customer_account=get_request_customer_account(request))
        return Response(_order_payload(order))


class AccountOrderCancelView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, order_number: str):
        serializer = OrderCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = get_order_by_number(order_number, customer_account=get_request_customer_account(request))
        # Customers may only withdraw orders nobody has started on.
        order = cancel_order(
            order,
            serializer.validated_data.get("reason", ""),
            allowed_from={Order.Status.PENDING},
        )
        return Response(_order_payload(order))


class AccountOrderCheckoutView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "payment_submit"

    def post(self, request, order_number: str):
        order = get_order_by_number(order_number, customer_account=get_request_customer_account(request))
        payment = process_online_payment(order)
        return Response(
            {
                "payment": PaymentSerializer(payment).data,
                "checkout_url": payment.checkout_url,
            },
            status=status.HTTP_201_CREATED,
        )


class AccountOfflinePaymentView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "payment_submit"
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    def post(self, request, order_number: str):
        serializer = OfflinePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = get_order_by_number(order_number, customer_account=get_request_customer_account(request))
        payment = process_offline_payment(
            order,
            method=data["method"],
            bank_name=data.get("bank_name", ""),
            account_number=data.get("account_number", ""),
            transaction_id=data.get("transaction_id", ""),
            proof=data.get("proof"),
        )
        return Response({"payment": PaymentSerializer(payment).data}, status=status.HTTP_201_CREATED)


class AccountBankAccountListView(APIView):
    """Where to send bank transfers and cash deposits for offline payment."""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        accounts = list_bank_accounts()
        primary = get_primary_bank_account() if accounts else None
        return Response(
            {
                "accounts": BankAccountSerializer(accounts, many=True).data,
                "primary": BankAccountSerializer(primary).data if primary else None,
            }
        )


class AccountPaymentVerifyView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, reference: str):
        payment = verify_payment(reference, customer_account=get_request_customer_account(request))
        return Response(
            {
                "payment": PaymentSerializer(payment).data,
                "order": OrderSerializer(payment.order).data,
            }
        )


class AccountDigitalAccessListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = DigitalAccessSerializer

    def get_queryset(self):
        return list_access_for_customer(get_request_customer_account(self.request))


class AccountDigitalAccessDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, order_item_id: int):
        access = get_access_for_order_item(order_item_id, get_request_customer_account(request))
        return Response(DigitalAccessSerializer(access).data)


class AccountDownloadLinkView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "download_access"

    def post(self, request, order_item_id: int):
        link = generate_download_link(order_item_id, get_request_customer_account(request))
        logger.info("Issued download link for order item %s.", order_item_id)
        return Response(DownloadLinkSerializer(link).data)
