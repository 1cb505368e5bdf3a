from __future__ import annotations

from rest_framework import serializers

from ..models import Product


class ProductSummarySerializer(serializers.ModelSerializer):
    effective_price_cents = serializers.IntegerField(read_only=True)

    class Meta:
        model = Product
        fields = (
            "id",
            "title",
            "slug",
            "author",
            "format",
            "status",
            "price_cents",
            "discount_price_cents",
            "effective_price_cents",
            "stock_quantity",
        )
        read_only_fields = fields
