from __future__ import annotations

from rest_framework import serializers

from ..models import CustomerAccount, Profile


class ProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = Profile
        fields = (
            "id",
            "clerk_user_id",
            "email",
            "first_name",
            "last_name",
            "phone",
            "is_active",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class CustomerAccountSerializer(serializers.ModelSerializer):
    profile = ProfileSerializer(read_only=True)

    class Meta:
        model = CustomerAccount
        fields = (
            "id",
            "profile",
            "external_customer_id",
            "billing_email",
            "full_name",
            "phone",
            "shipping_address",
            "country",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "profile", "external_customer_id", "created_at", "updated_at")
