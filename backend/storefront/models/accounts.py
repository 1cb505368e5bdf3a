from __future__ import annotations

from django.core.exceptions import ValidationError
from django.db import models


class Profile(models.Model):
    clerk_user_id = models.CharField(max_length=64, unique=True, db_index=True)
    email = models.EmailField(blank=True)
    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    is_active = models.BooleanField(default=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-updated_at",)

    @property
    def display_name(self) -> str:
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.email or self.clerk_user_id

    def __str__(self) -> str:
        return self.email or self.clerk_user_id


class CustomerAccount(models.Model):
    profile = models.OneToOneField(
        Profile,
        on_delete=models.CASCADE,
        related_name="customer_account",
    )
    external_customer_id = models.CharField(max_length=128, blank=True, db_index=True)
    billing_email = models.EmailField(blank=True)
    full_name = models.CharField(max_length=180, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    shipping_address = models.TextField(blank=True)
    country = models.CharField(max_length=2, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-updated_at",)

    def clean(self) -> None:
        self.external_customer_id = (self.external_customer_id or "").strip()
        self.billing_email = (self.billing_email or "").strip()
        self.full_name = (self.full_name or "").strip()
        self.phone = (self.phone or "").strip()
        self.shipping_address = (self.shipping_address or "").strip()
        self.country = (self.country or "").strip().upper()

        if self.country and len(self.country) != 2:
            raise ValidationError({"country": "Use a 2-letter ISO country code."})

    def save(self, *args, **kwargs):
        if not self.external_customer_id:
            self.external_customer_id = self.profile.clerk_user_id
        if not self.billing_email:
            self.billing_email = self.profile.email
        if not self.full_name:
            self.full_name = self.profile.display_name
        if not self.phone:
            self.phone = self.profile.phone
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return self.full_name or self.billing_email or self.external_customer_id
