from __future__ import annotations

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils.text import slugify

from .base import SoftDeleteModel


class Product(SoftDeleteModel):
    class Format(models.TextChoices):
        PRINT = "print", "Print"
        DIGITAL = "digital", "Digital"
        BUNDLE = "bundle", "Bundle"

    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        PUBLISHED = "published", "Published"
        OUT_OF_STOCK = "out_of_stock", "Out of stock"
        DISCONTINUED = "discontinued", "Discontinued"

    title = models.CharField(max_length=240)
    slug = models.SlugField(max_length=260, unique=True)
    author = models.CharField(max_length=180, blank=True)
    isbn = models.CharField(max_length=20, blank=True)
    description = models.TextField(blank=True)
    format = models.CharField(max_length=16, choices=Format.choices, default=Format.PRINT)
    status = models.CharField(max_length=24, choices=Status.choices, default=Status.DRAFT)
    price_cents = models.PositiveIntegerField(default=0)
    discount_price_cents = models.PositiveIntegerField(blank=True, null=True)
    stock_quantity = models.IntegerField(default=0)
    digital_file_path = models.CharField(max_length=420, blank=True)
    digital_file_name = models.CharField(max_length=240, blank=True)
    digital_file_size_bytes = models.PositiveBigIntegerField(default=0)
    digital_mime_type = models.CharField(max_length=120, blank=True)
    max_downloads = models.PositiveIntegerField(blank=True, null=True)
    download_expiry_days = models.PositiveIntegerField(blank=True, null=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta(SoftDeleteModel.Meta):
        ordering = ("title", "id")
        indexes = [
            models.Index(fields=("format", "status"), name="product_format_status_idx"),
            models.Index(fields=("status", "is_deleted"), name="product_status_deleted_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(stock_quantity__gte=0), name="product_stock_non_negative"),
            models.CheckConstraint(condition=~Q(title=""), name="product_title_not_empty"),
        ]

    @property
    def is_print(self) -> bool:
        return self.format == self.Format.PRINT

    @property
    def has_digital_file(self) -> bool:
        return bool((self.digital_file_path or "").strip())

    @property
    def effective_price_cents(self) -> int:
        if self.discount_price_cents is not None:
            return self.discount_price_cents
        return self.price_cents

    def is_available(self, quantity: int = 1) -> bool:
        # Only print stock is counted; digital and bundle lines never run out.
        if not self.is_print:
            return True
        return self.stock_quantity >= quantity

    def clean(self) -> None:
        self.title = (self.title or "").strip()
        self.slug = slugify((self.slug or "").strip() or self.title)
        self.author = (self.author or "").strip()
        self.isbn = (self.isbn or "").strip()
        self.digital_file_path = (self.digital_file_path or "").strip().lstrip("/")
        self.digital_file_name = (self.digital_file_name or "").strip()
        self.digital_mime_type = (self.digital_mime_type or "").strip()
        if self.digital_file_path and not self.digital_file_name:
            self.digital_file_name = self.digital_file_path.rsplit("/", 1)[-1]

        if not self.title:
            raise ValidationError({"title": "Product title cannot be empty."})
        if not self.slug:
            raise ValidationError({"slug": "Slug is required."})
        if self.stock_quantity < 0:
            raise ValidationError({"stock_quantity": "Stock cannot be negative."})
        if self.discount_price_cents is not None and self.discount_price_cents > self.price_cents:
            raise ValidationError({"discount_price_cents": "Discount price cannot exceed the list price."})
        if self.max_downloads is not None and self.max_downloads < 1:
            raise ValidationError({"max_downloads": "max_downloads must be at least 1."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.title} ({self.get_format_display()})"
