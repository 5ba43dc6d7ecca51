"""Catalog item model read by the order engine.

Only the fields the engine needs at order time live here: the display
name captured on line items, the current selling price snapshotted into
``OrderItem.unit_price`` and the active flag.  Catalog management is a
separate concern; the engine never writes to this table.
"""

from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import TimestampedModel


class CatalogItem(TimestampedModel):
    name = models.CharField(max_length=255)
    selling_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "catalog_items"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_active"], name="catalog_items_active_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(selling_price__gte=0),
                name="catalog_items_price_non_negative",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.selling_price is not None and self.selling_price < 0:
            raise ValidationError({"selling_price": "Price cannot be negative."})

    def __str__(self) -> str:
        return f"{self.name} ({self.selling_price})"
