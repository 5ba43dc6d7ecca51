"""Django ORM implementation of the Catalog Lookup.

Follows the Null Object pattern: missing items are reported by absence,
the order service decides how to surface them.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from django.core.exceptions import ValidationError

from modules.catalog.models import CatalogItem
from modules.catalog.repositories.interfaces import ICatalogRepository


class CatalogDjangoRepository(ICatalogRepository):
    """Concrete catalog repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[CatalogItem]:
        try:
            return CatalogItem.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[CatalogItem]:
        queryset = CatalogItem.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def get_many(self, ids: Iterable[UUID]) -> Dict[UUID, CatalogItem]:
        unique_ids = set(ids)
        if not unique_ids:
            return {}
        return {item.id: item for item in CatalogItem.objects.filter(id__in=unique_ids)}
