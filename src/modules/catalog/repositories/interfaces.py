"""Catalog Lookup contract used by the order engine."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Dict, Iterable
from uuid import UUID

from modules.core.repositories.interfaces import IReadRepository

if TYPE_CHECKING:
    from modules.catalog.models import CatalogItem


class ICatalogRepository(IReadRepository["CatalogItem"]):
    """Read-only repository for catalog items."""

    @abstractmethod
    def get_many(self, ids: Iterable[UUID]) -> Dict[UUID, CatalogItem]:
        """Resolve *ids* in one round trip.

        Returns a mapping keyed by item id; ids with no matching item
        are simply absent from the result.
        """
