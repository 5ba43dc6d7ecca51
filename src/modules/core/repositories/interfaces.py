"""Read contract every repository in the project fulfils.

Services receive repositories through their constructor and only know
them by these abstract types; the Django ORM stays behind the
implementations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class IReadRepository(ABC, Generic[T]):
    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """The entity with primary key *id*, or ``None``."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> Any:
        """Entities matching *filters*; implementations document the keys."""
