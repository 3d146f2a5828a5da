"""Service catalog port.

The catalogue collaborator owns service listings. Settlement only needs to
read the price-relevant parts of a listing when a booking is created.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ServiceListing:
    """Price-relevant snapshot of a bookable service."""

    service_id: str
    vendor_id: str
    title: str
    price: float
    discount_percent: float = 0.0
    is_available: bool = True


class ServiceCatalog(ABC):
    @abstractmethod
    def get_listing(self, service_id: str) -> ServiceListing | None:
        """Return the listing for ``service_id`` or None if it does not exist."""
        ...
