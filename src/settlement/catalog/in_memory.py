"""In-memory service catalog for development and testing."""

from settlement.catalog.port import ServiceCatalog, ServiceListing


class InMemoryCatalog(ServiceCatalog):
    def __init__(self) -> None:
        self._listings: dict[str, ServiceListing] = {}

    def register(
        self,
        service_id: str,
        vendor_id: str,
        price: float,
        discount_percent: float = 0.0,
        title: str = "Service",
        is_available: bool = True,
    ) -> ServiceListing:
        listing = ServiceListing(
            service_id=str(service_id),
            vendor_id=str(vendor_id),
            title=title,
            price=price,
            discount_percent=discount_percent,
            is_available=is_available,
        )
        self._listings[listing.service_id] = listing
        return listing

    def get_listing(self, service_id: str) -> ServiceListing | None:
        return self._listings.get(str(service_id))
