"""Service catalog factory.

Provides get_catalog() / set_catalog() so the catalogue collaborator can
plug in its own implementation. Defaults to an empty InMemoryCatalog.
"""

from settlement.catalog.in_memory import InMemoryCatalog
from settlement.catalog.port import ServiceCatalog

_current_catalog: ServiceCatalog | None = None


def get_catalog() -> ServiceCatalog:
    global _current_catalog
    if _current_catalog is None:
        _current_catalog = InMemoryCatalog()
    return _current_catalog


def set_catalog(catalog: ServiceCatalog) -> None:
    global _current_catalog
    _current_catalog = catalog


def reset_catalog() -> None:
    global _current_catalog
    _current_catalog = None
