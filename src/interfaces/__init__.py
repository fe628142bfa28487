"""Public interface definitions for external services.

The remote catalog is accessed exclusively through the abstract base class
defined in this package.  Concrete adapters implement it and are injected at
runtime (see ``src/main.py``), so tests can swap in a mock gateway without
any network calls.

CONCRETE PROVIDER MAP:
    Interface         →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────
    ICatalogGateway   →  SpotifyCatalogGateway
"""

from src.interfaces.catalog_gateway import ICatalogGateway

__all__ = ["ICatalogGateway"]
