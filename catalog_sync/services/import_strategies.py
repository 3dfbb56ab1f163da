from __future__ import annotations

from catalog_sync.core.enums import ImportEntityType
from catalog_sync.services.import_backorders import BackorderImportStrategy
from catalog_sync.services.import_dealers import DealerImportStrategy
from catalog_sync.services.import_order_status import OrderStatusImportStrategy
from catalog_sync.services.import_products import ProductImportStrategy
from catalog_sync.services.import_rows import ImportStrategy
from catalog_sync.services.import_superseded import SupersededMappingImportStrategy


IMPORT_STRATEGIES: dict[ImportEntityType, type[ImportStrategy]] = {
    ImportEntityType.PRODUCTS: ProductImportStrategy,
    ImportEntityType.SUPERSEDED_MAPPING: SupersededMappingImportStrategy,
    ImportEntityType.DEALERS: DealerImportStrategy,
    ImportEntityType.BACKORDER: BackorderImportStrategy,
    ImportEntityType.ORDER_STATUS: OrderStatusImportStrategy,
}


def get_import_strategy(entity_type: ImportEntityType) -> ImportStrategy:
    """Fresh strategy instance for one import run."""
    try:
        strategy_cls = IMPORT_STRATEGIES[entity_type]
    except KeyError:
        raise ValueError(f"Unsupported import type: {entity_type}") from None
    return strategy_cls()
