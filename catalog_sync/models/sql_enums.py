from __future__ import annotations

from sqlalchemy import Enum

from catalog_sync.core.enums import (
    DealerAccountStatus,
    DealerTier,
    ImportEntityType,
    ImportRunStatus,
    ImportSourceType,
    OrderStatus,
    ProductType,
    RemoteScanStatus,
    RemoteScanTrigger,
    SearchSyncStatus,
    SearchSyncType,
)


def _values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


import_entity_type_enum = Enum(ImportEntityType, name="import_entity_type")
import_source_type_enum = Enum(ImportSourceType, name="import_source_type")
import_run_status_enum = Enum(ImportRunStatus, name="import_run_status")

remote_scan_trigger_enum = Enum(RemoteScanTrigger, name="remote_scan_trigger")
remote_scan_status_enum = Enum(RemoteScanStatus, name="remote_scan_status")

product_type_enum = Enum(ProductType, name="product_type")

# Stored by value ("Net1", "Active"), matching the spreadsheet vocabulary.
dealer_tier_enum = Enum(DealerTier, name="dealer_tier", values_callable=_values)
dealer_account_status_enum = Enum(DealerAccountStatus, name="dealer_account_status", values_callable=_values)

order_status_enum = Enum(OrderStatus, name="order_status")

search_sync_type_enum = Enum(SearchSyncType, name="search_sync_type")
search_sync_status_enum = Enum(SearchSyncStatus, name="search_sync_status")
