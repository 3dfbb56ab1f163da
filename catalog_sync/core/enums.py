from __future__ import annotations

from enum import StrEnum


class ImportEntityType(StrEnum):
    PRODUCTS = "PRODUCTS"
    DEALERS = "DEALERS"
    SUPERSEDED_MAPPING = "SUPERSEDED_MAPPING"
    BACKORDER = "BACKORDER"
    ORDER_STATUS = "ORDER_STATUS"


class ImportSourceType(StrEnum):
    MANUAL = "MANUAL"
    REMOTE = "REMOTE"


class ImportRunStatus(StrEnum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RemoteScanTrigger(StrEnum):
    CRON = "CRON"
    MANUAL = "MANUAL"


class RemoteScanStatus(StrEnum):
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class ImportJobStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ProductType(StrEnum):
    GENUINE = "GENUINE"
    AFTERMARKET = "AFTERMARKET"
    BRANDED = "BRANDED"


class DealerTier(StrEnum):
    NET1 = "Net1"
    NET2 = "Net2"
    NET3 = "Net3"
    NET4 = "Net4"
    NET5 = "Net5"
    NET6 = "Net6"
    NET7 = "Net7"


class DealerAccountStatus(StrEnum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    SUSPENDED = "Suspended"


class OrderStatus(StrEnum):
    CREATED = "CREATED"
    BACKORDER = "BACKORDER"
    READY_FOR_SHIPMENT = "READY_FOR_SHIPMENT"
    FULLFILLED = "FULLFILLED"
    CANCELLED = "CANCELLED"
    PROCESSING = "PROCESSING"
    PICKING = "PICKING"
    PACKING = "PACKING"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"


class SearchSyncType(StrEnum):
    FULL = "FULL"
    INCREMENTAL = "INCREMENTAL"


class SearchSyncStatus(StrEnum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class SearchSyncStage(StrEnum):
    PENDING = "pending"
    LOADING_SUPERSEDED = "loading_superseded"
    SYNCING_PRODUCTS = "syncing_products"
    UPDATING_ALIAS = "updating_alias"
    CLEANUP = "cleanup"
    COMPLETED = "completed"
    FAILED = "failed"
