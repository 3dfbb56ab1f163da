from catalog_sync.models.dealer import Dealer, ShippingMethod, User
from catalog_sync.models.import_run import ImportRowError, ImportRun
from catalog_sync.models.job_lock import JobLock
from catalog_sync.models.order import BackorderLog, Order, OrderItem, OrderStatusHistory, OrderStatusLog
from catalog_sync.models.product import Product
from catalog_sync.models.product_image import ProductImage
from catalog_sync.models.product_price import ProductPrice
from catalog_sync.models.product_stock import ProductStock
from catalog_sync.models.product_superseded_mapping import ProductSupersededMapping
from catalog_sync.models.remote_scan_run import RemoteScanRun
from catalog_sync.models.search_sync_log import SearchSyncLog

__all__ = [
    "BackorderLog",
    "Dealer",
    "ImportRowError",
    "ImportRun",
    "JobLock",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "OrderStatusLog",
    "Product",
    "ProductImage",
    "ProductPrice",
    "ProductStock",
    "ProductSupersededMapping",
    "RemoteScanRun",
    "SearchSyncLog",
    "ShippingMethod",
    "User",
]
