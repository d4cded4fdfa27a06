"""
Service container: builds every store and service from Settings and tears
them down again. The FastAPI app keeps one instance on ``app.state``.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from catalog import CatalogStore
from config import Settings
from database import Database
from encryption import SecretBox
from ledger import OrderLedger
from orders import OrderService
from payments import PaymentService, RazorpayGateway
from store_settings import StoreSettingsStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    database: Database
    secret_box: SecretBox
    catalog: CatalogStore
    settings_store: StoreSettingsStore
    ledger: OrderLedger
    orders: OrderService
    payments: PaymentService
    gateway: RazorpayGateway

    @classmethod
    def build(cls, settings: Settings, database: Database, gateway: Optional[RazorpayGateway] = None,
              secret_box: Optional[SecretBox] = None, clock=None) -> "Services":
        secret_box = secret_box or SecretBox.from_hex(settings.encryption_key)
        gateway = gateway or RazorpayGateway(settings.payment_gateway_url, settings.payment_gateway_timeout)
        catalog = CatalogStore(database)
        settings_store = StoreSettingsStore(database)
        ledger = OrderLedger(database)
        orders = OrderService(
            database, catalog, ledger, settings_store,
            store_timezone=settings.store_timezone,
            fallback_offset=timedelta(minutes=settings.store_utc_offset_minutes),
            clock=clock,
        )
        payments = PaymentService(settings_store, ledger, orders, secret_box, gateway,
                                  default_currency=settings.default_currency)
        return cls(settings, database, secret_box, catalog, settings_store, ledger, orders, payments, gateway)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Services":
        database = Database.connect(
            settings.database_url,
            settings.database_name,
            max_pool_size=settings.mongo_max_pool_size,
            connect_timeout_ms=settings.mongo_connect_timeout_ms,
            idle_timeout_ms=settings.mongo_idle_timeout_ms,
        )
        database.ensure_schema()
        return cls.build(settings, database)

    def close(self) -> None:
        self.gateway.close()
        self.database.close()
