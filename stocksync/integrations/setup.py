"""
Builds gateway clients for a Store from its encrypted credentials.

Decryption failures surface as CredentialError; a store without stock-connector
credentials raises StoreNotConfiguredError and is never pushed to.
"""

import logging

from stocksync.core.crypto import decrypt
from stocksync.core.exceptions import StoreNotConfiguredError
from stocksync.integrations.platforms.stock_connector import StockConnectorClient
from stocksync.integrations.platforms.woocommerce import CommerceRestClient
from stocksync.models.store import Store

logger = logging.getLogger(__name__)


def build_stock_connector(store: Store) -> StockConnectorClient:
    if not store.can_receive_stock:
        raise StoreNotConfiguredError(f"Store {store.id} has no stock connector credentials")

    return StockConnectorClient(
        store_url=store.url,
        api_key=decrypt(store.connector_api_key),
        api_secret=decrypt(store.connector_api_secret),
    )


def build_commerce_client(store: Store) -> CommerceRestClient:
    return CommerceRestClient(
        store_url=store.url,
        consumer_key=decrypt(store.consumer_key),
        consumer_secret=decrypt(store.consumer_secret),
    )
