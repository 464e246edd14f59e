import json
import logging
from typing import Any, Dict, Optional

import httpx

from stocksync.core.config import get_settings
from stocksync.core.exceptions import StockConnectorAPIError
from stocksync.integrations.base import ConnectionCheck, StoreGateway

logger = logging.getLogger(__name__)


class StockConnectorClient(StoreGateway):
    """
    Async client for the stock-connector WordPress plugin installed on a store.

    The plugin exposes a small REST namespace (``/wp-json/wcsc/v1`` by default)
    authenticated with an API key/secret header pair:
        - GET  /verify                  connection and plugin check
        - POST /stock/update            ``{product_id|variation_id, quantity}``
        - POST /purchase-price/update   ``{product_id|variation_id, purchase_price}``

    Every failing call raises StockConnectorAPIError; ``verify`` returns a
    ConnectionCheck instead.
    """

    def __init__(
        self,
        store_url: str,
        api_key: str,
        api_secret: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(store_url)
        settings = get_settings()
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout if timeout is not None else settings.REMOTE_TIMEOUT_SECONDS
        self._transport = transport

        namespace = settings.STOCK_CONNECTOR_NAMESPACE.strip("/")
        if f"/wp-json/{namespace}" in self.store_url:
            self.BASE_URL = self.store_url
        else:
            self.BASE_URL = f"{self.store_url}/wp-json/{namespace}"

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for API requests"""
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": get_settings().USER_AGENT,
            "X-API-Key": self.api_key,
            "X-API-Secret": self.api_secret,
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
    ) -> Dict:
        """
        Make a request to the stock-connector API

        Raises:
            StockConnectorAPIError: On transport failure, timeout or non-2xx response
        """
        url = f"{self.BASE_URL}/{endpoint.lstrip('/')}"
        logger.debug(f"Making {method} request to {url}")
        if data:
            logger.debug(f"Data: {json.dumps(data)[:500]}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self._get_headers(),
                    json=data,
                )
        except httpx.TimeoutException as e:
            logger.error(f"Stock connector timeout for {url}: {str(e)}")
            raise StockConnectorAPIError(f"Request timed out: {str(e)}")
        except httpx.RequestError as e:
            logger.error(f"Stock connector network error for {url}: {str(e)}")
            raise StockConnectorAPIError(f"Network error: {str(e)}")

        if response.status_code not in (200, 201, 202, 204):
            message = self._error_message(response)
            logger.error(f"Stock connector API error {response.status_code} for {url}: {message}")
            raise StockConnectorAPIError(message, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError:
            raise StockConnectorAPIError(
                f"Invalid JSON in response from {url}", status_code=response.status_code
            )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"Request failed with status {response.status_code}: {response.text[:200]}"
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return f"Request failed with status {response.status_code}"

    async def verify(self) -> ConnectionCheck:
        try:
            data = await self._make_request("GET", "/verify")
        except StockConnectorAPIError as e:
            if e.status_code == 401:
                return ConnectionCheck(success=False, error="Invalid API key or secret")
            if e.status_code == 404:
                return ConnectionCheck(
                    success=False,
                    error="Stock connector plugin not found. Install and activate the plugin.",
                )
            if "Name or service not known" in str(e) or "nodename nor servname" in str(e):
                return ConnectionCheck(success=False, error="Site not found")
            return ConnectionCheck(success=False, error=str(e))

        return ConnectionCheck(success=True, details=data)

    @staticmethod
    def _target(remote_id: int, is_variation: bool) -> Dict[str, int]:
        return {"variation_id": remote_id} if is_variation else {"product_id": remote_id}

    async def update_stock(self, remote_id: int, quantity: int, is_variation: bool = False) -> Dict[str, Any]:
        body = {**self._target(remote_id, is_variation), "quantity": quantity}
        logger.info(f"Pushing stock {quantity} to {self.store_url} ({'variation' if is_variation else 'product'} {remote_id})")
        return await self._make_request("POST", "/stock/update", data=body)

    async def update_purchase_price(self, remote_id: int, price: float, is_variation: bool = False) -> Dict[str, Any]:
        body = {**self._target(remote_id, is_variation), "purchase_price": price}
        return await self._make_request("POST", "/purchase-price/update", data=body)
