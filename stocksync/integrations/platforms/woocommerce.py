import logging
from typing import Dict, List, Optional, Tuple

import httpx

from stocksync.core.config import get_settings
from stocksync.core.exceptions import CommerceAPIError
from stocksync.integrations.base import ConnectionCheck

logger = logging.getLogger(__name__)


class CommerceRestClient:
    """
    Client for the store's generic commerce REST API (``/wp-json/wc/v3``).

    Authenticates with HTTP Basic consumer key/secret. Some hosts strip the
    Authorization header, so a 401 is retried once with the credentials in
    the query string.
    """

    PAGE_SIZE = 100

    def __init__(
        self,
        store_url: str,
        consumer_key: str,
        consumer_secret: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.store_url = store_url.rstrip("/")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.timeout = timeout if timeout is not None else settings.REMOTE_TIMEOUT_SECONDS
        self._transport = transport

        namespace = settings.COMMERCE_API_NAMESPACE.strip("/")
        if f"/wp-json/{namespace}" in self.store_url:
            self.BASE_URL = self.store_url
        else:
            self.BASE_URL = f"{self.store_url}/wp-json/{namespace}"

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": get_settings().USER_AGENT,
        }

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        params: Optional[Dict],
        query_auth: bool,
    ) -> httpx.Response:
        if query_auth:
            params = {
                **(params or {}),
                "consumer_key": self.consumer_key,
                "consumer_secret": self.consumer_secret,
            }
            auth = None
        else:
            auth = (self.consumer_key, self.consumer_secret)
        return await client.request(
            method=method,
            url=url,
            headers=self._get_headers(),
            params=params,
            auth=auth,
        )

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict] = None,
    ) -> httpx.Response:
        """
        Make a request to the commerce API and return the raw response.

        Raises:
            CommerceAPIError: On transport failure, timeout or non-2xx response
        """
        url = f"{self.BASE_URL}/{endpoint.lstrip('/')}"
        logger.debug(f"Making {method} request to {url}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await self._send(client, method, url, params, query_auth=False)
                if response.status_code == 401:
                    logger.info(f"Basic auth rejected by {self.store_url}, retrying with query string auth")
                    response = await self._send(client, method, url, params, query_auth=True)
        except httpx.TimeoutException as e:
            logger.error(f"Commerce API timeout for {url}: {str(e)}")
            raise CommerceAPIError(f"Request timed out: {str(e)}")
        except httpx.RequestError as e:
            logger.error(f"Commerce API network error for {url}: {str(e)}")
            raise CommerceAPIError(f"Network error: {str(e)}")

        if response.status_code not in (200, 201):
            message = self._error_message(response)
            logger.error(f"Commerce API error {response.status_code} for {url}: {message}")
            raise CommerceAPIError(message, status_code=response.status_code)

        return response

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"Request failed with status {response.status_code}"
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return f"Request failed with status {response.status_code}"

    async def test_connection(self) -> ConnectionCheck:
        """Fetch a single product to prove the credentials can read the catalog"""
        try:
            await self._make_request("GET", "/products", params={"per_page": 1})
        except CommerceAPIError as e:
            if e.status_code == 401:
                return ConnectionCheck(success=False, error="Authentication failed. Check the API keys.")
            if e.status_code == 403:
                return ConnectionCheck(success=False, error="Access denied. Check the API key permissions.")
            if e.status_code == 404:
                return ConnectionCheck(success=False, error="Commerce API not found. Check the store URL.")
            message = str(e)
            if "timed out" in message:
                return ConnectionCheck(success=False, error="Connection timed out.")
            if "Name or service not known" in message or "nodename nor servname" in message:
                return ConnectionCheck(success=False, error="Site not found. Check the store URL.")
            return ConnectionCheck(success=False, error=f"Could not connect: {message}")

        return ConnectionCheck(success=True)

    async def get_products(self, page: int = 1, per_page: int = PAGE_SIZE) -> Tuple[List[Dict], int]:
        """Return one page of products and the total page count"""
        response = await self._make_request(
            "GET", "/products", params={"page": page, "per_page": per_page, "status": "any"}
        )
        try:
            total_pages = int(response.headers.get("x-wp-totalpages", "1"))
        except ValueError:
            total_pages = 1
        return response.json(), total_pages

    async def get_all_products(self) -> List[Dict]:
        all_products: List[Dict] = []
        page = 1
        while True:
            products, total_pages = await self.get_products(page=page)
            all_products.extend(products)
            page += 1
            if page > total_pages:
                break
        return all_products

    async def get_product_variations(self, product_id: int) -> List[Dict]:
        response = await self._make_request(
            "GET", f"/products/{product_id}/variations", params={"per_page": self.PAGE_SIZE}
        )
        return response.json()
