"""
API Client Service for FastAPI Backend Communication

Handles all REST API requests with retry logic and error handling.
"""

import logging
from typing import Dict, Optional, Any
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


class APIError(Exception):
    """Raised when the backend rejects a request or cannot be reached."""


class APIClient:
    """Client for communicating with the FastAPI backend via REST API."""

    def __init__(self, base_url: str = "http://localhost:8000", timeout: int = 5):
        """Initialize API client."""
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create requests session with retry logic."""
        session = requests.Session()

        # POST is left out: a retried order submission would place it twice
        retry_strategy = Retry(
            total=3,
            backoff_factor=0.5,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "DELETE"]
        )

        adapter = HTTPAdapter(max_retries=retry_strategy, pool_connections=10, pool_maxsize=20)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def _handle_response(self, response: requests.Response) -> Dict[str, Any]:
        """Handle API response and extract data or errors."""
        try:
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            try:
                error_data = response.json()
                error_msg = error_data.get("message") or error_data.get("detail") or str(e)
            except ValueError:
                error_msg = str(e)
            raise APIError(f"API Error: {error_msg}") from e
        except requests.exceptions.JSONDecodeError as e:
            raise APIError("Invalid response from server") from e

    def _request(self, method: str, path: str, timeout: Optional[float] = None, **kwargs) -> Dict[str, Any]:
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                timeout=timeout or self.timeout,
                **kwargs
            )
        except requests.exceptions.RequestException as e:
            self.logger.warning(f"{method} {path} failed: {e}")
            raise APIError(f"Backend unreachable: {e}") from e
        return self._handle_response(response)

    def health_check(self) -> bool:
        """Check if backend is healthy."""
        try:
            return self._request("GET", "/health").get("status") == "healthy"
        except APIError:
            return False

    def submit_order(
        self,
        side: str,
        order_type: str,
        quantity: Any,
        limit_price: Optional[Any] = None,
        stop_price: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """
        Submit a new order.

        Example: submit_order("BUY", "LIMIT", 0.5, limit_price=98000)
        """
        return self._request("POST", "/api/v1/orders", json=self._order_payload(
            side, order_type, quantity, limit_price, stop_price
        ))

    def cancel_order(self, order_id: str) -> Dict[str, Any]:
        """Cancel an existing order."""
        return self._request("DELETE", f"/api/v1/orders/{order_id}")

    def get_order(self, order_id: str) -> Dict[str, Any]:
        """Get order status."""
        return self._request("GET", f"/api/v1/orders/{order_id}")

    def list_orders(self, status: Optional[str] = None) -> Dict[str, Any]:
        """List orders, optionally filtered by status (open, filled, cancelled)."""
        params = {"status": status} if status else None
        return self._request("GET", "/api/v1/orders", params=params)

    def get_market_window(self) -> Dict[str, Any]:
        """Get the market window snapshot."""
        return self._request("GET", "/api/v1/market/window")

    def post_tick(self, price: Any) -> Dict[str, Any]:
        """Queue a manual tick (offline simulation)."""
        return self._request("POST", "/api/v1/market/ticks", json={"price": str(price)})

    def get_events(self, limit: int = 100) -> Dict[str, Any]:
        """Get the most recent events."""
        return self._request("GET", "/api/v1/events", params={"limit": limit})

    def analyze_market(self, timeout: float = 30) -> Dict[str, Any]:
        """Request trend commentary."""
        return self._request("POST", "/api/v1/advisory/analysis", timeout=timeout)

    def generate_code(
        self,
        side: str,
        order_type: str,
        quantity: Any,
        limit_price: Optional[Any] = None,
        stop_price: Optional[Any] = None,
        timeout: float = 30,
    ) -> Dict[str, Any]:
        """Generate a python-binance script for an order."""
        return self._request(
            "POST",
            "/api/v1/advisory/code",
            timeout=timeout,
            json=self._order_payload(side, order_type, quantity, limit_price, stop_price),
        )

    def get_statistics(self) -> Dict[str, Any]:
        """Get matching engine statistics."""
        try:
            return self._request("GET", "/health").get("matching_engine", {})
        except APIError:
            return {}

    @staticmethod
    def _order_payload(side, order_type, quantity, limit_price=None, stop_price=None) -> Dict[str, Any]:
        # Convert numeric values to strings as API expects
        payload = {
            "side": str(side).upper(),
            "order_type": str(order_type).upper().replace(" ", "_").replace("-", "_"),
            "quantity": str(quantity),
        }
        if limit_price is not None:
            payload["limit_price"] = str(limit_price)
        if stop_price is not None:
            payload["stop_price"] = str(stop_price)
        return payload

    def close(self):
        """Close the session."""
        if self.session:
            self.session.close()


_client_instance: Optional[APIClient] = None


def get_api_client(base_url: str = "http://localhost:8000") -> APIClient:
    """Get or create singleton API client instance."""
    global _client_instance
    if _client_instance is None or _client_instance.base_url != base_url.rstrip('/'):
        _client_instance = APIClient(base_url)
    return _client_instance
