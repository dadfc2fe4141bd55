from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)


class ApiUnavailable(Exception):
    """The storefront API could not be reached or answered garbage."""


class OrderRejected(Exception):
    """The API refused the order, usually because of validation errors."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


class StorefrontApi:
    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.warning("API unreachable at %s: %s", url, e)
            raise ApiUnavailable(str(e)) from e

    def fetch_products(self, featured: bool = True) -> List[Dict[str, Any]]:
        params = {"featured": "true"} if featured else {}
        response = self._request("GET", "/products", params=params)
        if not response.ok:
            raise ApiUnavailable(f"API Error: {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise ApiUnavailable("API returned invalid JSON") from e
        if not isinstance(data, dict) or not data.get("success") or not data.get("data"):
            raise ApiUnavailable("No products received from the API")
        logger.info("%d products loaded from the API", len(data["data"]))
        return data["data"]

    def submit_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = self._request("POST", "/orders", json=payload)
        try:
            result = response.json()
        except ValueError:
            raise OrderRejected(f"Order failed (HTTP {response.status_code})")
        if not isinstance(result, dict):
            raise OrderRejected(f"Order failed (HTTP {response.status_code})")
        if result.get("success"):
            return result["data"]
        raise OrderRejected(result.get("message") or "Order failed", result.get("errors"))
