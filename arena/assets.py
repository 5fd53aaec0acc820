import logging
from typing import Any, Dict, Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class AssetLookupError(RuntimeError):
    """Raised when the coin metadata provider fails or answers garbage."""


class AssetNotFound(AssetLookupError):
    """Raised when the provider has no coin under the given mint."""


class AssetClient:
    """
    Minimal pump.fun client: coin mint in, display metadata out.

    The battle engine never calls this; views use it so players can look a
    coin up before they stake it.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: float = 10, session=None) -> None:
        self.base_url = (base_url or settings.PUMP_FUN_API).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def _get(self, path: str) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.exception("Coin lookup failed: GET %s", url)
            raise AssetLookupError(str(e)) from e

    def lookup(self, asset_ref: str) -> Dict[str, Any]:
        resp = self._get(f"/coins/{asset_ref}")
        if resp.status_code == 404:
            raise AssetNotFound(f"No coin found for {asset_ref}")
        if resp.status_code >= 400:
            msg = f"Coin provider error {resp.status_code} for {asset_ref}"
            logger.error(msg)
            raise AssetLookupError(msg)

        try:
            data = resp.json()
        except ValueError as e:
            raise AssetLookupError(f"Coin provider sent invalid JSON for {asset_ref}") from e
        if not isinstance(data, dict) or not data:
            raise AssetNotFound(f"No coin found for {asset_ref}")

        return {
            "asset_ref": asset_ref,
            "name": data.get("name"),
            "symbol": data.get("symbol"),
            "price": data.get("price", data.get("usd_market_cap")),
            "image": data.get("image_uri", data.get("image")),
        }
