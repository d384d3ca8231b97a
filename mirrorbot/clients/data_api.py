"""
Polymarket Data API client.

Read-only access to a wallet's trade activity and positions.
Data API Base URL: https://data-api.polymarket.com/

Endpoints:
- GET /activity   (type=TRADE, ascending by timestamp)
- GET /positions  (optionally redeemable only)
"""

import logging
from typing import Any, List, Optional

import requests
from pydantic import ValidationError

from mirrorbot.models import ActivityTrade, Position

logger = logging.getLogger(__name__)


class DataApiError(Exception):
    """Raised when the Data API cannot be reached or returns an error."""
    pass


class DataApiClient:
    """Thin requests wrapper returning parsed models."""

    DEFAULT_HOST = "https://data-api.polymarket.com"
    TIMEOUT_SEC = 30
    HEADERS = {
        "User-Agent": "mirrorbot",
        "Accept": "application/json",
    }

    def __init__(self, host: str = DEFAULT_HOST, timeout: float = TIMEOUT_SEC):
        self.host = host.rstrip("/")
        self.timeout = timeout

    def _get(self, path: str, params: dict) -> Any:
        url = f"{self.host}{path}"
        try:
            resp = requests.get(url, params=params, headers=self.HEADERS, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            raise DataApiError(f"Data API error for {path}: {e}") from e
        except ValueError as e:
            raise DataApiError(f"Data API returned invalid JSON for {path}: {e}") from e

    def get_trades(
        self,
        user: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
        limit: int = 100,
    ) -> List[ActivityTrade]:
        """
        Trades by user in [start, end], oldest first.

        Raises:
            DataApiError: On transport or HTTP errors
        """
        params = {
            "user": user,
            "type": "TRADE",
            "limit": limit,
            "sortDirection": "ASC",
        }
        if start:
            params["start"] = start
        if end:
            params["end"] = end

        data = self._get("/activity", params)
        return _parse_list(data, ActivityTrade, "trade")

    def get_positions(
        self,
        user: str,
        redeemable: Optional[bool] = None,
        limit: int = 200,
    ) -> List[Position]:
        """
        Current positions held by user.

        Raises:
            DataApiError: On transport or HTTP errors
        """
        params = {"user": user, "limit": limit}
        if redeemable is not None:
            params["redeemable"] = "true" if redeemable else "false"

        data = self._get("/positions", params)
        return _parse_list(data, Position, "position")


def _parse_list(data: Any, model, label: str) -> list:
    if not isinstance(data, list):
        raise DataApiError(f"Expected a list of {label}s, got {type(data).__name__}")
    parsed = []
    for item in data:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed {label}: {e.error_count()} validation error(s)")
    return parsed
