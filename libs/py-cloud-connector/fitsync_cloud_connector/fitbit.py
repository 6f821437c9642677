"""Fitbit cloud connector implementation."""

import logging
from collections.abc import Iterator
from datetime import date, datetime, timedelta
from typing import Any

import httpx
from dateutil import tz

from fitsync_core.schema import DateRange, Entry

from .base import CloudConnectorBase
from .exceptions import RateLimitError, VendorAPIError

logger = logging.getLogger(__name__)

# Longest range the body time series endpoints accept in one request
MAX_RANGE_DAYS = 1095


class FitbitConnector(CloudConnectorBase):
    """
    Fitbit cloud connector.

    Reads the weight and body-fat time series of the authorized user.

    Fitbit API Documentation:
    - https://dev.fitbit.com/build/reference/web-api/body-timeseries/

    Endpoints:
    - /1/user/-/body/weight/date/{start}/{end}.json -> {"body-weight": [...]}
    - /1/user/-/body/fat/date/{start}/{end}.json -> {"body-fat": [...]}

    Rows look like {"dateTime": "2024-01-05", "value": "80.2"}. Without an
    Accept-Language header Fitbit answers in metric units, so weight is kg
    and body fat is already in percentage points.
    """

    PROVENANCE = "Fitbit"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)

        if self.config.timezone:
            self.tz = tz.gettz(self.config.timezone)
            if self.tz is None:
                raise ValueError(f"Unknown timezone: {self.config.timezone}")
        else:
            self.tz = tz.tzlocal()

    @property
    def name(self) -> str:
        return "fitbit"

    async def fetch_weight(self, date_range: DateRange) -> list[Entry]:
        """Fetch weight entries (kg)."""
        return await self._fetch_series("weight", "body-weight", date_range)

    async def fetch_body_fat(self, date_range: DateRange) -> list[Entry]:
        """Fetch body-fat entries (percentage points)."""
        return await self._fetch_series("fat", "body-fat", date_range)

    @staticmethod
    def _windows(date_range: DateRange) -> Iterator[tuple[date, date]]:
        """Split a range into chunks the API accepts."""
        start = date_range.start
        while start <= date_range.end:
            end = min(start + timedelta(days=MAX_RANGE_DAYS - 1), date_range.end)
            yield start, end
            start = end + timedelta(days=1)

    async def _fetch_series(self, resource: str, key: str, date_range: DateRange) -> list[Entry]:
        entries: list[Entry] = []
        for start, end in self._windows(date_range):
            payload = await self._get_time_series(resource, start, end)
            entries.extend(self._parse_series(payload, key))

        logger.info("Parsed %d %s entries from Fitbit", len(entries), key)
        return entries

    async def _get_time_series(self, resource: str, start: date, end: date) -> dict[str, Any]:
        """
        GET one time series window.

        Raises:
            AuthenticationError: If no token is stored
            RateLimitError: On 429
            VendorAPIError: On any other failure
        """
        token = await self.access_token()
        url = (
            f"{self.config.base_url}/1/user/-/body/{resource}/date/"
            f"{start.isoformat()}/{end.isoformat()}.json"
        )
        logger.debug("Fetching %s data from: %s", resource, url)

        try:
            response = await self.http_client.get(
                url,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/json",
                },
            )
        except httpx.RequestError as e:
            raise VendorAPIError(
                f"Network error fetching Fitbit {resource}: {e}",
                source=self.name,
            ) from e

        logger.debug("Fitbit %s response status: %s", resource, response.status_code)

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After") or response.headers.get(
                "Fitbit-Rate-Limit-Reset", "60"
            )
            raise RateLimitError(
                "Fitbit API rate limit exceeded",
                source=self.name,
                retry_after=int(retry_after) if retry_after.isdigit() else 60,
            )

        if response.status_code != 200:
            raise VendorAPIError(
                f"Fitbit API error: {response.status_code} {response.text[:500]}",
                source=self.name,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise VendorAPIError(
                f"Failed to decode Fitbit {resource} response",
                source=self.name,
            ) from e

        if not isinstance(payload, dict):
            raise VendorAPIError(
                f"Unexpected Fitbit {resource} response: {type(payload).__name__}",
                source=self.name,
            )
        return payload

    def _parse_series(self, payload: dict[str, Any], key: str) -> list[Entry]:
        rows = payload.get(key)
        if not isinstance(rows, list):
            raise VendorAPIError(
                f"Unexpected Fitbit response: missing '{key}'",
                source=self.name,
            )

        entries = []
        for row in rows:
            entry = self._parse_row(row)
            if entry is None:
                logger.warning("Skipping malformed %s row: %r", key, row)
                continue
            entries.append(entry)
        return entries

    def _parse_row(self, row: Any) -> Entry | None:
        """Convert one API row into an Entry, or None if it is malformed."""
        try:
            day = datetime.strptime(row["dateTime"], "%Y-%m-%d")
            return Entry(
                timestamp=day.replace(tzinfo=self.tz),
                value=float(row["value"]),
                provenance=self.PROVENANCE,
            )
        except (KeyError, TypeError, ValueError):
            return None
