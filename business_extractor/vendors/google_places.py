"""Client utilities for the Google Places API."""

import logging
import threading
import time
from typing import Any, Dict, Iterator, Optional

import requests

from business_extractor.core.config import MIN_PAGE_DELAY_SECONDS, Settings
from business_extractor.etl.transform import to_bare_record, to_detailed_record
from business_extractor.models import BusinessRecord

logger = logging.getLogger(__name__)
_LOCAL = threading.local()
_BASE_URL = "https://maps.googleapis.com/maps/api/place"

REQUEST_TIMEOUT = 10
DETAIL_FIELDS = (
    "place_id,name,formatted_address,formatted_phone_number,international_phone_number,"
    "website,address_components,geometry,url"
)

# Known non-English search terms, mapped to what the Places index matches best.
CATEGORY_TRANSLATIONS = {
    "Diş Hekimliği": "dental clinic",
    "Diş": "dental",
    "Dişçi": "dentist",
    "Hastane": "hospital",
    "Restoran": "restaurant",
    "Kafe": "cafe",
    "Berber": "barber",
    "Kuaför": "hairdresser",
    "Avukat": "lawyer",
}
LOCATION_TRANSLATIONS = {
    "Türkiye": "Turkey",
    "İstanbul": "Istanbul",
    "İzmir": "Izmir",
}


class GooglePlacesError(RuntimeError):
    """Raised when the Places API returns a non-successful response."""


class RequestDeniedError(GooglePlacesError):
    """The API rejected the request outright (bad key, disabled API); never retried."""


class TransientPlacesError(GooglePlacesError):
    """A non-success status that is worth retrying."""


class ServiceUnavailableError(GooglePlacesError):
    """Raised once a page request has exhausted its retry attempts."""


def _thread_session() -> requests.Session:
    session = getattr(_LOCAL, "session", None)
    if session is None:
        session = requests.Session()
        _LOCAL.session = session
    return session


def build_query(category: str, location: str) -> str:
    search_category = CATEGORY_TRANSLATIONS.get(category, category)
    search_location = LOCATION_TRANSLATIONS.get(location, location)
    return f"{search_category} in {search_location}"


class PlacesClient:
    """Text search with page-token chaining and retries, plus place details lookups."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = _BASE_URL,
        session: Optional[requests.Session] = None,
        page_delay: float = MIN_PAGE_DELAY_SECONDS,
        retry_attempts: int = 3,
        retry_delay: float = 2.0,
        max_backoff: float = 10.0,
        timeout: int = REQUEST_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._session = session
        self.page_delay = max(MIN_PAGE_DELAY_SECONDS, page_delay)
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = min(retry_delay, max_backoff)
        self.timeout = timeout

    @property
    def session(self) -> requests.Session:
        if self._session is not None:
            return self._session
        return _thread_session()

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> "PlacesClient":
        return cls(
            settings.google_api_key,
            base_url=settings.places_base_url,
            session=session,
            page_delay=settings.page_delay_seconds,
            retry_attempts=settings.retry_attempts,
            retry_delay=settings.retry_delay_seconds,
            max_backoff=settings.max_backoff_seconds,
        )

    def text_search(self, query: str, pagetoken: Optional[str] = None) -> Dict[str, Any]:
        params = {"key": self.api_key}
        if pagetoken:
            params["pagetoken"] = pagetoken
        else:
            params["query"] = query
        response = self.session.get(f"{self.base_url}/textsearch/json", params=params, timeout=self.timeout)
        response.raise_for_status()
        payload = response.json()
        status = payload.get("status")
        if status == "REQUEST_DENIED":
            message = payload.get("error_message") or "Unknown error"
            logger.error("text_search request denied: %s", message)
            raise RequestDeniedError(f"Google Places API request denied: {message}")
        if status not in {"OK", "ZERO_RESULTS"}:
            logger.error("text_search failed: status=%s, error_message=%s", status, payload.get("error_message"))
            raise TransientPlacesError(f"Google Places API error: {status}")
        return payload

    def fetch_page(self, query: str, pagetoken: Optional[str] = None) -> Dict[str, Any]:
        """Fetch one results page, retrying transport errors and retryable statuses."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return self.text_search(query, pagetoken)
            except RequestDeniedError:
                raise
            except (requests.RequestException, ValueError, TransientPlacesError) as exc:
                logger.warning("Places text search failed (attempt %s/%s): %s", attempt, self.retry_attempts, exc)
                if attempt >= self.retry_attempts:
                    logger.error("Places text search exhausted retries for query=%s", query)
                    raise ServiceUnavailableError("Failed to retrieve data after multiple attempts") from exc
                time.sleep(self.retry_delay)

    def search(self, category: str, location: str) -> Iterator[BusinessRecord]:
        """Yield bare records for every page of results, following next_page_token."""
        query = build_query(category, location)
        logger.info("Running Places text search for query=%s (category=%s location=%s)", query, category, location)

        page_token = None
        page = 0
        while True:
            payload = self.fetch_page(query, page_token)
            page += 1
            results = payload.get("results") or []
            logger.info("Fetched %d results on page %d for query=%s", len(results), page, query)

            for result in results:
                record = to_bare_record(result)
                if record is not None:
                    yield record

            page_token = payload.get("next_page_token")
            if not page_token:
                break
            # The token only becomes valid a short while after it is issued.
            time.sleep(self.page_delay)

        logger.info("Completed search: pages_processed=%d query=%s", page, query)

    def place_details(self, place_id: str) -> Dict[str, Any]:
        params = {"place_id": place_id, "key": self.api_key, "fields": DETAIL_FIELDS}
        response = self.session.get(f"{self.base_url}/details/json", params=params, timeout=self.timeout)
        response.raise_for_status()
        payload = response.json()
        status = payload.get("status")
        if status != "OK":
            logger.error("place_details failed: status=%s, error_message=%s", status, payload.get("error_message"))
            raise GooglePlacesError(payload.get("error_message") or f"Google Places API error: {status}")
        return payload.get("result", {})

    def details(self, place_id: str) -> BusinessRecord:
        return to_detailed_record(self.place_details(place_id), place_id)
