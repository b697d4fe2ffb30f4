"""Best-effort email discovery from a business website."""

from __future__ import annotations

import logging
import re
import threading
from typing import List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
PAGE_TIMEOUT = 15
CONTACT_PAGE_TIMEOUT = 10
MAX_EMAIL_LENGTH = 100

EMAIL_REGEX = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,6}")
CONTACT_HREF_REGEX = re.compile(r"^(/contact[^\"']*|/about[^\"']*|/kontakt[^\"']*)$", re.IGNORECASE)
PLACEHOLDER_DOMAINS = ("example.com", "domain.com", "email.com")


def sanitize_website(raw_url: Optional[str]) -> Optional[str]:
    """Strip the URL and prefix https:// when it carries no scheme."""

    if not raw_url:
        return None
    url = raw_url.strip()
    if not url:
        return None
    if not url.lower().startswith(("http://", "https://")):
        url = f"https://{url}"
    if not urlparse(url).netloc:
        return None
    return url


def _is_placeholder(email: str) -> bool:
    domain = email.rsplit("@", 1)[-1].lower()
    return any(domain == blocked or domain.endswith(f".{blocked}") for blocked in PLACEHOLDER_DOMAINS)


def find_email(text: Optional[str]) -> Optional[str]:
    """Return the first plausible email in ``text``, skipping placeholder domains."""

    for match in EMAIL_REGEX.finditer(text or ""):
        candidate = match.group(0)
        if len(candidate) >= MAX_EMAIL_LENGTH or _is_placeholder(candidate):
            continue
        return candidate
    return None


def find_contact_path(html: Optional[str]) -> Optional[str]:
    """Return the first relative contact/about link in an HTML document."""

    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if CONTACT_HREF_REGEX.match(href):
            return href
    return None


def _prepare_session(session: requests.Session) -> requests.Session:
    session.headers.setdefault("User-Agent", USER_AGENT)
    session.headers.setdefault("Accept", "text/html,application/xhtml+xml")
    return session


class EmailScraper:
    """Fetch a homepage, and at most one contact page, looking for an email address.

    Without an injected session every calling thread gets its own
    ``requests.Session``, so one scraper can be shared by the pipeline pool.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        timeout: int = PAGE_TIMEOUT,
        contact_timeout: int = CONTACT_PAGE_TIMEOUT,
    ) -> None:
        self._shared_session = _prepare_session(session) if session is not None else None
        self._local = threading.local()
        self._owned_sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()
        self.timeout = timeout
        self.contact_timeout = contact_timeout

    @property
    def session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = _prepare_session(requests.Session())
            self._local.session = session
            with self._sessions_lock:
                self._owned_sessions.append(session)
        return session

    def fetch_page(self, url: str, *, timeout: int) -> Optional[Tuple[str, str]]:
        """Return the final URL and body for HTML responses, None otherwise."""
        try:
            response = self.session.get(url, timeout=timeout, allow_redirects=True)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Failed to fetch %s: %s", url, exc)
            return None

        content_type = response.headers.get("Content-Type", "").lower()
        if "html" not in content_type:
            logger.debug("Skipping non-HTML content at %s (content-type=%s)", url, content_type)
            return None
        return response.url or url, response.text

    def extract(self, website: Optional[str]) -> Optional[str]:
        root_url = sanitize_website(website)
        if not root_url:
            return None

        logger.info("Attempting to extract email from website: %s", root_url)
        try:
            return self._scan_site(root_url)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to extract email from website %s: %s", root_url, exc)
            return None

    def _scan_site(self, root_url: str) -> Optional[str]:
        fetched = self.fetch_page(root_url, timeout=self.timeout)
        if not fetched:
            return None
        final_url, body = fetched

        email = find_email(body)
        if email:
            logger.info("Extracted email %s from %s", email, root_url)
            return email

        if "contact" not in body.lower():
            return None

        contact_path = find_contact_path(body)
        if not contact_path:
            return None

        contact_url = urljoin(final_url, contact_path)
        logger.info("Checking contact page for email: %s", contact_url)
        fetched = self.fetch_page(contact_url, timeout=self.contact_timeout)
        if not fetched:
            return None

        email = find_email(fetched[1])
        if email:
            logger.info("Found email %s on contact page %s", email, contact_url)
        return email

    def close(self) -> None:
        if self._shared_session is not None:
            self._shared_session.close()
        with self._sessions_lock:
            sessions, self._owned_sessions = self._owned_sessions, []
            self._local = threading.local()
        for session in sessions:
            session.close()

    def __enter__(self) -> "EmailScraper":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        self.close()
