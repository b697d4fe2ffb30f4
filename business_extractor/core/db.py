"""Database helpers for persisted business records."""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from psycopg2 import extras, pool

from business_extractor.core.config import get_settings
from business_extractor.models import BusinessRecord

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.ThreadedConnectionPool] = None
_pool_lock = threading.Lock()

_COLUMNS = (
    "id",
    "business_name",
    "real_category",
    "category",
    "address",
    "city",
    "state",
    "postal_code",
    "country",
    "phone",
    "email",
    "website",
    "latitude",
    "longitude",
    "maps_link",
    "details_link",
)


def pool_size(max_workers: int) -> int:
    """Connections needed so every pipeline thread and one HTTP reader can hold one at once."""
    return max(5, max_workers + 1)


def init_pool(minconn: int = 1, maxconn: Optional[int] = None) -> pool.ThreadedConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    with _pool_lock:
        if _connection_pool is None:
            settings = get_settings()
            if not settings.database_url:
                raise RuntimeError("DATABASE_URL is required for database connections")
            maxconn = maxconn or pool_size(settings.max_workers)
            # Pipelines upsert from several worker threads at once.
            _connection_pool = pool.ThreadedConnectionPool(
                minconn,
                maxconn,
                dsn=settings.database_url,
                connect_timeout=10,
            )
            logger.info("Database connection pool initialised (maxconn=%d)", maxconn)
        return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


def _prepare_params(record: BusinessRecord) -> Dict[str, Any]:
    # Empty strings are stored as NULL so the merge rules below can treat them alike.
    params: Dict[str, Any] = {}
    for column in _COLUMNS:
        value = getattr(record, column)
        params[column] = None if value == "" else value
    return params


# Non-empty incoming values win, except email and website: those are only
# replaced when the stored value is empty or the incoming one is longer.
_UPSERT_BUSINESS = """
INSERT INTO businesses (
    id,
    business_name,
    real_category,
    category,
    address,
    city,
    state,
    postal_code,
    country,
    phone,
    email,
    website,
    latitude,
    longitude,
    maps_link,
    details_link,
    updated_at
) VALUES (
    %(id)s,
    %(business_name)s,
    %(real_category)s,
    %(category)s,
    %(address)s,
    %(city)s,
    %(state)s,
    %(postal_code)s,
    %(country)s,
    %(phone)s,
    %(email)s,
    %(website)s,
    %(latitude)s,
    %(longitude)s,
    %(maps_link)s,
    %(details_link)s,
    NOW()
)
ON CONFLICT (id) DO UPDATE SET
    business_name = COALESCE(EXCLUDED.business_name, businesses.business_name),
    real_category = COALESCE(EXCLUDED.real_category, businesses.real_category),
    category = COALESCE(EXCLUDED.category, businesses.category),
    address = COALESCE(EXCLUDED.address, businesses.address),
    city = COALESCE(EXCLUDED.city, businesses.city),
    state = COALESCE(EXCLUDED.state, businesses.state),
    postal_code = COALESCE(EXCLUDED.postal_code, businesses.postal_code),
    country = COALESCE(EXCLUDED.country, businesses.country),
    phone = COALESCE(EXCLUDED.phone, businesses.phone),
    email = CASE
        WHEN EXCLUDED.email IS NOT NULL
             AND (COALESCE(businesses.email, '') = ''
                  OR (EXCLUDED.email <> businesses.email
                      AND LENGTH(EXCLUDED.email) > LENGTH(businesses.email)))
        THEN EXCLUDED.email
        ELSE businesses.email
    END,
    website = CASE
        WHEN EXCLUDED.website IS NOT NULL
             AND (COALESCE(businesses.website, '') = ''
                  OR (EXCLUDED.website <> businesses.website
                      AND LENGTH(EXCLUDED.website) > LENGTH(businesses.website)))
        THEN EXCLUDED.website
        ELSE businesses.website
    END,
    latitude = COALESCE(EXCLUDED.latitude, businesses.latitude),
    longitude = COALESCE(EXCLUDED.longitude, businesses.longitude),
    maps_link = COALESCE(EXCLUDED.maps_link, businesses.maps_link),
    details_link = COALESCE(EXCLUDED.details_link, businesses.details_link),
    updated_at = NOW();
"""


def upsert_business(record: BusinessRecord) -> None:
    """Persist a business record, merging into any stored row with the same id."""
    params = _prepare_params(record)
    if not params["id"]:
        raise ValueError("id is required for upsert")

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_UPSERT_BUSINESS, params)
        conn.commit()
        logger.debug("Upserted business %s", params["id"])


def _build_filters(
    category: Optional[str],
    city: Optional[str],
    country: Optional[str],
    has_email: Optional[bool],
):
    clauses: List[str] = []
    params: Dict[str, Any] = {}
    if category:
        clauses.append("category = %(category)s")
        params["category"] = category
    if city:
        clauses.append("city = %(city)s")
        params["city"] = city
    if country:
        clauses.append("country = %(country)s")
        params["country"] = country
    if has_email is True:
        clauses.append("email IS NOT NULL")
    elif has_email is False:
        clauses.append("email IS NULL")
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


def find_businesses(
    page: int = 0,
    size: int = 20,
    *,
    category: Optional[str] = None,
    city: Optional[str] = None,
    country: Optional[str] = None,
    has_email: Optional[bool] = None,
) -> List[BusinessRecord]:
    """Return one page of stored businesses, ordered by id."""
    if page < 0 or size <= 0:
        raise ValueError("page must be >= 0 and size must be positive")

    where, params = _build_filters(category, city, country, has_email)
    params.update({"limit": size, "offset": page * size})
    query = (
        f"SELECT {', '.join(_COLUMNS)} FROM businesses{where}"
        " ORDER BY id LIMIT %(limit)s OFFSET %(offset)s"
    )

    with get_connection() as conn:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
    return [BusinessRecord(**dict(row)) for row in rows]
