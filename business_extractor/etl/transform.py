"""Utilities for transforming Google Places responses into business records."""

import logging
from dataclasses import fields
from typing import Any, Dict, Iterable, Optional

from business_extractor.models import BusinessRecord

logger = logging.getLogger(__name__)

MAPS_LINK_TEMPLATE = "https://www.google.com/maps/place/?q=place_id:{place_id}"

_COMPONENT_FIELDS = {
    "locality": "city",
    "administrative_area_level_1": "state",
    "postal_code": "postal_code",
    "country": "country",
}

# Fields where a longer incoming value replaces a different stored one.
LONGEST_WINS_FIELDS = ("email", "website")


def parse_address_components(address_components: Iterable[Dict[str, Any]]) -> Dict[str, Optional[str]]:
    parsed: Dict[str, Optional[str]] = {name: None for name in _COMPONENT_FIELDS.values()}
    for component in address_components or []:
        for type_name in component.get("types", []):
            target = _COMPONENT_FIELDS.get(type_name)
            if target:
                parsed[target] = component.get("long_name")
    return parsed


def maps_link(place_id: str) -> str:
    return MAPS_LINK_TEMPLATE.format(place_id=place_id)


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def _coordinates(result: Dict[str, Any]):
    location = (result.get("geometry") or {}).get("location") or {}
    return location.get("lat"), location.get("lng")


def to_bare_record(result: Dict[str, Any]) -> Optional[BusinessRecord]:
    """Map a text search item to a record; items without a place id are dropped."""
    place_id = _strip_or_none(result.get("place_id"))
    if not place_id:
        logger.debug("Skipping result without place_id: %s", result)
        return None

    lat, lng = _coordinates(result)
    return BusinessRecord(
        id=place_id,
        business_name=_strip_or_none(result.get("name")),
        address=_strip_or_none(result.get("vicinity") or result.get("formatted_address")),
        latitude=lat,
        longitude=lng,
        maps_link=maps_link(place_id),
    )


def to_detailed_record(result: Dict[str, Any], place_id: Optional[str] = None) -> BusinessRecord:
    """Map a place details payload; the listing url stands in for a missing website."""
    resolved_id = _strip_or_none(result.get("place_id")) or place_id or ""
    listing_url = _strip_or_none(result.get("url"))
    website = _strip_or_none(result.get("website")) or listing_url
    components = parse_address_components(result.get("address_components", []))
    lat, lng = _coordinates(result)

    return BusinessRecord(
        id=resolved_id,
        business_name=_strip_or_none(result.get("name")),
        address=_strip_or_none(result.get("formatted_address")),
        city=components["city"],
        state=components["state"],
        postal_code=components["postal_code"],
        country=components["country"],
        phone=_strip_or_none(result.get("formatted_phone_number") or result.get("international_phone_number")),
        website=website,
        latitude=lat,
        longitude=lng,
        maps_link=maps_link(resolved_id) if resolved_id else None,
        details_link=listing_url,
    )


def apply_details(record: BusinessRecord, detailed: BusinessRecord) -> BusinessRecord:
    """Overwrite the enrichable fields of ``record`` in place with the detail result."""
    record.business_name = detailed.business_name
    record.address = detailed.address
    record.city = detailed.city
    record.state = detailed.state
    record.postal_code = detailed.postal_code
    record.country = detailed.country
    record.phone = detailed.phone
    record.email = detailed.email
    record.website = detailed.website
    if detailed.latitude is not None and detailed.longitude is not None:
        record.latitude = detailed.latitude
        record.longitude = detailed.longitude
    if detailed.details_link:
        record.details_link = detailed.details_link
    return record


def prefer_longer(existing: Optional[str], incoming: Optional[str]) -> Optional[str]:
    """Keep ``existing`` unless it is empty or ``incoming`` differs and is longer."""
    if not incoming:
        return existing
    if not existing:
        return incoming
    if incoming != existing and len(incoming) > len(existing):
        return incoming
    return existing


def merge_records(existing: BusinessRecord, incoming: BusinessRecord) -> BusinessRecord:
    """Merge ``incoming`` into ``existing`` in place.

    Non-empty incoming values replace stored ones; email and website follow the
    longest-string-wins rule instead.
    """
    for field_info in fields(BusinessRecord):
        name = field_info.name
        if name == "id":
            continue
        new_value = getattr(incoming, name)
        if name in LONGEST_WINS_FIELDS:
            setattr(existing, name, prefer_longer(getattr(existing, name), new_value))
        elif new_value is not None and new_value != "":
            setattr(existing, name, new_value)
    return existing
