"""Country to city expansion for country-wide searches."""

import logging
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

TURKISH_PROVINCES = (
    "Adana", "Adıyaman", "Afyonkarahisar", "Ağrı", "Amasya", "Ankara", "Antalya", "Artvin",
    "Aydın", "Balıkesir", "Bilecik", "Bingöl", "Bitlis", "Bolu", "Burdur", "Bursa", "Çanakkale",
    "Çankırı", "Çorum", "Denizli", "Diyarbakır", "Edirne", "Elazığ", "Erzincan", "Erzurum",
    "Eskişehir", "Gaziantep", "Giresun", "Gümüşhane", "Hakkari", "Hatay", "Isparta", "Mersin",
    "İstanbul", "İzmir", "Kars", "Kastamonu", "Kayseri", "Kırklareli", "Kırşehir", "Kocaeli",
    "Konya", "Kütahya", "Malatya", "Manisa", "Kahramanmaraş", "Mardin", "Muğla", "Muş", "Nevşehir",
    "Niğde", "Ordu", "Rize", "Sakarya", "Samsun", "Siirt", "Sinop", "Sivas", "Tekirdağ", "Tokat",
    "Trabzon", "Tunceli", "Şanlıurfa", "Uşak", "Van", "Yozgat", "Zonguldak", "Aksaray", "Bayburt",
    "Karaman", "Kırıkkale", "Batman", "Şırnak", "Bartın", "Ardahan", "Iğdır", "Yalova", "Karabük",
    "Kilis", "Osmaniye", "Düzce",
)

# Keys are casefolded country names.
COUNTRY_CITIES: Dict[str, tuple] = {
    "turkey": TURKISH_PROVINCES,
    "türkiye": TURKISH_PROVINCES,
}


def _key(name: Optional[str]) -> str:
    return (name or "").strip().casefold()


class LocationExpander:
    """Replace known countries with their city lists; everything else passes through."""

    def __init__(self, table: Optional[Dict[str, Iterable[str]]] = None) -> None:
        source = COUNTRY_CITIES if table is None else table
        self._table = {_key(country): tuple(cities) for country, cities in source.items()}

    def is_country(self, name: Optional[str]) -> bool:
        return _key(name) in self._table

    def cities_for(self, name: Optional[str]) -> List[str]:
        return list(self._table.get(_key(name), ()))

    def expand(self, locations: Iterable[str]) -> List[str]:
        expanded: List[str] = []
        seen = set()
        for location in locations:
            if self.is_country(location):
                cities = self.cities_for(location)
                logger.info("Expanding country location %s into %d cities", location, len(cities))
                candidates = cities
            else:
                candidates = [location]
            for candidate in candidates:
                if candidate not in seen:
                    seen.add(candidate)
                    expanded.append(candidate)
        return expanded
