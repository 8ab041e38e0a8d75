"""
Marine Regions registry for North Sea countries.

Gazetteer identifiers (MRGID) for the Exclusive Economic Zones and land
polygons of the countries around the (Southern) North Sea. Identifiers are
looked up at https://www.marineregions.org/gazetteer.php?p=search
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class RegionInfo:
    """Gazetteer entry for one region."""
    mrgid: int
    country: str
    name: str
    north_sea_border: bool

    def __post_init__(self):
        """Validate region data format"""
        if self.mrgid <= 0:
            raise ValueError(f"MRGID must be positive, got {self.mrgid}")
        if not self.country:
            raise ValueError("Country code cannot be empty")


EEZS: dict[str, RegionInfo] = {
    "BE": RegionInfo(3293, "BE", "Belgian Exclusive Economic Zone", True),
    "DE": RegionInfo(5669, "DE", "German Exclusive Economic Zone", True),
    "UK": RegionInfo(5696, "UK", "United Kingdom Exclusive Economic Zone", True),
    "IRL": RegionInfo(5681, "IRL", "Irish Exclusive Economic Zone", False),
    "NL": RegionInfo(5668, "NL", "Dutch Exclusive Economic Zone", True),
    "DK": RegionInfo(5674, "DK", "Danish Exclusive Economic Zone", True),
    "FR": RegionInfo(5677, "FR", "French Exclusive Economic Zone", True),
    "SE": RegionInfo(5694, "SE", "Swedish Exclusive Economic Zone", False),
    "NO": RegionInfo(5686, "NO", "Norwegian Exclusive Economic Zone", True),
}

COUNTRIES: dict[str, RegionInfo] = {
    "BE": RegionInfo(14, "BE", "Belgium", True),
    "DE": RegionInfo(2101, "DE", "Germany", True),
    "UK": RegionInfo(2208, "UK", "United Kingdom", True),
    "IRL": RegionInfo(2114, "IRL", "Ireland", False),
    "NL": RegionInfo(15, "NL", "Netherlands", True),
    "DK": RegionInfo(2157, "DK", "Denmark", True),
    "FR": RegionInfo(17, "FR", "France", True),
    "SE": RegionInfo(2180, "SE", "Sweden", False),
    "PL": RegionInfo(2244, "PL", "Poland", False),
    "CZ": RegionInfo(2158, "CZ", "Czech Republic", False),
    "AUT": RegionInfo(2146, "AUT", "Austria", False),
    "SL": RegionInfo(2189, "SL", "Slovakia", False),
    "NO": RegionInfo(2252, "NO", "Norway", True),
    "CH": RegionInfo(2179, "CH", "Switzerland", False),
    "LUX": RegionInfo(2233, "LUX", "Luxembourg", False),
}


class RegionRegistry:
    """Lookups over the built-in EEZ and country tables"""

    @staticmethod
    def get_eez(country: str) -> Optional[RegionInfo]:
        return EEZS.get(country.upper())

    @staticmethod
    def get_country(country: str) -> Optional[RegionInfo]:
        return COUNTRIES.get(country.upper())

    @staticmethod
    def by_mrgid(mrgid: int) -> Optional[RegionInfo]:
        for table in (EEZS, COUNTRIES):
            for region in table.values():
                if region.mrgid == mrgid:
                    return region
        return None

    @staticmethod
    def list_eezs() -> list[RegionInfo]:
        return list(EEZS.values())

    @staticmethod
    def list_countries() -> list[RegionInfo]:
        return list(COUNTRIES.values())
