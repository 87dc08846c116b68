from arara.org.directory import DbSectorDirectory, SectorDirectory, seed_default_sectors
from arara.org.models import Sector

__all__ = [
    "Sector",
    "SectorDirectory",
    "DbSectorDirectory",
    "seed_default_sectors",
]
