import logging
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Optional, Dict, List
from photobooth.config.models import CatalogEntry

class Catalog:
    """Read-only id -> asset lookup, resolved against a fixed asset directory.

    Lookups never raise: an unknown id, an entry without a file, or a file
    missing on disk all resolve to None so callers can skip the feature.
    """

    def __init__(self, kind: str, entries: Iterable[CatalogEntry], asset_dir: Path):
        self.kind = kind
        self.asset_dir = asset_dir
        self._entries = MappingProxyType({entry.id: entry for entry in entries})
        self.logger = logging.getLogger(__name__)

    def __contains__(self, entry_id: str) -> bool:
        return entry_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> List[CatalogEntry]:
        return list(self._entries.values())

    def get(self, entry_id: Optional[str]) -> Optional[CatalogEntry]:
        if entry_id is None:
            return None
        return self._entries.get(entry_id)

    def asset_path(self, entry: CatalogEntry) -> Optional[Path]:
        if not entry.file:
            return None
        return self.asset_dir / entry.file

    def resolve(self, entry_id: Optional[str]) -> Optional[Path]:
        """Returns the asset path for an id, or None when it cannot be used."""
        if entry_id is None or entry_id == "none":
            return None
        entry = self._entries.get(entry_id)
        if entry is None:
            self.logger.warning(f"Unknown {self.kind} id '{entry_id}'")
            return None
        path = self.asset_path(entry)
        if path is None:
            self.logger.warning(f"{self.kind} '{entry_id}' has no asset file")
            return None
        if not path.is_file():
            self.logger.warning(f"{self.kind} asset missing on disk: {path}")
            return None
        return path

    def availability(self) -> Dict[str, bool]:
        """Maps every id with an asset file to whether that file exists."""
        result = {}
        for entry in self._entries.values():
            path = self.asset_path(entry)
            if path is not None:
                result[entry.id] = path.is_file()
        return result


class MusicCatalog(Catalog):
    def __init__(self, entries: Iterable[CatalogEntry], asset_dir: Path):
        super().__init__("music", entries, asset_dir)


class FontCatalog(Catalog):
    def __init__(self, entries: Iterable[CatalogEntry], asset_dir: Path):
        super().__init__("font", entries, asset_dir)
