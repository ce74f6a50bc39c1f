"""Selection of parsed command records worth persisting as catalog entries."""
from typing import Any, Iterable, List, Mapping

from .models import CatalogEntry


def is_storable(record: Mapping[str, Any]) -> bool:
    """A record is kept only when flagged ``store`` and free of an error marker."""
    return bool(record.get("store")) and record.get("error") is None


def filter_catalog_entries(
    records: Iterable[Mapping[str, Any]], node_id: str
) -> List[CatalogEntry]:
    """Return catalog entries for the storable records, tagged with ``node_id``."""
    return [
        CatalogEntry(node=node_id, source=record.get("source"), data=record.get("data"))
        for record in records
        if is_storable(record)
    ]
