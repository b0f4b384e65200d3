"""
Reference-data store adapters. Every adapter serves the same paginated read:
list_active(kind, page_token, page_size) -> ReferencePage.
Rows arrive as untyped dicts (Supabase tables, JSON file) and are parsed into
ReferenceEntry here, at the boundary.
"""
import json
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol

from labelcheck.errors import ReferenceStoreError
from .reference_schema import DatasetKind, ReferenceEntry

logger = logging.getLogger(__name__)

DEFAULT_ALLERGEN_CITATION = "FALCPA Section 403(w), FASTER Act"
DEFAULT_GRAS_CITATION = "21 CFR 170.30 (GRAS determination)"
DEFAULT_ODI_CITATION = "Marketed before October 15, 1994 (DSHEA)"

# Table per dataset, and the column used for stable ordering
TABLES: dict[DatasetKind, tuple[str, str]] = {
    DatasetKind.GRAS: ("gras_ingredients", "ingredient_name"),
    DatasetKind.NDI: ("ndi_ingredients", "ingredient_name"),
    DatasetKind.ODI: ("old_dietary_ingredients", "ingredient_name"),
    DatasetKind.ALLERGEN_DERIVATIVE: ("major_allergens", "allergen_name"),
}
# ndi_ingredients has no is_active column; every notification on file counts
_HAS_ACTIVE_COLUMN = {DatasetKind.GRAS, DatasetKind.ODI, DatasetKind.ALLERGEN_DERIVATIVE}


@dataclass
class ReferencePage:
    entries: list[ReferenceEntry] = field(default_factory=list)
    next_page_token: Optional[str] = None


class ReferenceStore(Protocol):
    def list_active(
        self,
        kind: DatasetKind,
        page_token: Optional[str] = None,
        page_size: int = 1000,
    ) -> ReferencePage:
        ...


# --- Row mapping ---

def _str_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [v for v in value if isinstance(v, str) and v.strip()]


def _extra_names(row: dict, canonical: str, *columns: str) -> list[str]:
    out = []
    for col in columns:
        v = row.get(col)
        if isinstance(v, str) and v.strip() and v.strip().lower() != canonical.strip().lower():
            out.append(v)
    return out


def _join_citation(*parts: Optional[str]) -> str:
    return ", ".join(p.strip() for p in parts if p and str(p).strip())


def _gras_entry(row: dict) -> ReferenceEntry:
    name = row["ingredient_name"]
    notice = row.get("gras_notice_number")
    citation = _join_citation(
        row.get("source_reference"),
        f"GRAS Notice {notice}" if notice and notice not in (row.get("source_reference") or "") else None,
    )
    return ReferenceEntry(
        canonical_name=name,
        dataset_kind=DatasetKind.GRAS,
        synonyms=tuple(_str_list(row.get("synonyms")) + _extra_names(row, name, "common_name", "technical_name")),
        source_citation=citation or DEFAULT_GRAS_CITATION,
        active=bool(row.get("is_active", True)),
        entry_id=row.get("id"),
        category=row.get("category"),
    )


def _ndi_entry(row: dict) -> ReferenceEntry:
    number = row.get("notification_number")
    citation = f"NDI Notification #{number}" if number is not None else "NDI Notification"
    if row.get("report_number"):
        citation += f" ({row['report_number']})"
    if row.get("submission_date"):
        citation += f", submitted {row['submission_date']}"
    return ReferenceEntry(
        canonical_name=row["ingredient_name"],
        dataset_kind=DatasetKind.NDI,
        synonyms=tuple(_str_list(row.get("synonyms"))),
        source_citation=citation,
        active=bool(row.get("is_active", True)),
        entry_id=row.get("id"),
    )


def _odi_entry(row: dict) -> ReferenceEntry:
    return ReferenceEntry(
        canonical_name=row["ingredient_name"],
        dataset_kind=DatasetKind.ODI,
        synonyms=tuple(_str_list(row.get("synonyms"))),
        source_citation=_join_citation(row.get("source")) or DEFAULT_ODI_CITATION,
        active=bool(row.get("is_active", True)),
        entry_id=row.get("id"),
    )


def _allergen_entry(row: dict) -> ReferenceEntry:
    name = row["allergen_name"]
    return ReferenceEntry(
        canonical_name=name,
        dataset_kind=DatasetKind.ALLERGEN_DERIVATIVE,
        synonyms=tuple(
            _str_list(row.get("derivatives"))
            + _str_list(row.get("scientific_names"))
            + _extra_names(row, name, "common_name")
        ),
        source_citation=row.get("regulation_citation") or DEFAULT_ALLERGEN_CITATION,
        active=bool(row.get("is_active", True)),
        entry_id=row.get("id"),
        category=row.get("allergen_category"),
    )


ROW_MAPPERS: dict[DatasetKind, Callable[[dict], ReferenceEntry]] = {
    DatasetKind.GRAS: _gras_entry,
    DatasetKind.NDI: _ndi_entry,
    DatasetKind.ODI: _odi_entry,
    DatasetKind.ALLERGEN_DERIVATIVE: _allergen_entry,
}


def rows_to_entries(kind: DatasetKind, rows: Iterable[dict]) -> list[ReferenceEntry]:
    """Parse table rows; rows that fail validation are skipped with a warning."""
    mapper = ROW_MAPPERS[kind]
    entries = []
    for row in rows or []:
        try:
            entries.append(mapper(row))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                "REFERENCE_STORE skipped invalid row kind=%s id=%s error=%s",
                kind.value, (row or {}).get("id") if isinstance(row, dict) else None, e,
            )
    return entries


def _offset(page_token: Optional[str]) -> int:
    if page_token is None:
        return 0
    try:
        offset = int(page_token)
    except (TypeError, ValueError):
        raise ReferenceStoreError(f"Invalid page token {page_token!r}")
    if offset < 0:
        raise ReferenceStoreError(f"Invalid page token {page_token!r}")
    return offset


def _slice_page(items: list, offset: int, page_size: int) -> tuple[list, Optional[str]]:
    page = items[offset:offset + page_size]
    next_token = str(offset + len(page)) if len(page) == page_size else None
    return page, next_token


# --- Adapters ---

class SupabaseReferenceStore:
    """
    Reads reference tables through supabase-py. Offset pagination ordered by the
    name column, so pages are stable across calls.
    """

    def __init__(self, client):
        self._client = client

    @classmethod
    def from_env(cls) -> "SupabaseReferenceStore":
        from supabase import create_client
        from labelcheck.config import get_supabase_url, get_supabase_service_key

        url = get_supabase_url()
        key = get_supabase_service_key()
        if not url or not key:
            raise ReferenceStoreError(
                "Supabase credentials missing (set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY)"
            )
        return cls(create_client(url, key))

    def list_active(
        self,
        kind: DatasetKind,
        page_token: Optional[str] = None,
        page_size: int = 1000,
    ) -> ReferencePage:
        table, order_column = TABLES[kind]
        offset = _offset(page_token)
        try:
            query = self._client.table(table).select("*")
            if kind in _HAS_ACTIVE_COLUMN:
                query = query.eq("is_active", True)
            response = query.order(order_column).range(offset, offset + page_size - 1).execute()
        except Exception as e:
            logger.warning(
                "REFERENCE_STORE supabase read failed table=%s offset=%d error=%s",
                table, offset, e,
            )
            raise ReferenceStoreError(
                f"Failed to read {table}", metadata={"table": table, "offset": offset},
            ) from e
        rows = response.data or []
        next_token = str(offset + len(rows)) if len(rows) == page_size else None
        return ReferencePage(entries=rows_to_entries(kind, rows), next_page_token=next_token)


class JsonReferenceStore:
    """
    Reads the same row shapes from a JSON file keyed by table name
    ({"gras_ingredients": [...], "major_allergens": [...], ...}).
    The file is re-read at the first page of every bulk load, so an edited file
    is picked up after invalidation.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._rows: dict[str, list[dict]] = {}

    def _load(self) -> None:
        if not self._path.exists():
            raise ReferenceStoreError(f"Reference data file not found at {self._path}")
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ReferenceStoreError(f"Reference data file unreadable: {self._path}") from e
        self._rows = {k: v for k, v in data.items() if isinstance(v, list)}
        logger.info(
            "REFERENCE_STORE loaded %s tables=%s",
            self._path, {k: len(v) for k, v in self._rows.items()},
        )

    def list_active(
        self,
        kind: DatasetKind,
        page_token: Optional[str] = None,
        page_size: int = 1000,
    ) -> ReferencePage:
        offset = _offset(page_token)
        if offset == 0:
            self._load()
        table, order_column = TABLES[kind]
        rows = [
            r for r in self._rows.get(table, [])
            if isinstance(r, dict) and r.get("is_active", True)
        ]
        rows.sort(key=lambda r: str(r.get(order_column) or ""))
        page, next_token = _slice_page(rows, offset, page_size)
        return ReferencePage(entries=rows_to_entries(kind, page), next_page_token=next_token)


class InMemoryReferenceStore:
    """In-process store over ReferenceEntry lists. Counts list_active calls per dataset."""

    def __init__(self, entries_by_kind: Optional[Mapping[DatasetKind, Iterable[ReferenceEntry]]] = None):
        self._entries: dict[DatasetKind, list[ReferenceEntry]] = {
            kind: list(entries) for kind, entries in (entries_by_kind or {}).items()
        }
        self._lock = threading.Lock()
        self.calls: Counter = Counter()
        self.error: Optional[Exception] = None

    def set_entries(self, kind: DatasetKind, entries: Iterable[ReferenceEntry]) -> None:
        with self._lock:
            self._entries[kind] = list(entries)

    def list_active(
        self,
        kind: DatasetKind,
        page_token: Optional[str] = None,
        page_size: int = 1000,
    ) -> ReferencePage:
        with self._lock:
            self.calls[kind] += 1
            if self.error is not None:
                raise self.error
            active = [e for e in self._entries.get(kind, []) if e.active]
        page, next_token = _slice_page(active, _offset(page_token), page_size)
        return ReferencePage(entries=page, next_page_token=next_token)
