"""Column resolution for spreadsheet grids.

Supplier spreadsheets come with inconsistent, multilingual headers. This
module finds the header row in a raw grid and maps header cells onto the
canonical CandidateRecord fields through an ordered alias table.

Matching is done on normalized headers (trimmed, inner whitespace collapsed,
case-folded), so "Scientific  Name " and "scientific name" are the same column.
"""

import re
from typing import Any, Dict, List, Optional, Sequence

from core.errors import HeaderNotFound


HEADER_SCAN_ROWS = 10

# Substrings that identify a header row (any one is enough)
HEADER_MARKERS = (
    "שם",
    "גודל",
    "מספר ארגז",
    "scientific",
    "size",
    "box",
)

# Canonical field -> aliases, tried in order
COLUMN_ALIASES: Dict[str, List[str]] = {
    "scientificName": ["שם מדעי", "Scientific Name", "Latin Name", "Scientific", "Species"],
    "commonName": ["שם עברי", "שם נפוץ", "שם", "Common Name", "Hebrew Name", "Name"],
    "size": ["גודל", "Size"],
    "boxNumber": ["מספר ארגז", "ארגז", "Box Number", "Box No", "Box", "Cart"],
    "boxPortion": ["חלק ארגז", "Part of Cart", "Part of Box", "Box Portion"],
    "code": ["מספר קטלוג", "קוד", "מק\"ט", "Code", "Catalog Number", "Item Code"],
    "bagCount": ["מספר שקיות", "שקיות", "Bags", "Bag Count"],
    "quantityPerBag": ["כמות בשקית", "Qty/Bag", "Qty per Bag", "Quantity per Bag"],
    "totalQuantity": ["כמות", "סה\"כ", "Total", "Total Quantity", "Quantity", "Qty"],
    "unitPrice": ["מחיר", "מחיר ליחידה", "Price", "Unit Price"],
    "currency": ["מטבע", "Currency"],
}


def normalize_header(value: Any) -> str:
    """Normalize a header cell for matching."""
    if value is None:
        return ""
    s = re.sub(r"\s+", " ", str(value)).strip()
    return s.casefold()


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def find_header_row(
    rows: Sequence[Sequence[Any]],
    max_scan: int = HEADER_SCAN_ROWS,
    markers: Sequence[str] = HEADER_MARKERS,
) -> int:
    """Return the 0-based index of the first row containing a header marker.

    Only the first ``max_scan`` rows are considered.

    Raises:
        HeaderNotFound: No row in the scanned window contains any marker
    """
    folded = [m.casefold() for m in markers]
    for index, row in enumerate(rows[:max_scan]):
        for cell in row:
            text = normalize_header(cell)
            if text and any(marker in text for marker in folded):
                return index
    raise HeaderNotFound(min(len(rows), max_scan), list(markers))


class ColumnResolver:
    """Resolves canonical field values from data rows of one grid.

    Args:
        headers: The raw header row
        aliases: Canonical field -> ordered alias list
    """

    def __init__(self, headers: Sequence[Any], aliases: Optional[Dict[str, List[str]]] = None):
        self.headers = list(headers)
        self.aliases = aliases or COLUMN_ALIASES
        self._index: Dict[str, int] = {}
        for position, header in enumerate(self.headers):
            key = normalize_header(header)
            if key and key not in self._index:
                self._index[key] = position

    def column_for(self, field_name: str) -> Optional[int]:
        """Index of the first alias of ``field_name`` present in the headers."""
        for alias in self.aliases.get(field_name, []):
            position = self._index.get(normalize_header(alias))
            if position is not None:
                return position
        return None

    def has_column(self, field_name: str) -> bool:
        return self.column_for(field_name) is not None

    def resolve(self, row: Sequence[Any], field_name: str) -> Any:
        """Value of ``field_name`` in ``row``, or None when unmatched or empty."""
        position = self.column_for(field_name)
        if position is None or position >= len(row):
            return None
        value = row[position]
        if _is_empty(value):
            return None
        return value.strip() if isinstance(value, str) else value

    def to_raw_record(self, row: Sequence[Any]) -> Dict[str, Any]:
        """Map a data row onto canonical field names.

        Only fields with a matching column are included, so a sheet without a
        box number column leaves ``boxNumber`` to its default while an empty
        box number cell yields an explicit None.
        """
        return {
            field_name: self.resolve(row, field_name)
            for field_name in self.aliases
            if self.has_column(field_name)
        }


def resolve_column(headers: Sequence[Any], row: Sequence[Any], field_name: str) -> Any:
    """One-shot form of ``ColumnResolver(headers).resolve(row, field_name)``."""
    return ColumnResolver(headers).resolve(row, field_name)
