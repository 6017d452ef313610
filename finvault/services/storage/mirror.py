"""
Tabular Mirror

A denormalized CSV of all entries, one row per entry, uploaded to Drive
as a spreadsheet so the vault can be read without this app.

Strings are double-quoted with inner quotes doubled; numbers are bare.
"""

import csv
import io
from typing import Optional

from finvault.models.finance import FinanceEntry


MIRROR_HEADER = [
    "Date",
    "Name",
    "Amount",
    "Category",
    "Type",
    "Currency",
    "Address",
    "Ref #",
    "Notes",
    "Drive Link",
]

DRIVE_VIEW_URL = "https://drive.google.com/file/d/{file_id}/view"


def attachment_view_url(reference: Optional[str]) -> str:
    """
    Viewer URL for an attachment reference.

    Bare Drive ids become viewer links; URLs and local references
    (fs://, idb://) are returned as-is.
    """
    if not reference:
        return ""
    if "://" in reference:
        return reference
    return DRIVE_VIEW_URL.format(file_id=reference)


def entry_to_row(entry: FinanceEntry, base_currency: str) -> list:
    """Convert an entry to a mirror row, columns in MIRROR_HEADER order."""
    return [
        entry.date,
        entry.name,
        entry.amount,
        entry.category,
        entry.type.value,
        entry.currency or base_currency,
        entry.address or "",
        entry.reference_number or "",
        entry.notes or "",
        attachment_view_url(entry.attachment_ref),
    ]


def build_mirror_csv(entries: list[FinanceEntry], base_currency: str) -> str:
    """Render the full mirror, header first."""
    buffer = io.StringIO()
    buffer.write(",".join(MIRROR_HEADER) + "\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for entry in entries:
        writer.writerow(entry_to_row(entry, base_currency))
    return buffer.getvalue().rstrip("\n")
