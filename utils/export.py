from __future__ import annotations

import csv
import json
from io import StringIO
from typing import Optional

from utils.errors import InvalidFilter
from utils.reports import PRIMARY_SECTIONS, ReportBundle, to_plain

EXPORT_FORMATS = ("csv", "json")
CONTENT_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "json": "application/json",
}
BOM = "\ufeff"


def to_csv(bundle: ReportBundle, section: Optional[str] = None) -> bytes:
    """One section of the bundle as CSV: UTF-8 BOM, header row, one row per record."""
    key = section or PRIMARY_SECTIONS.get(bundle.name)
    if key not in bundle.columns:
        raise InvalidFilter(f"Report {bundle.name!r} has no section {key!r}")
    fields = bundle.columns[key]

    si = StringIO()
    si.write(BOM)
    writer = csv.DictWriter(si, fieldnames=fields, extrasaction="ignore")
    writer.writeheader()
    for row in bundle.section(key):
        plain = to_plain(row)
        writer.writerow({f: "" if plain.get(f) is None else plain.get(f) for f in fields})
    return si.getvalue().encode("utf-8")


def to_json(bundle: ReportBundle) -> str:
    return json.dumps(bundle.as_dict(), sort_keys=True)


def export(bundle: ReportBundle, fmt: str, section: Optional[str] = None) -> bytes:
    fmt = (fmt or "").strip().lower()
    if fmt == "csv":
        return to_csv(bundle, section)
    if fmt == "json":
        return to_json(bundle).encode("utf-8")
    raise InvalidFilter(f"Unsupported export format {fmt!r}; expected one of {', '.join(EXPORT_FORMATS)}")


def export_filename(bundle: ReportBundle, fmt: str, section: Optional[str] = None) -> str:
    to = bundle.period.get("to")
    stamp = to.isoformat() if hasattr(to, "isoformat") else str(to or bundle.generated_on)
    suffix = f"_{section}" if section else ""
    return f"{bundle.name}_report{suffix}_{stamp}.{fmt.lower()}"
