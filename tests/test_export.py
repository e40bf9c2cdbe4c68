import csv
import json
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from utils.errors import InvalidFilter
from utils.export import BOM, export, export_filename, to_csv
from utils.reports import REVENUE_COLUMNS, ReportBundle


def _bundle(transactions):
    return ReportBundle(
        name="revenue",
        period={"token": "custom", "from": date(2025, 3, 1), "to": date(2025, 3, 15)},
        filters={},
        generated_on=date(2025, 3, 15),
        summary={"total_revenue": sum((t["amount"] for t in transactions), Decimal("0"))},
        sections={"transactions": transactions, "by_method": []},
        columns=REVENUE_COLUMNS,
    )


def _rows(data: bytes):
    text = data.decode("utf-8")
    assert text.startswith(BOM)
    return list(csv.reader(StringIO(text[len(BOM):])))


def test_csv_has_bom_header_and_rounded_amounts():
    bundle = _bundle([
        {"id": 7, "date": date(2025, 3, 2), "student_id": 1, "program_code": None, "program_type": None,
         "transaction_type": "tuition", "payment_method": "cash", "status": "completed",
         "amount": Decimal("1234.565")},
    ])
    rows = _rows(to_csv(bundle))
    assert rows[0] == REVENUE_COLUMNS["transactions"]
    assert rows[1][0] == "7"
    assert rows[1][1] == "2025-03-02"
    assert rows[1][3] == ""
    assert rows[1][-1] == "1234.57"


def test_empty_section_still_has_header():
    rows = _rows(to_csv(_bundle([]), section="by_method"))
    assert rows == [["payment_method", "total"]]


def test_unknown_section_is_rejected():
    with pytest.raises(InvalidFilter):
        to_csv(_bundle([]), section="nope")


def test_json_export_is_plain_and_stable():
    bundle = _bundle([])
    body = export(bundle, "JSON")
    assert body == export(bundle, "json")
    data = json.loads(body)
    assert data["period"]["from"] == "2025-03-01"
    assert data["summary"]["total_revenue"] == "0.00"


def test_unsupported_format():
    with pytest.raises(InvalidFilter):
        export(_bundle([]), "pdf")


def test_export_filename():
    bundle = _bundle([])
    assert export_filename(bundle, "csv") == "revenue_report_2025-03-15.csv"
    assert export_filename(bundle, "json", "by_method") == "revenue_report_by_method_2025-03-15.json"
