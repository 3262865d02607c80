"""
Suite export: CSV and styled Excel workbooks of a suite's test cases.

Both formats share one column layout:
    ID, Title, Priority, QA Status, UAT Status, BAT Status, Description, Steps
Steps are flattened to "1. <action>; 2. <action>".
"""

import csv
import io
import logging
import re
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from qatrack.core.exceptions import NotFoundError

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "ID", "Title", "Priority", "QA Status", "UAT Status", "BAT Status", "Description", "Steps",
]
COLUMN_WIDTHS = [22, 40, 10, 12, 12, 12, 50, 70]

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
STATUS_FILLS = {
    "Pass": PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
    "Fail": PatternFill(start_color="E74C3C", end_color="E74C3C", fill_type="solid"),
    "Blocked": PatternFill(start_color="F39C12", end_color="F39C12", fill_type="solid"),
}
STATUS_FONT = Font(color="FFFFFF", bold=True)


def flatten_steps(steps) -> str:
    return "; ".join(f"{n}. {step.action}" for n, step in enumerate(steps, 1))


def export_row(test_case) -> list:
    return [
        test_case.test_case_id,
        test_case.title,
        test_case.priority,
        test_case.qa_status,
        test_case.uat_status,
        test_case.bat_status,
        test_case.description,
        flatten_steps(test_case.steps),
    ]


def export_filename(suite, extension: str) -> str:
    """File name like ``Checkout_Regression_test_cases.csv``."""
    stem = re.sub(r"[^A-Za-z0-9_-]+", "_", suite.name or "").strip("_") or "suite"
    return f"{stem}_test_cases.{extension}"


def _suite_cases(store, suite_id):
    suite = store.get_test_suite(suite_id)
    if suite is None:
        raise NotFoundError(resource="TestSuite", resource_id=suite_id)
    return suite, store.cases_for_suite(suite_id)


def generate_test_cases_csv(test_cases) -> str:
    """Render test cases as CSV; every field quoted, embedded quotes doubled.

    Returns:
        str: CSV content, one ``\\n``-terminated line per row.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for tc in test_cases:
        writer.writerow(export_row(tc))
    return buf.getvalue()


def generate_suite_csv(store, suite_id: str) -> str:
    suite, cases = _suite_cases(store, suite_id)
    logger.info("CSV export of suite %s (%d cases)", suite_id, len(cases),
                extra={"suite_id": suite_id})
    return generate_test_cases_csv(cases)


def generate_suite_xlsx(store, suite_id: str) -> io.BytesIO:
    """
    Generate a styled Excel workbook of a suite's test cases.
    Returns a BytesIO buffer ready for Flask send_file.
    """
    suite, cases = _suite_cases(store, suite_id)

    wb = Workbook()
    ws = wb.active
    ws.title = "Test Cases"

    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(EXPORT_COLUMNS))
    ws["A1"] = f"Test Suite: {suite.name}"
    ws["A1"].font = Font(size=16, bold=True)
    meta = f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"
    if suite.jira_number:
        meta += f"  ·  Jira: {suite.jira_number}"
    meta += f"  ·  Owner: {store.display_name(suite.owner_id)}"
    ws["A2"] = meta
    ws["A2"].font = Font(size=10, italic=True, color="666666")

    header_row = 4
    for col, header in enumerate(EXPORT_COLUMNS, 1):
        cell = ws.cell(row=header_row, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER

    for offset, tc in enumerate(cases, 1):
        row = header_row + offset
        for col, value in enumerate(export_row(tc), 1):
            cell = ws.cell(row=row, column=col, value=value)
            cell.border = THIN_BORDER
            cell.alignment = Alignment(vertical="top", wrap_text=col in (2, 7, 8))
            if 4 <= col <= 6 and value in STATUS_FILLS:
                cell.fill = STATUS_FILLS[value]
                cell.font = STATUS_FONT

    for col, width in enumerate(COLUMN_WIDTHS, 1):
        ws.column_dimensions[get_column_letter(col)].width = width
    ws.freeze_panes = ws.cell(row=header_row + 1, column=1)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.info("XLSX export of suite %s (%d cases)", suite_id, len(cases),
                extra={"suite_id": suite_id})
    return buf
