"""Spreadsheet import/export built on openpyxl.

Importers only parse: they turn worksheet rows into field dicts and raise
``RowError`` for rows that must be skipped. Persisting is left to the
blueprints so each import stays a single transaction.
"""
import io
import zipfile
import logging
from datetime import date, datetime, timedelta
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
EXCEL_EPOCH = date(1899, 12, 30)
HEADER_FILL = PatternFill('solid', fgColor='DDEBF7')

REQUIREMENT_HEADERS = ['No', 'Code', 'Business unit', 'Category', 'Function', 'Requirement',
                       'Request date', 'Requester', 'Solution', 'Apply status', 'Remarks']
FIELD_ISSUE_HEADERS = ['Code', 'Business unit', 'Category', 'Title', 'Description', 'Registered date',
                       'Issuer', 'Requirement code', 'Assignee', 'Status', 'Target date',
                       'Completed date', 'Proposed solution', 'Final solution', 'Remarks']

APPLY_STATUS_WORDS = {
    'REVIEWING': ('검토', '검토중', 'REVIEWING'),
    'APPROVED': ('승인', 'APPROVED'),
    'REJECTED': ('N', 'NO', '미적용', '거절', 'REJECTED'),
    'IN_DEVELOPMENT': ('개발', '개발중', 'IN_DEVELOPMENT'),
    'APPLIED': ('Y', 'YES', '적용', 'APPLIED'),
    'HOLD': ('보류', 'HOLD'),
}
FIELD_ISSUE_STATUS_WORDS = {
    'OPEN': ('발견', 'OPEN', '오픈'),
    'IN_PROGRESS': ('수정중', '수정 중', 'IN_PROGRESS', 'PENDING', '대기'),
    'RESOLVED': ('해결', 'RESOLVED'),
    'WONT_FIX': ('수정안함', '수정 안함', 'WONT_FIX', 'WONTFIX'),
    'CLOSED': ('완료', 'CLOSED', 'COMPLETED', 'DONE'),
}


class ExcelError(ValueError):
    pass

class RowError(ValueError):
    pass


def _lookup(words, default):
    index = {w: status for status, tokens in words.items() for w in tokens}
    def parse(value):
        if value is None:
            return default
        token = str(value).strip().upper()
        return index.get(token, default)
    return parse

parse_apply_status = _lookup(APPLY_STATUS_WORDS, 'REVIEWING')
parse_field_issue_status = _lookup(FIELD_ISSUE_STATUS_WORDS, 'OPEN')


def cell_text(value):
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None

def cell_date(value):
    """Date from a datetime cell, an Excel serial number or a date string."""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        try:
            return EXCEL_EPOCH + timedelta(days=int(value))
        except (OverflowError, ValueError):
            raise RowError(f'invalid date serial: {value}')
    text = str(value).strip()
    for fmt in ('%Y-%m-%d', '%Y/%m/%d', '%Y.%m.%d', '%Y-%m-%d %H:%M:%S'):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None

def _trim(row):
    cells = list(row)
    while cells and cells[-1] in (None, ''):
        cells.pop()
    return cells

def read_rows(stream, sheet_name=None, max_rows=None):
    """Yield ``(row_number, cells)`` for every row after the header.

    Trailing empty cells are dropped so ``len(cells)`` is the number of
    populated columns.
    """
    try:
        wb = load_workbook(stream, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise ExcelError(f'unreadable workbook: {exc}')
    ws = wb[sheet_name] if sheet_name and sheet_name in wb.sheetnames else wb.worksheets[0]
    rows = []
    for number, row in enumerate(ws.iter_rows(values_only=True), start=1):
        if number == 1:
            continue
        rows.append((number, _trim(row)))
        if max_rows and len(rows) > max_rows:
            wb.close()
            raise ExcelError(f'too many rows (limit {max_rows})')
    wb.close()
    if not rows:
        raise ExcelError('no data rows below the header')
    return rows

def _cell(cells, index):
    return cells[index] if index < len(cells) else None


def parse_requirement_row(cells):
    if len(cells) < 6:
        raise RowError(f'not enough columns ({len(cells)}, need at least 6)')
    data = {
        'code': cell_text(_cell(cells, 1)),
        'business_unit': cell_text(_cell(cells, 2)),
        'category': cell_text(_cell(cells, 3)),
        'function_name': cell_text(_cell(cells, 4)),
        'content': cell_text(_cell(cells, 5)),
        'request_date': cell_date(_cell(cells, 6)),
        'requester': cell_text(_cell(cells, 7)),
        'solution': cell_text(_cell(cells, 8)),
        'apply_status': parse_apply_status(_cell(cells, 9)),
        'remarks': cell_text(_cell(cells, 10)),
    }
    if not data['business_unit'] or not data['function_name'] or not data['content']:
        raise RowError('missing required value (business unit, function, requirement)')
    return data

def parse_field_issue_row(cells):
    if len(cells) < 4:
        raise RowError(f'not enough columns ({len(cells)}, need at least 4)')
    data = {
        'code': cell_text(_cell(cells, 0)),
        'business_unit': cell_text(_cell(cells, 1)),
        'category': cell_text(_cell(cells, 2)),
        'title': cell_text(_cell(cells, 3)),
        'description': cell_text(_cell(cells, 4)),
        'registered_date': cell_date(_cell(cells, 5)),
        'issuer': cell_text(_cell(cells, 6)),
        'requirement_code': cell_text(_cell(cells, 7)),
        'assignee': cell_text(_cell(cells, 8)),
        'status': parse_field_issue_status(_cell(cells, 9)),
        'target_date': cell_date(_cell(cells, 10)),
        'completed_date': cell_date(_cell(cells, 11)),
        'proposed_solution': cell_text(_cell(cells, 12)),
        'final_solution': cell_text(_cell(cells, 13)),
        'remarks': cell_text(_cell(cells, 14)),
    }
    if not data['business_unit'] or not data['title']:
        raise RowError('missing required value (business unit, title)')
    return data


def build_workbook(title, headers, rows, widths=None):
    """Single-sheet xlsx as a BytesIO ready for ``send_file``."""
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.fill = HEADER_FILL
    for row in rows:
        ws.append(list(row))
    for idx, header in enumerate(headers, start=1):
        width = (widths or {}).get(header) or max(10, len(str(header)) + 4)
        ws.column_dimensions[get_column_letter(idx)].width = width
    ws.freeze_panes = 'A2'
    bio = io.BytesIO()
    wb.save(bio)
    bio.seek(0)
    return bio
