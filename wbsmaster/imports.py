import logging
from flask import request, current_app
from wbsmaster import excel
from wbsmaster.errors import ApiError
from wbsmaster.helpers import get_project, parse_bool
from wbsmaster.models import db

logger = logging.getLogger(__name__)


def next_sequence(model, project_id):
    current = db.session.query(db.func.max(model.sequence)).filter(model.project_id == project_id).scalar()
    return (current or 0) + 1

def uploaded_rows(sheet_name=None):
    """Project, clear flag and parsed rows of a multipart xlsx upload."""
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        raise ApiError('file is required', 400)
    if not upload.filename.lower().endswith('.xlsx'):
        raise ApiError('only .xlsx files are accepted', 400)
    project = get_project(request.form.get('project_id'))
    clear_existing = parse_bool(request.form.get('clear_existing'))
    rows = excel.read_rows(upload.stream, sheet_name=sheet_name,
                           max_rows=current_app.config['MAX_IMPORT_ROWS'])
    return project, clear_existing, rows

def import_records(model, project, rows, parse_row, code_format, clear_existing=False):
    """Insert one ``model`` per parseable row; returns ``{total, created, skipped, errors}``.

    Blank rows are ignored; short rows, rows missing required values and
    duplicate codes are skipped and reported by row number.
    """
    if clear_existing:
        model.query.filter_by(project_id=project.id).delete(synchronize_session=False)
    stats = {'total': 0, 'created': 0, 'skipped': 0, 'errors': []}
    sequence = next_sequence(model, project.id)
    existing = {code for (code,) in db.session.query(model.code).filter(model.project_id == project.id)}
    for number, cells in rows:
        if not any(c not in (None, '') for c in cells):
            continue
        stats['total'] += 1
        try:
            fields = parse_row(cells)
        except excel.RowError as exc:
            stats['skipped'] += 1
            stats['errors'].append(f'row {number}: {exc}')
            continue
        code = fields.pop('code') or code_format % sequence
        if code in existing:
            stats['skipped'] += 1
            stats['errors'].append(f'row {number}: duplicate code ({code})')
            continue
        db.session.add(model(project_id=project.id, sequence=sequence, code=code, **fields))
        existing.add(code)
        sequence += 1
        stats['created'] += 1
    db.session.commit()
    logger.info('imported %s into project %s: %d created, %d skipped',
                model.__tablename__, project.id, stats['created'], stats['skipped'])
    return stats
