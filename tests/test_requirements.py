import io
from openpyxl import Workbook, load_workbook
from wbsmaster.excel import REQUIREMENT_HEADERS


def _create(client, project_id, **extra):
    payload = {'project_id': project_id, 'business_unit': 'Sales', 'function_name': 'Login',
               'content': 'Support SSO'}
    payload.update(extra)
    return client.post('/api/customer-requirements', json=payload)

def _upload(client, project_id, rows, **form):
    wb = Workbook()
    ws = wb.active
    ws.append(REQUIREMENT_HEADERS)
    for row in rows:
        ws.append(row)
    bio = io.BytesIO()
    wb.save(bio)
    bio.seek(0)
    data = {'file': (bio, 'requirements.xlsx'), 'project_id': str(project_id), **form}
    return client.post('/api/customer-requirements/import', data=data, content_type='multipart/form-data')

def test_create_assigns_sequential_codes(auth_client, project_id):
    first = _create(auth_client, project_id).get_json()['customer_requirement']
    second = _create(auth_client, project_id).get_json()['customer_requirement']
    assert (first['code'], first['sequence']) == ('RQIT_00001', 1)
    assert second['code'] == 'RQIT_00002'
    assert first['apply_status'] == 'REVIEWING'
    dup = _create(auth_client, project_id, code='RQIT_00001')
    assert dup.status_code == 409

def test_create_requires_fields(auth_client, project_id):
    resp = auth_client.post('/api/customer-requirements', json={'project_id': project_id, 'business_unit': 'Sales'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'function_name is required'
    resp = _create(auth_client, 9999)
    assert resp.status_code == 404

def test_create_notifies_other_members(login, auth_client, project_id, member):
    _create(auth_client, project_id)
    other = login('member@example.com', 'member1')
    notes = other.get('/api/notifications').get_json()
    assert notes['unread_count'] == 1
    assert notes['notifications'][0]['type'] == 'CUSTOMER_REQUIREMENT'
    assert auth_client.get('/api/notifications').get_json()['unread_count'] == 0

def test_filters_search_and_pagination(auth_client, project_id):
    _create(auth_client, project_id, requester='Kim')
    _create(auth_client, project_id, business_unit='Ops', function_name='Billing', apply_status='applied')
    _create(auth_client, project_id, business_unit='Ops', content='Monthly report')
    base = f'/api/customer-requirements?project_id={project_id}'
    assert len(auth_client.get(f'{base}&business_unit=Ops').get_json()['customer_requirements']) == 2
    applied = auth_client.get(f'{base}&apply_status=APPLIED').get_json()['customer_requirements']
    assert [r['function_name'] for r in applied] == ['Billing']
    found = auth_client.get(f'{base}&search=kim').get_json()['customer_requirements']
    assert [r['code'] for r in found] == ['RQIT_00001']
    page = auth_client.get(f'{base}&page=2&page_size=2').get_json()['customer_requirements']
    assert page['total'] == 3
    assert [r['code'] for r in page['items']] == ['RQIT_00003']

def test_update_and_delete(auth_client, project_id):
    rid = _create(auth_client, project_id).get_json()['customer_requirement']['id']
    _create(auth_client, project_id)
    resp = auth_client.patch(f'/api/customer-requirements/{rid}', json={'apply_status': 'approved',
                                                                       'solution': 'Use OIDC'})
    body = resp.get_json()['customer_requirement']
    assert (body['apply_status'], body['solution']) == ('APPROVED', 'Use OIDC')
    clash = auth_client.patch(f'/api/customer-requirements/{rid}', json={'code': 'RQIT_00002'})
    assert clash.status_code == 409
    assert auth_client.delete(f'/api/customer-requirements/{rid}').status_code == 200
    assert auth_client.get(f'/api/customer-requirements/{rid}').status_code == 404

def test_stats(auth_client, project_id):
    _create(auth_client, project_id)
    _create(auth_client, project_id, business_unit='Ops', apply_status='HOLD')
    stats = auth_client.get(f'/api/customer-requirements/stats?project_id={project_id}').get_json()
    assert stats['total'] == 2
    assert stats['by_apply_status']['HOLD'] == 1
    assert stats['by_apply_status']['APPLIED'] == 0
    assert stats['by_business_unit'] == {'Sales': 1, 'Ops': 1}

def test_import_reports_skipped_rows(auth_client, project_id):
    rows = [
        [1, 'RQIT_00010', 'Sales', 'UI', 'Login', 'SSO support', '2024-03-01', 'Kim', None, 'Y', None],
        ['short', 'row'],
        [3, None, 'Sales', None, None, 'no function name'],
        [4, 'RQIT_00010', 'Sales', 'UI', 'Login', 'Duplicate code'],
        [5, None, 'Ops', 'Batch', 'Nightly job', 'Run at 2am', 45352, None, None, '보류'],
    ]
    resp = _upload(auth_client, project_id, rows)
    assert resp.status_code == 200
    stats = resp.get_json()['stats']
    assert stats['total'] == 5
    assert stats['created'] == 2
    assert stats['skipped'] == 3
    assert stats['errors'][0].startswith('row 3:')
    assert 'duplicate code' in stats['errors'][2]
    items = auth_client.get(f'/api/customer-requirements?project_id={project_id}').get_json()['customer_requirements']
    by_code = {i['code']: i for i in items}
    assert by_code['RQIT_00010']['apply_status'] == 'APPLIED'
    assert by_code['RQIT_00010']['request_date'] == '2024-03-01'
    generated = by_code['RQIT_00002']
    assert generated['apply_status'] == 'HOLD'
    assert generated['request_date'] == '2024-03-01'

def test_import_skips_out_of_range_date_serial(auth_client, project_id):
    rows = [
        [1, 'R1', 'SMT', 'Checkout', 'Refund', 'Partial refunds', 99999999],
        [2, None, 'Ops', 'Batch', 'Nightly job', 'Run at 2am', 45352],
    ]
    resp = _upload(auth_client, project_id, rows)
    assert resp.status_code == 200
    stats = resp.get_json()['stats']
    assert (stats['total'], stats['created'], stats['skipped']) == (2, 1, 1)
    assert stats['errors'][0].startswith('row 2:')
    assert 'invalid date serial' in stats['errors'][0]

def test_import_clear_existing(auth_client, project_id):
    _create(auth_client, project_id, code='OLD-1')
    rows = [[1, None, 'Sales', None, 'Login', 'SSO']]
    stats = _upload(auth_client, project_id, rows, clear_existing='true').get_json()['stats']
    assert stats['created'] == 1
    items = auth_client.get(f'/api/customer-requirements?project_id={project_id}').get_json()['customer_requirements']
    assert [i['code'] for i in items] == ['RQIT_00001']

def test_import_rejects_bad_uploads(auth_client, project_id):
    resp = auth_client.post('/api/customer-requirements/import', data={'project_id': str(project_id)},
                            content_type='multipart/form-data')
    assert resp.status_code == 400
    resp = auth_client.post('/api/customer-requirements/import',
                            data={'file': (io.BytesIO(b'a,b'), 'data.csv'), 'project_id': str(project_id)},
                            content_type='multipart/form-data')
    assert resp.get_json()['error'] == 'only .xlsx files are accepted'
    assert _upload(auth_client, project_id, []).status_code == 400

def test_export(auth_client, project_id):
    _create(auth_client, project_id)
    resp = auth_client.get(f'/api/customer-requirements/export?project_id={project_id}')
    assert resp.status_code == 200
    assert resp.mimetype.endswith('spreadsheetml.sheet')
    ws = load_workbook(io.BytesIO(resp.data)).active
    assert [c.value for c in ws[1]] == REQUIREMENT_HEADERS
    assert ws['B2'].value == 'RQIT_00001'
    assert ws['A1'].font.bold
