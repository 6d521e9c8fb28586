from decimal import Decimal

import openpyxl

from sales_export.backend.aggregator import LineItem
from sales_export.backend.services import DataSourceError


def _csrf(client, auth_headers):
    return client.get('/api/csrf-token', headers=auth_headers).get_json()['csrf_token']


def test_health_check_is_public(client):
    response = client.get('/api/health')

    assert response.status_code == 200
    assert response.get_json()['status'] == 'ok'


def test_admin_routes_require_auth(client):
    for path in ['/', '/api/settings', '/api/files', '/api/csrf-token']:
        response = client.get(path)
        assert response.status_code == 401
        assert 'Basic' in response.headers['WWW-Authenticate']


def test_wrong_password_is_rejected(client):
    import base64
    token = base64.b64encode(b'admin:wrong').decode('ascii')

    response = client.get('/api/files', headers={'Authorization': f'Basic {token}'})

    assert response.status_code == 401


def test_settings_round_trip(client, auth_headers, settings_store):
    response = client.post('/api/settings', json={'debug': True, 'output_dir': 'daily'},
                           headers=auth_headers)

    assert response.status_code == 200
    assert settings_store.load().output_dir == 'daily'
    data = client.get('/api/settings', headers=auth_headers).get_json()['settings']
    assert data['debug'] is True
    assert data['output_dir'] == 'daily'


def test_invalid_settings_return_400(client, auth_headers):
    response = client.post('/api/settings', json={'debug': 'sometimes'}, headers=auth_headers)

    assert response.status_code == 400
    assert response.get_json()['status'] == 'error'


def test_settings_form_redirects_to_admin_page(client, auth_headers, settings_store):
    response = client.post('/api/settings', data={'output_dir': 'monthly', 'debug': '1'},
                           headers=auth_headers)

    assert response.status_code == 302
    assert settings_store.load().debug is True
    assert settings_store.load().output_dir == 'monthly'


def test_list_files_with_missing_directory(client, auth_headers, settings_store):
    settings_store.update(output_dir='not-created')

    data = client.get('/api/files', headers=auth_headers).get_json()

    assert data['files'] == []
    assert data['output_dir'].endswith('not-created')


def test_force_execution_writes_file(client, auth_headers, fake_source, export_base_dir,
                                     make_order, make_item):
    fake_source.orders = [make_order(items=[make_item(quantity=2, subtotal='18')])]

    response = client.post('/api/force-execution', headers=auth_headers, json={
        'date_completed': '2024-05-01', 'csrf_token': _csrf(client, auth_headers)
    })

    assert response.status_code == 200
    assert response.get_json()['output_file'] == '2024-05-01.xlsx'
    assert fake_source.calls == [('2024-05-01', 'completed', -1)]
    wb = openpyxl.load_workbook(export_base_dir / '2024-05-01.xlsx')
    assert wb['Orders']['E2'].value == 'yes'

    files = client.get('/api/files', headers=auth_headers).get_json()['files']
    assert files == ['2024-05-01.xlsx']


def test_force_execution_requires_csrf_token(client, auth_headers, fake_source):
    response = client.post('/api/force-execution', headers=auth_headers,
                           json={'date_completed': '2024-05-01', 'csrf_token': 'forged'})

    assert response.status_code == 403
    assert fake_source.calls == []


def test_force_execution_requires_date(client, auth_headers):
    response = client.post('/api/force-execution', headers=auth_headers,
                           json={'csrf_token': _csrf(client, auth_headers)})

    assert response.status_code == 400


def test_force_execution_rejects_malformed_date(client, auth_headers, fake_source):
    response = client.post('/api/force-execution', headers=auth_headers, json={
        'date_completed': '../../etc', 'csrf_token': _csrf(client, auth_headers)
    })

    assert response.status_code == 400
    assert fake_source.calls == []


def test_force_execution_reports_data_source_error(client, auth_headers, fake_source):
    fake_source.error = DataSourceError('shop offline')

    response = client.post('/api/force-execution', headers=auth_headers, json={
        'date_completed': '2024-05-01', 'csrf_token': _csrf(client, auth_headers)
    })

    assert response.status_code == 502
    assert 'shop offline' in response.get_json()['message']


def test_download_uses_basename_only(client, auth_headers, export_base_dir):
    (export_base_dir / '2024-05-01.xlsx').write_bytes(b'PK-data')

    response = client.get('/api/files/download?file=../../2024-05-01.xlsx', headers=auth_headers)

    assert response.status_code == 200
    assert response.data == b'PK-data'
    assert '2024-05-01.xlsx' in response.headers['Content-Disposition']


def test_download_missing_file_returns_404(client, auth_headers):
    response = client.get('/api/files/download?file=nope.xlsx', headers=auth_headers)

    assert response.status_code == 404


def test_admin_page_lists_files(client, auth_headers, export_base_dir):
    (export_base_dir / '2024-05-01.xlsx').write_bytes(b'x')

    response = client.get('/', headers=auth_headers)

    assert response.status_code == 200
    body = response.get_data(as_text=True)
    assert '2024-05-01.xlsx' in body
    assert 'name="csrf_token"' in body


def test_force_execution_reports_missing_product_as_json(client, auth_headers, fake_source,
                                                         make_order):
    ghost = LineItem(product_id=99, name='Ghost', quantity=1, subtotal=Decimal('5'))
    fake_source.orders = [make_order(items=[ghost])]

    response = client.post('/api/force-execution', headers=auth_headers, json={
        'date_completed': '2024-05-01', 'csrf_token': _csrf(client, auth_headers)
    })

    assert response.status_code == 500
    data = response.get_json()
    assert data['status'] == 'error'
    assert 'Ghost' in data['message']
