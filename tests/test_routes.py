"""
HTTP layer: authentication, page gating and the main workflows end to end.
"""

import io

from distrifin import db, mail
from distrifin.auth import RESET_SALT, _serializer
from distrifin.models import AuditLog, Collection, LedgerEntry, User
from distrifin.routes.event_routes import format_event

PASSWORD = 'secret-pass'


def record_cheque(client, headers, cheque_payload, **kwargs):
    return client.post('/collections/add', json=cheque_payload(**kwargs), headers=headers)


class TestAuth:

    def test_login_returns_token_and_audits(self, client, users):
        response = client.post('/auth/login', json={'email': 'Collector@Example.com', 'password': PASSWORD})

        assert response.status_code == 200
        body = response.get_json()
        assert body['role'] == 'COLLECTOR'
        assert body['token']
        assert AuditLog.query.filter_by(action='LOGIN').count() == 1

    def test_bad_password_rejected(self, client, users):
        response = client.post('/auth/login', json={'email': 'collector@example.com', 'password': 'wrong'})
        assert response.status_code == 401

    def test_inactive_user_cannot_login(self, client, users):
        users['collector'].is_active = False
        db.session.commit()
        response = client.post('/auth/login', json={'email': 'collector@example.com', 'password': PASSWORD})
        assert response.status_code == 401

    def test_me_lists_pages_and_capability(self, client, auth_headers):
        body = client.get('/auth/me', headers=auth_headers('accounts')).get_json()
        assert body['pages'] == ['CHEQUES', 'LEDGER', 'RECONCILIATION', 'REPORTS']
        assert body['can_record_collection'] is False

    def test_logout_audited(self, client, auth_headers):
        assert client.post('/auth/logout', headers=auth_headers('admin')).status_code == 200
        assert AuditLog.query.filter_by(action='LOGOUT').count() == 1

    def test_forgot_and_reset_password(self, client, users):
        with mail.record_messages() as outbox:
            response = client.post('/auth/forgot-password', json={'email': 'collector@example.com'})
        assert response.status_code == 200
        assert len(outbox) == 1
        assert outbox[0].recipients == ['collector@example.com']

        token = _serializer().dumps('collector@example.com', salt=RESET_SALT)
        response = client.post(f'/auth/reset-password/{token}', json={'password': 'brand-new-pass'})
        assert response.status_code == 200
        assert User.query.filter_by(email='collector@example.com').one().check_password('brand-new-pass')

    def test_forgot_password_unknown_email(self, client, users):
        assert client.post('/auth/forgot-password', json={'email': 'ghost@example.com'}).status_code == 404

    def test_reset_with_tampered_token(self, client, users):
        response = client.post('/auth/reset-password/not-a-token', json={'password': 'brand-new-pass'})
        assert response.status_code == 400

    def test_reset_password_too_short(self, client, users):
        token = _serializer().dumps('collector@example.com', salt=RESET_SALT)
        response = client.post(f'/auth/reset-password/{token}', json={'password': '123'})
        assert response.status_code == 400


class TestCollectionsApi:

    def test_collector_records_cheque(self, client, auth_headers, customers, cheque_payload):
        response = record_cheque(client, auth_headers('collector'), cheque_payload)

        assert response.status_code == 201
        body = response.get_json()['collection']
        assert body['status'] == 'Pending'
        assert body['customer_name'] == 'Acme Store'
        assert LedgerEntry.query.filter_by(reference_id=body['collection_id']).count() == 1

    def test_accounts_cannot_record(self, client, auth_headers, customers, cheque_payload):
        assert record_cheque(client, auth_headers('accounts'), cheque_payload).status_code == 403
        assert Collection.query.count() == 0

    def test_validation_error_is_400(self, client, auth_headers, customers):
        response = client.post('/collections/add', headers=auth_headers('collector'),
                               json={'customer_id': 'C1', 'payment_type': 'Cash', 'amount': 0})
        assert response.status_code == 400
        assert Collection.query.count() == 0

    def test_missing_token_is_401(self, client, customers, cheque_payload):
        assert client.post('/collections/add', json=cheque_payload()).status_code == 401

    def test_scan_cheque_requires_image(self, client, auth_headers, settings_row):
        assert client.post('/collections/scan-cheque', headers=auth_headers('collector')).status_code == 400


class TestReconciliationApi:

    def test_match_then_confirm(self, client, auth_headers, customers, cheque_payload):
        record_cheque(client, auth_headers('collector'), cheque_payload, cheque_number='001', amount=5000)
        record_cheque(client, auth_headers('collector'), cheque_payload, cheque_number='002', amount=750)
        headers = auth_headers('accounts')

        plan = client.post('/reconciliation/match', headers=headers, json={'entries': [
            {'cheque_number': '001', 'amount': '5000', 'status': 'CLEARED'},
            {'cheque_number': '999', 'amount': '10', 'status': 'RETURNED'},
        ]}).get_json()

        assert [m['cheque_number'] for m in plan['matches']] == ['001']
        assert plan['matches'][0]['action'] == 'MOVE TO REALIZED'
        assert [c['cheque_number'] for c in plan['unmatched']] == ['002']

        confirm = client.post('/reconciliation/confirm', headers=headers, json={
            'matches': [{'collection_id': m['collection_id'], 'entry': m['entry']} for m in plan['matches']]
        })
        assert confirm.status_code == 200
        assert confirm.get_json()['total'] == 1
        assert Collection.query.filter_by(cheque_number='001').one().status == 'Realized'
        assert AuditLog.query.filter_by(action='RECONCILE').count() == 1

    def test_match_accepts_statement_upload(self, client, auth_headers, customers, cheque_payload):
        record_cheque(client, auth_headers('collector'), cheque_payload, cheque_number='001', amount=5000)
        statement = b"Date,Cheque Number,Amount,Status\n2025-03-02,001,5000.00,Returned\n"

        response = client.post('/reconciliation/match', headers=auth_headers('accounts'),
                               data={'file': (io.BytesIO(statement), 'statement.csv')},
                               content_type='multipart/form-data')

        assert response.status_code == 200
        assert response.get_json()['matches'][0]['action'] == 'MARK AS RETURNED'

    def test_confirm_unknown_collection_conflicts(self, client, auth_headers, customers):
        response = client.post('/reconciliation/confirm', headers=auth_headers('accounts'), json={
            'matches': [{'collection_id': 'missing', 'entry': {'cheque_number': '1', 'amount': 1, 'status': 'CLEARED'}}]
        })
        assert response.status_code == 409

    def test_collector_cannot_reconcile(self, client, auth_headers):
        assert client.get('/reconciliation/pending', headers=auth_headers('collector')).status_code == 403


class TestReportsApi:

    def test_daily_report_json_and_xlsx(self, client, auth_headers, customers, cheque_payload):
        record_cheque(client, auth_headers('collector'), cheque_payload)
        headers = auth_headers('accounts')

        rows = client.get('/reports/daily', headers=headers).get_json()
        assert len(rows) == 1

        export = client.get('/reports/daily?format=xlsx', headers=headers)
        assert export.status_code == 200
        assert export.mimetype == 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        assert export.data[:2] == b'PK'

    def test_unknown_sort_key_is_400(self, client, auth_headers):
        response = client.get('/reports/daily?sort_key=password', headers=auth_headers('accounts'))
        assert response.status_code == 400

    def test_deposit_ready_register(self, client, auth_headers, customers, cheque_payload):
        record_cheque(client, auth_headers('collector'), cheque_payload)
        rows = client.get('/cheques/list?filter=DEPOSIT_READY', headers=auth_headers('accounts')).get_json()
        assert [r['status'] for r in rows] == ['Pending']


class TestAdministration:

    def test_settings_update_audited(self, client, auth_headers, settings_row):
        response = client.put('/settings/update', headers=auth_headers('admin'),
                              json={'default_credit_period': 45, 'enable_cheque_camera': False})

        assert response.status_code == 200
        assert response.get_json()['settings']['default_credit_period'] == 45
        assert AuditLog.query.filter_by(action='UPDATE_SETTINGS').count() == 1

    def test_negative_credit_period_rejected(self, client, auth_headers, settings_row):
        response = client.put('/settings/update', headers=auth_headers('admin'), json={'default_credit_period': -1})
        assert response.status_code == 400

    def test_settings_page_admin_only(self, client, auth_headers, settings_row):
        response = client.put('/settings/update', headers=auth_headers('accounts'), json={'country': 'LK'})
        assert response.status_code == 403

    def test_add_user_sends_setup_email(self, client, auth_headers):
        with mail.record_messages() as outbox:
            response = client.post('/users/add', headers=auth_headers('admin'),
                                   json={'name': 'New Person', 'email': 'new@example.com', 'role': 'ACCOUNTS'})

        assert response.status_code == 201
        assert len(outbox) == 1
        log = AuditLog.query.filter_by(action='CREATE_USER').one()
        assert 'setup email sent' in log.details

    def test_duplicate_user_email_rejected(self, client, auth_headers):
        response = client.post('/users/add', headers=auth_headers('admin'),
                               json={'name': 'Copy', 'email': 'collector@example.com'})
        assert response.status_code == 400

    def test_ledger_health_reports_clean_ledger(self, client, auth_headers, customers, cheque_payload):
        record_cheque(client, auth_headers('collector'), cheque_payload)
        body = client.get('/ledger/health', headers=auth_headers('accounts')).get_json()
        assert body == {'ok': True, 'violations': []}

    def test_customer_import_upload(self, client, auth_headers, routes, settings_row):
        csv_text = b"Customer Name,Business Name,Phone,Route\nAmy Lee,Lee Stores,0770000001,North Loop\n"
        response = client.post('/customers/import', headers=auth_headers('collector'),
                               data={'file': (io.BytesIO(csv_text), 'customers.csv')},
                               content_type='multipart/form-data')

        assert response.status_code == 201
        assert response.get_json()['count'] == 1

    def test_logs_filtered_by_action(self, client, auth_headers, users):
        client.post('/auth/login', json={'email': 'admin@example.com', 'password': PASSWORD})
        rows = client.get('/logs/list?action=login', headers=auth_headers('admin')).get_json()
        assert [r['action'] for r in rows] == ['LOGIN']


def test_format_event_is_server_sent_event():
    assert format_event('collections', 'added', 'K1') == (
        'event: collections\ndata: {"collection": "collections", "type": "added", "id": "K1"}\n\n'
    )


class TestRequestShapes:

    def test_confirm_with_other_cheque_entry_conflicts(self, client, auth_headers, customers, cheque_payload):
        created = record_cheque(client, auth_headers('collector'), cheque_payload,
                                cheque_number='001', amount=5000).get_json()['collection']

        response = client.post('/reconciliation/confirm', headers=auth_headers('accounts'), json={
            'matches': [{'collection_id': created['collection_id'],
                         'entry': {'cheque_number': '999999', 'amount': 1, 'status': 'CLEARED'}}]
        })

        assert response.status_code == 409
        assert Collection.query.get(created['collection_id']).status == 'Pending'
        assert LedgerEntry.query.filter_by(entry_type='REALIZED').count() == 0

    def test_collection_body_must_be_object(self, client, auth_headers, customers):
        response = client.post('/collections/add', headers=auth_headers('collector'), json=[{'customer_id': 'C1'}])
        assert response.status_code == 400
        assert Collection.query.count() == 0

    def test_match_body_must_be_object(self, client, auth_headers):
        response = client.post('/reconciliation/match', headers=auth_headers('accounts'), json=['001'])
        assert response.status_code == 400

    def test_match_entries_must_be_objects(self, client, auth_headers):
        response = client.post('/reconciliation/match', headers=auth_headers('accounts'),
                               json={'entries': ['001,5000,CLEARED']})
        assert response.status_code == 400

    def test_confirm_matches_must_be_objects(self, client, auth_headers):
        response = client.post('/reconciliation/confirm', headers=auth_headers('accounts'),
                               json={'matches': ['K1']})
        assert response.status_code == 400


class TestCollectionWarnings:

    def test_failed_ledger_posting_surfaced_in_response(self, client, auth_headers, customers, monkeypatch):
        from distrifin.crud import ledger_crud

        def broken_entry(collection, customer, collector_name, entry_date=None):
            return LedgerEntry(entry_type='COLLECTION', date=collection.collection_date, description=None,
                               reference_id=str(collection.id), debit_account='CashInHand',
                               credit_account='Customer:C1', amount=collection.amount)

        monkeypatch.setattr(ledger_crud, 'build_collection_entry', broken_entry)
        response = client.post('/collections/add', headers=auth_headers('collector'),
                               json={'customer_id': 'C1', 'payment_type': 'Cash', 'amount': 100})

        assert response.status_code == 201
        body = response.get_json()
        assert body['ledger_posted'] is False
        assert body['warnings'] == ['Collection saved but its ledger entry could not be posted.']
        assert LedgerEntry.query.count() == 0

    def test_clean_recording_reports_posting(self, client, auth_headers, customers):
        body = client.post('/collections/add', headers=auth_headers('collector'),
                           json={'customer_id': 'C1', 'payment_type': 'Cash', 'amount': 100}).get_json()
        assert body['ledger_posted'] is True
        assert body['warnings'] == []


def test_route_report_skips_soft_deleted_customers(client, auth_headers, customers):
    client.delete('/customers/delete/C2', headers=auth_headers('admin'))

    rows = client.get('/reports/routes', headers=auth_headers('accounts')).get_json()

    by_route = {r['route_id']: r for r in rows}
    assert by_route['R1']['customer_count'] == 1
    assert by_route['R2']['customer_count'] == 1
