"""
flask admin commands.
"""

from distrifin.crud.settings_crud import SETTINGS_ID
from distrifin.models import GlobalSettings, LedgerEntry, User


def test_create_user(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=['admin', 'create-user', '--name', 'Root', '--email', 'Root@Example.com',
                                 '--password', 'pw-123456'])

    assert result.exit_code == 0, result.output
    user = User.query.filter_by(email='root@example.com').one()
    assert user.role == 'ADMIN'
    assert user.check_password('pw-123456')


def test_create_user_duplicate_email(app, users):
    runner = app.test_cli_runner()
    result = runner.invoke(args=['admin', 'create-user', '--name', 'Dup', '--email', 'admin@example.com',
                                 '--password', 'pw-123456'])
    assert result.exit_code != 0
    assert 'already exists' in result.output


def test_init_settings_is_idempotent(app):
    runner = app.test_cli_runner()
    assert 'created' in runner.invoke(args=['admin', 'init-settings']).output
    assert 'already present' in runner.invoke(args=['admin', 'init-settings']).output
    assert GlobalSettings.query.get(SETTINGS_ID).default_credit_period == 30


def test_check_ledger_reports_violations(app, customers, users, settings, today):
    from distrifin.crud.collection_crud import record_collection

    runner = app.test_cli_runner()
    record_collection({'customer_id': 'C1', 'payment_type': 'Cash', 'amount': 10},
                      settings, users['collector'], today=today)
    assert runner.invoke(args=['admin', 'check-ledger']).exit_code == 0

    entry = LedgerEntry.query.one()
    from distrifin.crud import ledger_crud
    ledger_crud.bulk_delete_ledger_entries([str(entry.id)], users['admin'], None, None)

    result = runner.invoke(args=['admin', 'check-ledger'])
    assert result.exit_code != 0
    assert 'single_collection_posting' in result.output
