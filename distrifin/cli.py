import click
from flask.cli import AppGroup
from sqlalchemy.exc import SQLAlchemyError

from distrifin import db
from distrifin.crud.settings_crud import DEFAULT_SETTINGS, SETTINGS_ID
from distrifin.models import AuditLog, Collection, GlobalSettings, LedgerEntry, User, UserRole
from distrifin.store import DataStore, DataStoreError
from distrifin.utils.invariants import check_audit_invariants, check_ledger_invariants

admin_cli = AppGroup('admin', help='DistriFin administration commands.')


@admin_cli.command('create-user')
@click.option('--name', required=True)
@click.option('--email', required=True)
@click.option('--role', type=click.Choice([r.value for r in UserRole]), default=UserRole.ADMIN.value)
@click.password_option()
def create_user(name, email, role, password):
    """Create a user directly, bypassing the setup e-mail."""
    email = email.strip().lower()
    if User.query.filter_by(email=email).first():
        raise click.ClickException(f"A user with email {email} already exists")
    user = User(name=name, email=email, role=role, is_active=True)
    user.set_password(password)
    try:
        DataStore().add(user)
    except DataStoreError as e:
        raise click.ClickException(f"Failed to create user: {e}")
    click.echo(f"Created {role} user {email}")


@admin_cli.command('init-settings')
def init_settings():
    """Write the default settings row if it is missing."""
    if GlobalSettings.query.get(SETTINGS_ID):
        click.echo("Settings already present")
        return
    DataStore().add(GlobalSettings(id=SETTINGS_ID, **DEFAULT_SETTINGS))
    click.echo("Default settings created")


@admin_cli.command('check-ledger')
def check_ledger():
    """Report every broken ledger or audit invariant."""
    try:
        violations = check_ledger_invariants(Collection.query.all(), LedgerEntry.query.all())
        violations += check_audit_invariants(AuditLog.query.order_by(AuditLog.timestamp).all())
    except SQLAlchemyError as e:
        db.session.rollback()
        raise click.ClickException(f"Database error: {e}")

    if not violations:
        click.echo("Ledger OK")
        return
    for v in violations:
        click.echo(f"[{v.rule}] {v.record_id}: {v.message}")
    raise click.ClickException(f"{len(violations)} invariant violations")
