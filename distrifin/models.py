import enum
import uuid
from werkzeug.security import generate_password_hash, check_password_hash
from distrifin import db
from sqlalchemy.orm import relationship


class PaymentType(str, enum.Enum):
    CASH = 'Cash'
    QR = 'QR'
    CARD = 'Card'
    CHEQUE = 'Cheque'

class CollectionStatus(str, enum.Enum):
    RECEIVED = 'Received'
    PENDING = 'Pending'
    REALIZED = 'Realized'
    RETURNED = 'Returned'

class CustomerStatus(str, enum.Enum):
    ACTIVE = 'Active'
    INACTIVE = 'Inactive'

class UserRole(str, enum.Enum):
    ADMIN = 'ADMIN'
    ACCOUNTS = 'ACCOUNTS'
    COLLECTOR = 'COLLECTOR'

class LedgerEntryType(str, enum.Enum):
    COLLECTION = 'COLLECTION'
    REALIZED = 'REALIZED'
    RETURNED = 'RETURNED'

LEDGER_SCHEMA_VERSION = 1
AUDIT_SCHEMA_VERSION = 1


def new_id():
    return str(uuid.uuid4())


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.String(64), primary_key=True, default=new_id)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=UserRole.COLLECTOR.value)
    permissions = db.Column(db.JSON)  # Explicit page ids, only honoured for non-admins
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.TIMESTAMP(timezone=True), server_default=db.func.current_timestamp())
    updated_at = db.Column(db.TIMESTAMP(timezone=True), server_default=db.func.current_timestamp(), onupdate=db.func.current_timestamp())

    def set_password(self, password):
        self.password = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password, password)


class Route(db.Model):
    __tablename__ = 'routes'
    id = db.Column(db.String(64), primary_key=True, default=new_id)
    route_name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(10), nullable=False, default=CustomerStatus.ACTIVE.value)
    created_at = db.Column(db.TIMESTAMP(timezone=True), server_default=db.func.current_timestamp())
    updated_at = db.Column(db.TIMESTAMP(timezone=True), server_default=db.func.current_timestamp(), onupdate=db.func.current_timestamp())


class Customer(db.Model):
    __tablename__ = 'customers'
    id = db.Column(db.String(64), primary_key=True, default=new_id)
    customer_name = db.Column(db.String(100), nullable=False)
    business_name = db.Column(db.String(150), nullable=False)
    address = db.Column(db.Text)
    business_address = db.Column(db.Text)
    phone_number = db.Column(db.String(30), nullable=False)
    whatsapp_number = db.Column(db.String(30))
    br_number = db.Column(db.String(50))
    nic = db.Column(db.String(20))
    date_of_birth = db.Column(db.String(10))
    location = db.Column(db.String(100), default='')  # GPS string
    # Plain string: imports may carry a route value that matches no Route
    route_id = db.Column(db.String(64), default='')
    credit_limit = db.Column(db.Numeric(15, 2), nullable=False, default=50000)
    credit_period_days = db.Column(db.Integer, nullable=False, default=30)
    status = db.Column(db.String(10), nullable=False, default=CustomerStatus.ACTIVE.value)
    created_by = db.Column(db.String(64))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.TIMESTAMP(timezone=True), server_default=db.func.current_timestamp())
    updated_at = db.Column(db.TIMESTAMP(timezone=True), server_default=db.func.current_timestamp(), onupdate=db.func.current_timestamp())

    collections = relationship('Collection', back_populates='customer', lazy='dynamic')


class Collection(db.Model):
    __tablename__ = 'collections'
    id = db.Column(db.String(64), primary_key=True, default=new_id)
    customer_id = db.Column(db.String(64), db.ForeignKey('customers.id'), nullable=False)
    payment_type = db.Column(db.String(10), nullable=False)
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    status = db.Column(db.String(10), nullable=False)
    cheque_number = db.Column(db.String(50))
    bank = db.Column(db.String(100))
    branch = db.Column(db.String(100))
    realize_date = db.Column(db.String(10))  # YYYY-MM-DD
    collection_date = db.Column(db.String(10), nullable=False)  # YYYY-MM-DD
    cheque_image = db.Column(db.Text)  # base64 JPEG
    created_by = db.Column(db.String(64))
    created_at = db.Column(db.TIMESTAMP(timezone=True), server_default=db.func.current_timestamp())
    updated_at = db.Column(db.TIMESTAMP(timezone=True), server_default=db.func.current_timestamp(), onupdate=db.func.current_timestamp())

    customer = relationship('Customer', back_populates='collections')


class LedgerEntry(db.Model):
    __tablename__ = 'ledger_entries'
    id = db.Column(db.String(64), primary_key=True, default=new_id)
    entry_type = db.Column(db.String(20), nullable=False)
    schema_version = db.Column(db.Integer, nullable=False, default=LEDGER_SCHEMA_VERSION)
    date = db.Column(db.String(10), nullable=False)
    description = db.Column(db.Text, nullable=False)
    reference_id = db.Column(db.String(64), nullable=False, index=True)
    collector = db.Column(db.String(100))
    debit_account = db.Column(db.String(100), nullable=False)
    credit_account = db.Column(db.String(100), nullable=False)
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    created_at = db.Column(db.TIMESTAMP(timezone=True), server_default=db.func.current_timestamp())


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'
    id = db.Column(db.String(64), primary_key=True, default=new_id)
    timestamp = db.Column(db.String(32), nullable=False)  # ISO-8601 UTC
    action = db.Column(db.String(50), nullable=False)
    schema_version = db.Column(db.Integer, nullable=False, default=AUDIT_SCHEMA_VERSION)
    performed_by = db.Column(db.String(64))
    user_name = db.Column(db.String(100))
    details = db.Column(db.Text)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.Text)


class GlobalSettings(db.Model):
    """Singleton settings row, always id=1"""
    __tablename__ = 'global_settings'
    id = db.Column(db.Integer, primary_key=True, default=1)
    default_credit_limit = db.Column(db.Numeric(15, 2), nullable=False, default=50000)
    default_credit_period = db.Column(db.Integer, nullable=False, default=30)
    enable_cheque_camera = db.Column(db.Boolean, nullable=False, default=True)
    currency_code = db.Column(db.String(3), nullable=False, default='USD')
    country = db.Column(db.String(100), nullable=False, default='')
    updated_at = db.Column(db.TIMESTAMP(timezone=True), server_default=db.func.current_timestamp(), onupdate=db.func.current_timestamp())
