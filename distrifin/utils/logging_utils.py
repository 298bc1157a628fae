from distrifin.models import AuditLog
from distrifin.store import DataStore
from distrifin.utils.date_utils import utc_timestamp

def log_action(current_user, action, details, ip_address=None, user_agent=None, store=None):
    log = AuditLog(
        timestamp=utc_timestamp(),
        action=action,
        performed_by=str(current_user.id) if current_user else None,
        user_name=current_user.name if current_user else 'System',
        details=details,
        ip_address=ip_address,
        user_agent=user_agent
    )
    (store or DataStore()).add(log)
    return log
