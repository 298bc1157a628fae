from distrifin.models import AuditLog
from sqlalchemy import desc
import logging

logger = logging.getLogger(__name__)


class LogError(Exception):
    """Custom exception for audit log queries"""
    pass


def serialize_log(log):
    return {
        'log_id': str(log.id),
        'timestamp': log.timestamp,
        'action': log.action,
        'schema_version': log.schema_version,
        'performed_by': log.performed_by,
        'user_name': log.user_name,
        'details': log.details,
        'ip_address': log.ip_address,
    }


def get_all_logs(action=None, limit=None):
    try:
        query = AuditLog.query
        if action:
            query = query.filter(AuditLog.action == action.upper())
        query = query.order_by(desc(AuditLog.timestamp))
        if limit:
            query = query.limit(limit)
        return [serialize_log(log) for log in query.all()]
    except Exception as e:
        logger.error(f"Error getting audit logs: {str(e)}")
        raise LogError("Failed to retrieve audit logs")


def get_action_types():
    return sorted(row[0] for row in AuditLog.query.with_entities(AuditLog.action).distinct().all())
