# audit.py
import logging

import models

logger = logging.getLogger(__name__)


def log_audit(db, actor, type, tid, act, det=""):
    """Stage an audit row in the caller's transaction; it commits with the change it describes."""
    db.add(models.AuditLog(actor_id=actor, target_type=type, target_id=tid, action=act, details=det))
    logger.info("audit actor=%s %s#%s %s %s", actor, type, tid, act, det)


def recent(db, limit=100):
    return db.query(models.AuditLog).order_by(models.AuditLog.created_at.desc(), models.AuditLog.id.desc()).limit(limit).all()
