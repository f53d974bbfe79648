#!/usr/bin/env python3
"""
Expire stale trip invitations.

Marks pending invite notifications whose token has expired (or was replaced)
as expired, then deletes expired unused tokens. Safe to run repeatedly, e.g.
from cron once an hour.
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from datetime import datetime
from sqlalchemy.orm import Session
from travelnest.db.session import SessionLocal
from travelnest.services import inbox_notifier, token_issuer


def expire_invitations():
    db: Session = SessionLocal()
    try:
        now = datetime.utcnow()
        # Notifications first: they look up their token, which the purge deletes
        expired_notifications = inbox_notifier.expire_stale(db, now=now)
        purged_tokens = token_issuer.purge_expired(db, now=now)
        db.commit()
        print(f"✓ Expired {expired_notifications} invitation notification(s)")
        print(f"✓ Deleted {purged_tokens} expired invitation token(s)")
    except Exception as e:
        db.rollback()
        print(f"Error: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    expire_invitations()
