"""
Enforce one calendar_sync_settings row per user

Migration to:
- collapse duplicate rows left by concurrent first-time upserts (keeps the
  newest row per user)
- add a UNIQUE constraint on calendar_sync_settings.user_id

Run with: python migrations/add_calendar_sync_settings_unique_user.py
"""

import logging
import sys

from sqlalchemy import inspect, text

from bluetradie.database import engine

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)

CONSTRAINT_NAME = "uq_calendar_sync_settings_user_id"


def _has_unique_user_id(conn) -> bool:
    inspector = inspect(conn)
    for constraint in inspector.get_unique_constraints("calendar_sync_settings"):
        if constraint.get("column_names") == ["user_id"]:
            return True
    for index in inspector.get_indexes("calendar_sync_settings"):
        if index.get("unique") and index.get("column_names") == ["user_id"]:
            return True
    return False


def upgrade():
    """Deduplicate and add the unique constraint"""
    with engine.connect() as conn:
        if not inspect(conn).has_table("calendar_sync_settings"):
            logger.info("ℹ️  calendar_sync_settings does not exist yet; create_all will add the constraint")
            return

        if _has_unique_user_id(conn):
            logger.info("ℹ️  user_id is already unique")
            return

        removed = conn.execute(
            text(
                """
                DELETE FROM calendar_sync_settings
                WHERE id NOT IN (
                    SELECT keep_id FROM (
                        SELECT MAX(id) AS keep_id
                        FROM calendar_sync_settings
                        GROUP BY user_id
                    ) AS latest
                )
                """
            )
        ).rowcount
        logger.info(f"✅ Removed {removed} duplicate sync settings row(s)")

        conn.execute(
            text(
                f"CREATE UNIQUE INDEX IF NOT EXISTS {CONSTRAINT_NAME} "
                "ON calendar_sync_settings (user_id)"
            )
        )
        conn.commit()
        logger.info(f"✅ Added unique index {CONSTRAINT_NAME}")


def downgrade():
    """Drop the unique index"""
    with engine.connect() as conn:
        conn.execute(text(f"DROP INDEX IF EXISTS {CONSTRAINT_NAME}"))
        conn.commit()
        logger.info(f"✅ Dropped unique index {CONSTRAINT_NAME}")


if __name__ == "__main__":
    try:
        if len(sys.argv) > 1 and sys.argv[1] == "downgrade":
            downgrade()
        else:
            upgrade()
    except Exception as e:
        logger.error(f"❌ Migration failed: {e}")
        sys.exit(1)
