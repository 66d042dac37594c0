"""freeze token activity entries once written

Every redemption, expiry flip, profile view and response leaves one row in
token_activity_logs, and owner metrics count those rows. Rewriting or
removing an entry would silently change an owner's funnel, so the database
rejects both; corrections are new entries.

Revision ID: 0002_activity_log_immutability
Revises: 0001_onceview
Create Date: 2026-10-18
"""

from alembic import op


revision = "0002_activity_log_immutability"
down_revision = "0001_onceview"
branch_labels = None
depends_on = None

GUARD_FUNCTION = "reject_token_activity_rewrite"
GUARD_TRIGGER = "trg_token_activity_frozen"


def upgrade() -> None:
    op.execute(
        f"""
        CREATE OR REPLACE FUNCTION {GUARD_FUNCTION}()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            RAISE EXCEPTION 'token activity entries are frozen; % rejected', TG_OP
                USING ERRCODE = 'integrity_constraint_violation';
        END;
        $$;
        """
    )
    op.execute(
        f"""
        CREATE TRIGGER {GUARD_TRIGGER}
        BEFORE UPDATE OR DELETE ON token_activity_logs
        FOR EACH ROW
        EXECUTE FUNCTION {GUARD_FUNCTION}();
        """
    )
    # Row triggers do not fire on TRUNCATE.
    op.execute(
        f"""
        CREATE TRIGGER {GUARD_TRIGGER}_truncate
        BEFORE TRUNCATE ON token_activity_logs
        FOR EACH STATEMENT
        EXECUTE FUNCTION {GUARD_FUNCTION}();
        """
    )


def downgrade() -> None:
    op.execute(f"DROP TRIGGER IF EXISTS {GUARD_TRIGGER}_truncate ON token_activity_logs;")
    op.execute(f"DROP TRIGGER IF EXISTS {GUARD_TRIGGER} ON token_activity_logs;")
    op.execute(f"DROP FUNCTION IF EXISTS {GUARD_FUNCTION}();")
