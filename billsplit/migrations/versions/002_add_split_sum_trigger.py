"""Split-sum integrity trigger (PostgreSQL only).

Revision: 002_add_split_sum_trigger
Created:  2026-10-19

The split calculator already guarantees sum(splits.amount) == expense.amount.
This trigger holds the database to the same rule for writes that bypass
the service layer.

A CHECK constraint cannot aggregate sibling rows, so this is a constraint
trigger on splits, DEFERRABLE INITIALLY DEFERRED: it fires at COMMIT, when
the expense and all of its splits are in place. An expense edit also
changes expenses.amount, so the same check runs on expenses updates.

SQLite (the test database) has no equivalent; upgrade() is a no-op there.
"""

from __future__ import annotations

from alembic import op

revision: str = "002_add_split_sum_trigger"
down_revision: str | None = "001_initial_schema"
branch_labels: tuple | None = None
depends_on: tuple | None = None


_CREATE_FUNCTION = """
CREATE OR REPLACE FUNCTION fn_check_split_sum()
RETURNS TRIGGER
LANGUAGE plpgsql
AS $$
DECLARE
    v_expense_id  INTEGER;
    v_split_sum   NUMERIC(15, 3);
    v_expense_amt NUMERIC(15, 3);
BEGIN
    IF TG_TABLE_NAME = 'expenses' THEN
        v_expense_id := NEW.id;
    ELSIF TG_OP = 'DELETE' THEN
        v_expense_id := OLD.expense_id;
    ELSE
        v_expense_id := NEW.expense_id;
    END IF;

    SELECT amount INTO v_expense_amt FROM expenses WHERE id = v_expense_id;

    -- The parent itself was deleted (group deletion); nothing to compare.
    IF v_expense_amt IS NULL THEN
        RETURN NULL;
    END IF;

    SELECT COALESCE(SUM(amount), 0)
      INTO v_split_sum
      FROM splits
     WHERE expense_id = v_expense_id;

    IF v_split_sum <> v_expense_amt THEN
        RAISE EXCEPTION
            'split sum (%) does not equal expense amount (%) for expense id=%',
            v_split_sum, v_expense_amt, v_expense_id
            USING ERRCODE = '23514';
    END IF;

    RETURN NULL;
END;
$$;
"""

_CREATE_SPLITS_TRIGGER = """
CREATE CONSTRAINT TRIGGER trg_splits_sum_check
    AFTER INSERT OR UPDATE OR DELETE
    ON splits
    DEFERRABLE INITIALLY DEFERRED
    FOR EACH ROW
    EXECUTE FUNCTION fn_check_split_sum();
"""

_CREATE_EXPENSES_TRIGGER = """
CREATE CONSTRAINT TRIGGER trg_expenses_sum_check
    AFTER UPDATE OF amount
    ON expenses
    DEFERRABLE INITIALLY DEFERRED
    FOR EACH ROW
    EXECUTE FUNCTION fn_check_split_sum();
"""

_DROP_STATEMENTS = (
    "DROP TRIGGER IF EXISTS trg_expenses_sum_check ON expenses;",
    "DROP TRIGGER IF EXISTS trg_splits_sum_check ON splits;",
    "DROP FUNCTION IF EXISTS fn_check_split_sum();",
)


def _is_postgres() -> bool:
    return op.get_bind().dialect.name == "postgresql"


def upgrade() -> None:
    if not _is_postgres():
        return
    op.execute(_CREATE_FUNCTION)
    op.execute(_CREATE_SPLITS_TRIGGER)
    op.execute(_CREATE_EXPENSES_TRIGGER)


def downgrade() -> None:
    if not _is_postgres():
        return
    for statement in _DROP_STATEMENTS:
        op.execute(statement)
