"""001: create common functions

fn_update_timestamp() keeps updated_at current on every UPDATE.
"""

STATEMENTS = (
    """
    CREATE OR REPLACE FUNCTION fn_update_timestamp()
    RETURNS TRIGGER AS $$
    BEGIN
        NEW.updated_at = NOW();
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql
    """,
)
