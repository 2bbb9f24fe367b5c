"""002: create content_items table"""

STATEMENTS = (
    """
    CREATE TABLE content_items (
        id              BIGSERIAL       PRIMARY KEY,
        title           TEXT            NOT NULL,
        body            TEXT            NOT NULL,
        created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
        updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
        CONSTRAINT ck_content_items_title_not_empty CHECK (LENGTH(TRIM(title)) > 0),
        CONSTRAINT ck_content_items_body_not_empty  CHECK (LENGTH(TRIM(body)) > 0)
    )
    """,
    "CREATE INDEX idx_content_items_created_at ON content_items (created_at DESC, id ASC)",
    """
    CREATE TRIGGER trg_content_items_updated_at
        BEFORE UPDATE ON content_items
        FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp()
    """,
    "COMMENT ON TABLE content_items IS 'Content items — authoritative store behind the items:* cache'",
)
