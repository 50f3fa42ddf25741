"""Database schema DDL. All tables use CREATE IF NOT EXISTS for idempotency."""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT,
    picture TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS subscriptions (
    channel_id TEXT NOT NULL,
    subscriber_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (channel_id, subscriber_id)
);

CREATE INDEX IF NOT EXISTS idx_subscriptions_subscriber_id ON subscriptions(subscriber_id);

CREATE TABLE IF NOT EXISTS trees (
    tree_id TEXT PRIMARY KEY,
    root_id TEXT NOT NULL,
    title TEXT,
    description TEXT,
    creator TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'public'
        CHECK (status IN ('draft', 'public', 'private')),
    is_editing INTEGER NOT NULL DEFAULT 1,
    views INTEGER NOT NULL DEFAULT 0 CHECK (views >= 0),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_trees_creator ON trees(creator);
CREATE INDEX IF NOT EXISTS idx_trees_listing ON trees(status, is_editing, created_at);

CREATE TABLE IF NOT EXISTS nodes (
    node_id TEXT PRIMARY KEY,
    tree_id TEXT NOT NULL,
    parent_id TEXT,
    layer INTEGER NOT NULL CHECK (layer >= 0),
    info TEXT,
    creator TEXT NOT NULL,
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (tree_id) REFERENCES trees(tree_id) DEFERRABLE INITIALLY DEFERRED
);

CREATE INDEX IF NOT EXISTS idx_nodes_tree_id ON nodes(tree_id);
CREATE INDEX IF NOT EXISTS idx_nodes_parent_id ON nodes(parent_id);
CREATE INDEX IF NOT EXISTS idx_nodes_creator ON nodes(creator);
CREATE UNIQUE INDEX IF NOT EXISTS idx_nodes_single_root
    ON nodes(tree_id) WHERE parent_id IS NULL;

CREATE TABLE IF NOT EXISTS tree_favorites (
    tree_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (tree_id, user_id),
    FOREIGN KEY (tree_id) REFERENCES trees(tree_id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_tree_favorites_user_id ON tree_favorites(user_id);

CREATE TABLE IF NOT EXISTS histories (
    history_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    tree_id TEXT NOT NULL,
    active_node_id TEXT NOT NULL,
    progress REAL NOT NULL DEFAULT 0 CHECK (progress >= 0),
    total_progress REAL NOT NULL DEFAULT 0 CHECK (total_progress >= 0),
    is_ended INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (user_id, tree_id),
    FOREIGN KEY (tree_id) REFERENCES trees(tree_id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_histories_tree_id ON histories(tree_id);

-- Keyword search over tree titles and descriptions (external content on trees.rowid)
CREATE VIRTUAL TABLE IF NOT EXISTS trees_fts USING fts5(
    title, description, content='trees'
);

CREATE TRIGGER IF NOT EXISTS trees_fts_insert AFTER INSERT ON trees BEGIN
    INSERT INTO trees_fts(rowid, title, description)
    VALUES (new.rowid, new.title, new.description);
END;

CREATE TRIGGER IF NOT EXISTS trees_fts_delete AFTER DELETE ON trees BEGIN
    INSERT INTO trees_fts(trees_fts, rowid, title, description)
    VALUES ('delete', old.rowid, old.title, old.description);
END;

CREATE TRIGGER IF NOT EXISTS trees_fts_update AFTER UPDATE OF title, description ON trees BEGIN
    INSERT INTO trees_fts(trees_fts, rowid, title, description)
    VALUES ('delete', old.rowid, old.title, old.description);
    INSERT INTO trees_fts(rowid, title, description)
    VALUES (new.rowid, new.title, new.description);
END;
"""
