"""Composable read queries over trees.

A TreeQuery holds filters over the trees table (aliased ``t``) plus an
ordered list of RetrievalStages. Each stage contributes select columns,
joins and named parameters to the SQL, and a transform that reshapes the
fetched row. The whole query runs as one statement.

List queries fan out into a page and a count of the same filtered
population:

    WITH matched AS (<filters>),
         page AS (<stages> ... LIMIT/OFFSET)
    SELECT (SELECT COUNT(*) FROM matched), page.* ...
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from branchreel.db.connection import Database
from branchreel.trees.builder import NoRootError
from branchreel.utils.json import parse_json_field, parse_json_list

Row = dict[str, Any]

DEFAULT_ORDER = "t.created_at DESC, t.tree_id DESC"

_BASE_COLUMNS = (
    "(SELECT json_group_array(fav.user_id) FROM tree_favorites fav"
    " WHERE fav.tree_id = t.tree_id) AS favorites_json",
)

_NODE_JSON = (
    "json_object('node_id', n.node_id, 'tree_id', n.tree_id, 'parent_id', n.parent_id,"
    " 'layer', n.layer, 'info', json(n.info), 'creator', n.creator,"
    " 'sort_order', n.sort_order)"
)


@dataclass(frozen=True)
class RetrievalStage:
    """One reusable piece of a tree read query."""

    name: str
    columns: tuple[str, ...] = ()
    joins: tuple[str, ...] = ()
    params: dict[str, Any] = field(default_factory=dict)
    transform: Callable[[Row], Row] | None = None
    attaches_nodes: bool = False


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


def all_nodes_stage() -> RetrievalStage:
    """Attach the tree's whole node set as ``root`` with a flat ``children`` list."""
    return RetrievalStage(
        name="all_nodes",
        columns=(
            f"(SELECT json_group_array({_NODE_JSON}) FROM nodes n"
            " WHERE n.tree_id = t.tree_id) AS nodes_json",
        ),
        transform=_attach_all_nodes,
        attaches_nodes=True,
    )


def root_node_stage() -> RetrievalStage:
    """Attach only the root node, with no children. For list views."""
    return RetrievalStage(
        name="root_node",
        columns=(
            f"(SELECT {_NODE_JSON} FROM nodes n WHERE n.node_id = t.root_id) AS root_json",
        ),
        transform=_attach_root_node,
        attaches_nodes=True,
    )


def creator_info_stage() -> RetrievalStage:
    """Attach the creator's display name, picture, and subscriber count."""
    return RetrievalStage(
        name="creator_info",
        columns=(
            "u.user_id AS creator_user_id",
            "u.name AS creator_name",
            "u.picture AS creator_picture",
            "(SELECT COUNT(*) FROM subscriptions s WHERE s.channel_id = t.creator)"
            " AS creator_subscribers",
        ),
        joins=("LEFT JOIN users u ON u.user_id = t.creator",),
        transform=_attach_creator_info,
    )


def favorite_stage(viewer_id: str | None) -> RetrievalStage:
    """Attach ``is_favorited`` for the requesting viewer (False when anonymous)."""
    return RetrievalStage(
        name="favorite",
        columns=(
            "EXISTS (SELECT 1 FROM tree_favorites fv"
            " WHERE fv.tree_id = t.tree_id AND fv.user_id = :viewer_id) AS is_favorited",
        ),
        params={"viewer_id": viewer_id},
        transform=_attach_is_favorited,
    )


def history_stage(viewer_id: str | None) -> RetrievalStage:
    """Attach the requesting viewer's history record, or None."""
    return RetrievalStage(
        name="history",
        columns=(
            "h.history_id AS history_id",
            "h.user_id AS history_user_id",
            "h.active_node_id AS history_active_node_id",
            "h.progress AS history_progress",
            "h.total_progress AS history_total_progress",
            "h.is_ended AS history_is_ended",
            "h.created_at AS history_created_at",
            "h.updated_at AS history_updated_at",
        ),
        joins=(
            "LEFT JOIN histories h ON h.tree_id = t.tree_id AND h.user_id = :viewer_id",
        ),
        params={"viewer_id": viewer_id},
        transform=_attach_history,
    )


def _attach_all_nodes(row: Row) -> Row:
    nodes = sorted(parse_json_list(row.pop("nodes_json")), key=lambda n: n["sort_order"])
    root = next((n for n in nodes if n["node_id"] == row["root_id"]), None)
    if root is None:
        raise NoRootError([n["node_id"] for n in nodes])
    row["root"] = {**root, "children": [n for n in nodes if n is not root]}
    return row


def _attach_root_node(row: Row) -> Row:
    root = parse_json_field(row.pop("root_json"))
    row["root"] = {**root, "children": []} if root is not None else None
    return row


def _attach_creator_info(row: Row) -> Row:
    user_id = row.pop("creator_user_id")
    name = row.pop("creator_name")
    picture = row.pop("creator_picture")
    subscribers = row.pop("creator_subscribers")
    row["creator_info"] = None if user_id is None else {
        "user_id": user_id,
        "name": name,
        "picture": picture,
        "subscribers": subscribers,
    }
    return row


def _attach_is_favorited(row: Row) -> Row:
    row["is_favorited"] = bool(row["is_favorited"])
    return row


def _attach_history(row: Row) -> Row:
    fields = {
        "history_id": row.pop("history_id"),
        "user_id": row.pop("history_user_id"),
        "tree_id": row["tree_id"],
        "active_node_id": row.pop("history_active_node_id"),
        "progress": row.pop("history_progress"),
        "total_progress": row.pop("history_total_progress"),
        "is_ended": row.pop("history_is_ended"),
        "created_at": row.pop("history_created_at"),
        "updated_at": row.pop("history_updated_at"),
    }
    if fields["history_id"] is None:
        row["history"] = None
    else:
        fields["is_ended"] = bool(fields["is_ended"])
        row["history"] = fields
    return row


def project_tree(row: Row) -> Row:
    """Final shape shared by every tree read: info/data blocks plus stage output."""
    return {
        "tree_id": row["tree_id"],
        "root": row.get("root"),
        "info": {
            "title": row["title"],
            "description": row["description"],
            "creator": row["creator"],
            "status": row["status"],
            "is_editing": bool(row["is_editing"]),
        },
        "data": {
            "views": row["views"],
            "favorites": parse_json_list(row["favorites_json"]),
        },
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "creator_info": row.get("creator_info"),
        "is_favorited": row.get("is_favorited", False),
        "history": row.get("history"),
    }


# ---------------------------------------------------------------------------
# Query builder
# ---------------------------------------------------------------------------


class TreeQuery:
    """Filters plus an ordered stage list, compiled to a single SQL statement."""

    def __init__(self) -> None:
        self._where: list[str] = []
        self._filter_joins: list[str] = []
        self._filter_columns: list[str] = []
        self._stages: list[RetrievalStage] = []
        self._params: dict[str, Any] = {}
        self._order_by = DEFAULT_ORDER

    @property
    def stages(self) -> list[RetrievalStage]:
        return list(self._stages)

    def match(
        self,
        clause: str,
        params: dict[str, Any] | None = None,
        *,
        joins: tuple[str, ...] = (),
        columns: tuple[str, ...] = (),
    ) -> "TreeQuery":
        """Restrict the matched population. Clauses are ANDed."""
        self._where.append(clause)
        self._filter_joins.extend(joins)
        self._filter_columns.extend(columns)
        self._merge_params(params or {})
        return self

    def sort(self, order_by: str) -> "TreeQuery":
        self._order_by = order_by
        return self

    def pipe(self, *stages: RetrievalStage) -> "TreeQuery":
        """Append stages. Their transforms run in the order given."""
        for stage in stages:
            if stage.attaches_nodes and any(s.attaches_nodes for s in self._stages):
                raise ValueError(f"Query already attaches nodes; cannot add {stage.name!r}")
            self._merge_params(stage.params)
            self._stages.append(stage)
        return self

    def _merge_params(self, params: dict[str, Any]) -> None:
        for key, value in params.items():
            if key in self._params and self._params[key] != value:
                raise ValueError(f"Conflicting values for query parameter {key!r}")
            self._params[key] = value

    def _stage_columns(self) -> list[str]:
        return [c for s in self._stages for c in s.columns]

    def _stage_joins(self) -> list[str]:
        return [j for s in self._stages for j in s.joins]

    def _where_sql(self) -> str:
        return " AND ".join(f"({c})" for c in self._where) or "1 = 1"

    def build_one(self) -> tuple[str, dict[str, Any]]:
        """SQL for fetching matched trees without paging (used for single-tree reads)."""
        columns = ", ".join(
            ["t.*", *_BASE_COLUMNS, *self._filter_columns, *self._stage_columns()]
        )
        joins = "\n".join([*self._filter_joins, *self._stage_joins()])
        sql = f"SELECT {columns}\nFROM trees t\n{joins}\nWHERE {self._where_sql()}"
        return sql, dict(self._params)

    def build_page(self, page: int, page_size: int) -> tuple[str, dict[str, Any]]:
        """SQL returning one page plus ``total_count`` of the whole matched set.

        Always yields at least one row; when the page is empty its columns are NULL.
        """
        if page < 1:
            raise ValueError("page must be >= 1")
        if page_size < 1:
            raise ValueError("page size must be >= 1")

        matched_columns = ", ".join(["t.*", *self._filter_columns])
        page_columns = ", ".join([
            "t.*",
            *_BASE_COLUMNS,
            *self._stage_columns(),
            f"ROW_NUMBER() OVER (ORDER BY {self._order_by}) AS row_position",
        ])
        filter_joins = "\n".join(self._filter_joins)
        stage_joins = "\n".join(self._stage_joins())
        sql = f"""
            WITH matched AS (
                SELECT {matched_columns}
                FROM trees t
                {filter_joins}
                WHERE {self._where_sql()}
            ),
            page AS (
                SELECT {page_columns}
                FROM matched t
                {stage_joins}
                ORDER BY {self._order_by}
                LIMIT :limit OFFSET :offset
            )
            SELECT (SELECT COUNT(*) FROM matched) AS total_count, page.*
            FROM (SELECT 1) AS anchor
            LEFT JOIN page ON 1 = 1
            ORDER BY page.row_position
        """
        params = dict(self._params)
        params["limit"] = page_size
        params["offset"] = page_size * (page - 1)
        return sql, params

    def shape(self, row: Row) -> Row:
        for stage in self._stages:
            if stage.transform is not None:
                row = stage.transform(row)
        return project_tree(row)


async def fetch_one(db: Database, query: TreeQuery) -> Row | None:
    sql, params = query.build_one()
    row = await db.fetchone(sql, params)
    if row is None:
        return None
    return query.shape(dict(row))


async def fetch_page(
    db: Database, query: TreeQuery, page: int, page_size: int,
) -> tuple[list[Row], int]:
    """Run a list query. Returns (shaped rows of the page, total matched count)."""
    sql, params = query.build_page(page, page_size)
    rows = [dict(r) for r in await db.fetchall(sql, params)]
    count = rows[0]["total_count"] if rows else 0
    return [query.shape(r) for r in rows if r["tree_id"] is not None], count
