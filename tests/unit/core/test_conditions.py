"""Unit tests for the condition-map compiler."""

import pytest
import sqlalchemy as sa

from clearmarkup.core.database.conditions import (
    compile_conditions,
    compile_limit,
    compile_order,
    resolve_column,
)
from clearmarkup.utils.exceptions import QueryError


@pytest.fixture
def users():
    """A standalone users table."""
    return sa.Table(
        "users",
        sa.MetaData(),
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("status", sa.String(20)),
        sa.Column("name", sa.String(100)),
        sa.Column("bio", sa.Text),
        sa.Column("created_at", sa.Integer),
    )


def render(clause):
    """Render a clause with its values inlined."""
    return str(clause.compile(compile_kwargs={"literal_binds": True}))


@pytest.mark.parametrize("conditions, expected", [
    ({"status": "active"}, "users.status = 'active'"),
    ({"id": [5, 9]}, "users.id IN (5, 9)"),
    ({"bio": None}, "users.bio IS NULL"),
    ({"bio[!]": None}, "users.bio IS NOT NULL"),
    ({"status[!]": "banned"}, "users.status != 'banned'"),
    ({"created_at[>]": 10}, "users.created_at > 10"),
    ({"created_at[<=]": 10}, "users.created_at <= 10"),
    ({"name[~]": "ann"}, "users.name LIKE '%ann%'"),
    ({"name[~]": "ann%"}, "users.name LIKE 'ann%'"),
    ({"users.status": "active"}, "users.status = 'active'"),
])
def test_single_predicates(users, conditions, expected):
    """Test the rendering of single predicates."""
    assert render(compile_conditions(users, conditions).where) == expected


def test_between(users):
    """Test range predicates."""
    inside = render(compile_conditions(users, {"created_at[<>]": [1, 5]}).where)
    outside = render(compile_conditions(users, {"created_at[><]": [1, 5]}).where)

    assert "BETWEEN 1 AND 5" in inside
    assert "NOT" not in inside
    assert "NOT" in outside and "BETWEEN 1 AND 5" in outside


def test_groups_with_comments(users):
    """Test that AND/OR groups nest and may carry a comment suffix."""
    where = compile_conditions(users, {
        "status": "active",
        "OR #names": {"name": "Ann", "id": 9},
        "AND #recent": {"created_at[>]": 1, "bio[!]": None},
    }).where

    sql = render(where)
    assert "users.name = 'Ann' OR users.id = 9" in sql
    assert "users.created_at > 1 AND users.bio IS NOT NULL" in sql
    assert sql.startswith("users.status = 'active' AND")


def test_empty_conditions(users):
    """Test that an empty map compiles to no WHERE clause."""
    compiled = compile_conditions(users, {})

    assert compiled.where is None
    assert compiled.order_by == []
    assert compiled.limit is None and compiled.offset is None


def test_modifiers_are_not_predicates(users):
    """Test that ORDER and LIMIT are split out of the WHERE clause."""
    compiled = compile_conditions(users, {"ORDER": {"id": "DESC"}, "LIMIT": [20, 10]})

    assert compiled.where is None
    assert [render(clause) for clause in compiled.order_by] == ["users.id DESC"]
    assert compiled.limit == 10
    assert compiled.offset == 20


@pytest.mark.parametrize("conditions", [
    {"missing": 1},
    {"teams.id": 1},
    {"id[??]": 1},
    {"created_at[<>]": [1]},
    {"OR": "not a map"},
    {"bad key!": 1},
])
def test_invalid_conditions(users, conditions):
    """Test that unresolvable keys, operators and values raise."""
    with pytest.raises(QueryError):
        compile_conditions(users, conditions)


def test_resolve_column_reports_table(users):
    """Test that an unknown column names its table."""
    with pytest.raises(QueryError) as exc_info:
        resolve_column(users, "nope")

    assert exc_info.value.table == "users"


def test_compile_order_forms(users):
    """Test string, list and mapping ORDER values."""
    assert [render(c) for c in compile_order(users, "name")] == ["users.name ASC"]
    assert [render(c) for c in compile_order(users, ["name", "id"])] == ["users.name ASC", "users.id ASC"]
    assert [render(c) for c in compile_order(users, {"created_at": "desc"})] == ["users.created_at DESC"]

    with pytest.raises(QueryError):
        compile_order(users, {"id": "SIDEWAYS"})


@pytest.mark.parametrize("limit, expected", [
    (None, (None, None)),
    (5, (5, None)),
    ([10, 5], (5, 10)),
    ((0, 1), (1, 0)),
])
def test_compile_limit(limit, expected):
    """Test count and offset/count LIMIT forms."""
    assert compile_limit(limit) == expected


@pytest.mark.parametrize("limit", [-1, True, [1, 2, 3], [-1, 5], "ten"])
def test_compile_limit_rejects(limit):
    """Test that malformed LIMIT values raise."""
    with pytest.raises(QueryError):
        compile_limit(limit)
