"""Statement building: order whitelist, bound parameters, paging and aggregation joins."""

import pytest

from content_platform.content.posts import POSTS_SPEC
from content_platform.errors import InvalidOrderKey, InvalidParams
from content_platform.query import Predicate, QuerySpec, build, build_count, order_whitelist, page_offset

SPEC = QuerySpec(
    table="typecho_contents",
    primary_key="cid",
    whitelist=order_whitelist("p", "cid", "slug"),
    default_order_key="-cid",
    type_filter=("type", "attachment"),
)


class TestOrderWhitelist:
    def test_ascending_and_descending_keys(self):
        wl = order_whitelist("p", "cid", "slug")
        assert wl == {
            "cid": 'p."cid"',
            "-cid": 'p."cid" DESC',
            "slug": 'p."slug"',
            "-slug": 'p."slug" DESC',
        }

    @pytest.mark.parametrize("key", [None, ""])
    def test_missing_key_uses_default(self, key):
        sql, _ = build(SPEC, key, 1, 10)
        assert 'ORDER BY p."cid" DESC' in sql

    def test_descending_key(self):
        sql, _ = build(SPEC, "-slug", 1, 10)
        assert 'ORDER BY p."slug" DESC, p."cid"' in sql

    def test_unknown_key_is_invalid_params_on_order_by(self):
        with pytest.raises(InvalidOrderKey) as ei:
            build(SPEC, "malicious; DROP TABLE", 1, 10)
        assert isinstance(ei.value, InvalidParams)
        assert ei.value.field == "order_by"


class TestPaging:
    def test_offset(self):
        assert page_offset(1, 10) == 0
        assert page_offset(3, 10) == 20
        assert build(SPEC, None, 3, 10).params[-2:] == (10, 20)

    def test_type_filter_is_bound(self):
        stmt = build(SPEC, None, 2, 5)
        assert 'p."type" = ?' in stmt.sql
        assert stmt.params == ("attachment", 5, 5)


class TestCount:
    def test_count_has_same_filters_and_no_joins_or_paging(self):
        pred = Predicate('p."authorId" = ?', (7,))
        sql, params = build_count(POSTS_SPEC, pred)
        assert sql.startswith("SELECT COUNT(*)")
        assert "JOIN" not in sql
        assert "LIMIT" not in sql
        assert params == ("post", 7)


class TestAggregation:
    def test_parents_paged_before_join(self):
        sql, params = build(POSTS_SPEC, "-created", 3, 10)
        inner_end = sql.index(") AS p")
        assert "LIMIT ? OFFSET ?" in sql[:inner_end]
        assert "LEFT JOIN typecho_relationships AS l" in sql
        assert "LEFT JOIN typecho_metas AS c" in sql
        assert 'c."type" IN (?, ?)' in sql
        assert sql.rstrip().endswith('ORDER BY p."created" DESC, p."cid", c."mid"')
        assert params == ("post", 10, 20, "category", "tag")

    def test_child_columns_are_prefixed(self):
        sql, _ = build(POSTS_SPEC, None, 1, 10)
        assert 'c."mid" AS child_mid' in sql
        assert 'c."order" AS child_order' in sql
