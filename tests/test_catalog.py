"""Tests for site/group CRUD, validation and membership bookkeeping."""

from __future__ import annotations

import pytest

from limiter.errors import NotFoundError, ValidationError
from limiter.validation import normalize_url_pattern


class TestNormalizeUrlPattern:
    @pytest.mark.parametrize("raw, expected", [
        ("example.com", "example.com"),
        ("https://www.Example.com/feed?x=1", "example.com"),
        ("http://news.ycombinator.com:8080/", "news.ycombinator.com"),
        ("  reddit.com  ", "reddit.com"),
    ])
    def test_normalizes_to_hostname(self, raw, expected):
        assert normalize_url_pattern(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", None, "javascript:alert(1)", "bad host!", "x" * 2001])
    def test_rejects_invalid(self, raw):
        with pytest.raises(ValidationError):
            normalize_url_pattern(raw)


class TestSites:
    async def test_add_site_normalizes_and_defaults(self, catalog):
        site = await catalog.add_site({"urlPattern": "https://www.YouTube.com/", "dailyLimitSeconds": 600})
        assert site.url_pattern == "youtube.com"
        assert site.is_enabled is True
        assert [s.id for s in await catalog.list_sites()] == [site.id]

    async def test_add_site_requires_a_limit(self, catalog):
        with pytest.raises(ValidationError):
            await catalog.add_site({"urlPattern": "example.com"})
        assert await catalog.list_sites() == []

    @pytest.mark.parametrize("payload", [
        {"urlPattern": "example.com", "dailyLimitSeconds": 0},
        {"urlPattern": "example.com", "dailyLimitSeconds": 90000},
        {"urlPattern": "example.com", "dailyLimitSeconds": "60"},
        {"urlPattern": "example.com", "dailyOpenLimit": -1},
        {"urlPattern": "example.com", "dailyLimitSeconds": 60, "isEnabled": "yes"},
    ])
    async def test_add_site_rejects_bad_limits(self, catalog, payload):
        with pytest.raises(ValidationError):
            await catalog.add_site(payload)
        assert await catalog.list_sites() == []

    async def test_update_site_merges_fields(self, catalog):
        site = await catalog.add_site({"urlPattern": "example.com", "dailyLimitSeconds": 60})
        updated = await catalog.update_site(site.id, {"dailyOpenLimit": 5, "isEnabled": False})
        assert updated.daily_limit_seconds == 60
        assert updated.daily_open_limit == 5
        assert updated.is_enabled is False

    async def test_update_site_null_removes_open_limit(self, catalog):
        site = await catalog.add_site({"urlPattern": "example.com", "dailyLimitSeconds": 60, "dailyOpenLimit": 3})
        updated = await catalog.update_site(site.id, {"dailyOpenLimit": None})
        assert updated.daily_open_limit is None
        assert "dailyOpenLimit" not in updated.to_dict()

    async def test_update_cannot_leave_standalone_site_without_limits(self, catalog):
        site = await catalog.add_site({"urlPattern": "example.com", "dailyLimitSeconds": 60})
        with pytest.raises(ValidationError):
            await catalog.update_site(site.id, {"dailyLimitSeconds": None})
        assert (await catalog.get_site(site.id)).daily_limit_seconds == 60

    async def test_update_unknown_site_is_not_found(self, catalog):
        with pytest.raises(NotFoundError):
            await catalog.update_site("missing", {"isEnabled": False})

    async def test_update_rejects_unknown_fields(self, catalog):
        site = await catalog.add_site({"urlPattern": "example.com", "dailyLimitSeconds": 60})
        with pytest.raises(ValidationError):
            await catalog.update_site(site.id, {"colour": "red"})

    async def test_delete_site(self, catalog):
        site = await catalog.add_site({"urlPattern": "example.com", "dailyLimitSeconds": 60})
        await catalog.delete_site(site.id)
        assert await catalog.list_sites() == []
        with pytest.raises(NotFoundError):
            await catalog.delete_site(site.id)


class TestGroups:
    async def test_add_group(self, catalog):
        group = await catalog.add_group({"name": " Social ", "dailyLimitSeconds": 1800, "dailyOpenLimit": 5})
        assert group.name == "Social"
        assert group.site_ids == []
        assert (await catalog.get_group(group.id)).daily_open_limit == 5

    async def test_add_group_requires_time_limit(self, catalog):
        with pytest.raises(ValidationError):
            await catalog.add_group({"name": "Social"})

    async def test_site_added_into_group_is_listed_on_both_sides(self, catalog):
        group = await catalog.add_group({"name": "Social", "dailyLimitSeconds": 1800})
        site = await catalog.add_site({"urlPattern": "twitter.com", "groupId": group.id})
        assert site.group_id == group.id
        assert (await catalog.get_group(group.id)).site_ids == [site.id]

    async def test_add_site_into_missing_group_is_not_found(self, catalog):
        with pytest.raises(NotFoundError):
            await catalog.add_site({"urlPattern": "twitter.com", "groupId": "nope"})
        assert await catalog.list_sites() == []

    async def test_move_site_between_groups(self, catalog):
        a = await catalog.add_group({"name": "A", "dailyLimitSeconds": 60})
        b = await catalog.add_group({"name": "B", "dailyLimitSeconds": 60})
        site = await catalog.add_site({"urlPattern": "x.com", "dailyLimitSeconds": 60, "groupId": a.id})

        await catalog.add_site_to_group(b.id, site.id)

        assert (await catalog.get_group(a.id)).site_ids == []
        assert (await catalog.get_group(b.id)).site_ids == [site.id]
        assert (await catalog.get_site(site.id)).group_id == b.id

    async def test_remove_site_from_group(self, catalog):
        group = await catalog.add_group({"name": "Social", "dailyLimitSeconds": 60})
        site = await catalog.add_site({"urlPattern": "x.com", "dailyLimitSeconds": 60, "groupId": group.id})
        await catalog.remove_site_from_group(group.id, site.id)
        assert (await catalog.get_group(group.id)).site_ids == []
        assert (await catalog.get_site(site.id)).group_id is None

    async def test_removing_limitless_member_is_rejected_without_writes(self, catalog):
        group = await catalog.add_group({"name": "Social", "dailyLimitSeconds": 60})
        site = await catalog.add_site({"urlPattern": "x.com", "groupId": group.id})

        with pytest.raises(ValidationError):
            await catalog.remove_site_from_group(group.id, site.id)

        assert (await catalog.get_group(group.id)).site_ids == [site.id]
        assert (await catalog.get_site(site.id)).group_id == group.id

    async def test_ungrouping_limitless_site_by_update_keeps_membership(self, catalog):
        group = await catalog.add_group({"name": "Social", "dailyLimitSeconds": 60})
        site = await catalog.add_site({"urlPattern": "x.com", "groupId": group.id})

        with pytest.raises(ValidationError):
            await catalog.update_site(site.id, {"groupId": None})

        assert (await catalog.get_group(group.id)).site_ids == [site.id]
        assert (await catalog.get_site(site.id)).group_id == group.id

    async def test_remove_from_missing_group_is_not_found(self, catalog):
        site = await catalog.add_site({"urlPattern": "x.com", "dailyLimitSeconds": 60})
        with pytest.raises(NotFoundError):
            await catalog.remove_site_from_group("nope", site.id)

    async def test_delete_group_makes_members_standalone(self, catalog):
        group = await catalog.add_group({"name": "Social", "dailyLimitSeconds": 60})
        site = await catalog.add_site({"urlPattern": "x.com", "dailyLimitSeconds": 300, "groupId": group.id})

        await catalog.delete_group(group.id)

        remaining = await catalog.get_site(site.id)
        assert remaining is not None
        assert remaining.group_id is None
        assert remaining.daily_limit_seconds == 300
        assert await catalog.list_groups() == []

    async def test_delete_site_leaves_group_membership_clean(self, catalog):
        group = await catalog.add_group({"name": "Social", "dailyLimitSeconds": 60})
        site = await catalog.add_site({"urlPattern": "x.com", "groupId": group.id})
        await catalog.delete_site(site.id)
        assert (await catalog.get_group(group.id)).site_ids == []

    async def test_update_group_null_open_limit(self, catalog):
        group = await catalog.add_group({"name": "Social", "dailyLimitSeconds": 60, "dailyOpenLimit": 4})
        updated = await catalog.update_group(group.id, {"dailyOpenLimit": None, "isEnabled": False})
        assert updated.daily_open_limit is None
        assert updated.is_enabled is False
