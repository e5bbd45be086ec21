"""Role hierarchy and ownership policy."""

import pytest

from content_platform.auth.roles import authorize_on, check_role_change, parse_role, require
from content_platform.errors import InvalidParams, PermissionDenied
from content_platform.models import Identity, Role

ROLES = list(Role)


def _identity(uid: int = 1, role=Role.SUBSCRIBER) -> Identity:
    return Identity(id=uid, role=role, name=f"user{uid}")


class TestRequire:
    @pytest.mark.parametrize("actual", ROLES)
    @pytest.mark.parametrize("minimum", ROLES)
    def test_every_tier_pair(self, actual, minimum):
        ident = _identity(role=actual)
        if actual >= minimum:
            assert require(ident, minimum) is ident
        else:
            with pytest.raises(PermissionDenied):
                require(ident, minimum)

    def test_unknown_group_satisfies_nothing(self):
        ident = _identity(role=None)
        with pytest.raises(PermissionDenied):
            require(ident, Role.SUBSCRIBER)

    def test_order_is_fixed(self):
        assert Role.SUBSCRIBER < Role.CONTRIBUTOR < Role.EDITOR < Role.ADMINISTRATOR


class TestParseRole:
    @pytest.mark.parametrize("group", ["subscriber", "contributor", "editor", "administrator", " Editor "])
    def test_known_groups(self, group):
        assert parse_role(group).group == group.strip().lower()

    @pytest.mark.parametrize("group", ["", "admin", "root", None])
    def test_unknown_group_is_invalid_params(self, group):
        with pytest.raises(InvalidParams) as ei:
            parse_role(group)
        assert ei.value.field == "group"


class TestAuthorizeOn:
    def test_owner_passes(self):
        authorize_on(_identity(3, Role.CONTRIBUTOR), 3)

    def test_other_contributor_is_denied(self):
        with pytest.raises(PermissionDenied):
            authorize_on(_identity(3, Role.CONTRIBUTOR), 4)

    def test_editor_bypasses_content_but_not_users(self):
        authorize_on(_identity(3, Role.EDITOR), 4)
        with pytest.raises(PermissionDenied):
            authorize_on(_identity(3, Role.EDITOR), 4, bypass=Role.ADMINISTRATOR)


class TestRoleChange:
    @pytest.mark.parametrize("actor", [Role.SUBSCRIBER, Role.CONTRIBUTOR, Role.EDITOR])
    def test_non_admin_cannot_change_a_role(self, actor):
        with pytest.raises(PermissionDenied):
            check_role_change(_identity(role=actor), actor, Role.ADMINISTRATOR)

    @pytest.mark.parametrize("actor", ROLES)
    def test_keeping_the_same_role_is_fine(self, actor):
        check_role_change(_identity(role=actor), actor, actor)

    @pytest.mark.parametrize("target", ROLES)
    def test_administrator_may_set_any_role(self, target):
        check_role_change(_identity(role=Role.ADMINISTRATOR), Role.SUBSCRIBER, target)
