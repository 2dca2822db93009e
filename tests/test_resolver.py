import pytest

from accesshub.cache import CacheKeys, CacheManager
from accesshub.modules.permissions.resolver import (
    PermissionResolver,
    PermissionSource,
    ResolutionStatus,
    resolve_cached,
)

from tests.factories import assign, make_functions, make_profile, make_system, make_user, override

SYSTEM = "nup-kan"


@pytest.fixture
def board(store):
    make_system(store, SYSTEM, "NuP-Kan")
    functions = make_functions(store, SYSTEM, ["tasks-list", "tasks-create", "tasks-delete"])
    return {f["function_key"]: f["id"] for f in functions}


@pytest.fixture
def user(store):
    return make_user(store, "user@example.com")


@pytest.fixture
def resolver(store):
    return PermissionResolver(store)


class TestResolve:
    def test_profile_grants(self, store, board, user, resolver):
        profile = make_profile(store, "Global Administrator", [board["tasks-list"], board["tasks-create"]])
        assign(store, user["id"], profile["id"])

        resolved = resolver.resolve(user["id"])

        assert resolved.granted_keys == {"tasks-list", "tasks-create"}
        assert resolved.status is ResolutionStatus.OK

    def test_override_revokes_profile_grant(self, store, board, user, resolver):
        profile = make_profile(store, "Global Administrator", [board["tasks-list"], board["tasks-create"]])
        assign(store, user["id"], profile["id"])
        override(store, user["id"], board["tasks-create"], granted=False)

        assert resolver.resolve(user["id"]).granted_keys == {"tasks-list"}
        assert resolver.resolve(user["id"], SYSTEM).granted_keys == {"tasks-list"}

    def test_override_grants_without_profile(self, store, board, user, resolver):
        override(store, user["id"], board["tasks-delete"], granted=True)

        resolved = resolver.resolve(user["id"], SYSTEM)

        assert resolved.granted_keys == {"tasks-delete"}
        assert resolved.permissions[0].source is PermissionSource.OVERRIDE

    def test_override_wins_over_every_profile(self, store, board, user, resolver):
        for name in ("P1", "P2", "P3"):
            assign(store, user["id"], make_profile(store, name, [board["tasks-list"]])["id"])
        override(store, user["id"], board["tasks-list"], granted=False)

        assert resolver.resolve(user["id"]).granted_keys == set()

    def test_default_deny(self, board, user, resolver):
        assert resolver.resolve(user["id"]).permissions == []
        assert resolver.resolve(user["id"], SYSTEM).granted_keys == set()

    def test_unknown_user_resolves_to_empty(self, board, resolver):
        resolved = resolver.resolve("no-such-user", SYSTEM)
        assert resolved.found
        assert resolved.permissions == []

    def test_union_over_profiles(self, store, board, user, resolver):
        assign(store, user["id"], make_profile(store, "Readers", [board["tasks-list"]])["id"])
        assign(store, user["id"], make_profile(store, "Empty")["id"])

        assert resolver.resolve(user["id"]).granted_keys == {"tasks-list"}

    def test_profile_denial_rows_are_inert(self, store, board, user, resolver):
        assign(store, user["id"], make_profile(store, "Writers", [board["tasks-create"]])["id"])
        assign(store, user["id"], make_profile(store, "Deniers", [board["tasks-create"]], granted=False)["id"])

        assert resolver.resolve(user["id"]).granted_keys == {"tasks-create"}

    def test_unknown_system(self, store, board, user, resolver):
        resolved = resolver.resolve(user["id"], "no-such-system")
        assert resolved.status is ResolutionStatus.SYSTEM_NOT_FOUND
        assert not resolved.found

    def test_scoped_to_system(self, store, board, user, resolver):
        make_system(store, "crm")
        crm = make_functions(store, "crm", ["contacts-list"], category="Contacts")
        profile = make_profile(store, "Everything", [board["tasks-list"], crm[0]["id"]])
        assign(store, user["id"], profile["id"])

        assert resolver.resolve(user["id"], SYSTEM).granted_keys == {"tasks-list"}
        assert resolver.resolve(user["id"], "crm").granted_keys == {"contacts-list"}
        everything = resolver.resolve(user["id"])
        assert {(p.system_id, p.function_key) for p in everything.permissions} == {
            (SYSTEM, "tasks-list"),
            ("crm", "contacts-list"),
        }

    def test_descriptors_are_enriched(self, store, board, user, resolver):
        assign(store, user["id"], make_profile(store, "Readers", [board["tasks-list"]])["id"])

        descriptor = resolver.resolve(user["id"]).permissions[0]

        assert descriptor.function_id == "nup-kan:tasks-list"
        assert descriptor.name == "Tasks List"
        assert descriptor.category == "Tasks"
        assert descriptor.system_name == "NuP-Kan"

    def test_deleting_system_cascades(self, store, board, user, resolver):
        profile = make_profile(store, "Readers", [board["tasks-list"]])
        assign(store, user["id"], profile["id"])
        override(store, user["id"], board["tasks-create"], granted=True)

        store.table("systems").delete().eq("id", SYSTEM).execute()

        assert store.rows("functions") == []
        assert store.rows("profile_functions") == []
        assert store.rows("user_function_overrides") == []
        assert resolver.resolve(user["id"]).permissions == []


class TestCheck:
    def test_override_decides(self, store, board, user, resolver):
        assign(store, user["id"], make_profile(store, "Writers", [board["tasks-create"]])["id"])
        override(store, user["id"], board["tasks-create"], granted=False)

        result = resolver.check(user["id"], SYSTEM, "tasks-create")

        assert result.granted is False
        assert result.source is PermissionSource.OVERRIDE

    def test_profile_grant(self, store, board, user, resolver):
        assign(store, user["id"], make_profile(store, "Writers", [board["tasks-create"]])["id"])
        assert resolver.check(user["id"], SYSTEM, "tasks-create").granted is True
        assert resolver.check(user["id"], SYSTEM, "tasks-delete").granted is False

    def test_unknown_function(self, board, user, resolver):
        result = resolver.check(user["id"], SYSTEM, "boards-create")
        assert result.granted is False
        assert result.reason == "Function not found"


class TestResolveCached:
    async def test_caches_short_lived_result(self, store, board, user, resolver):
        cache = CacheManager()
        assign(store, user["id"], make_profile(store, "Readers", [board["tasks-list"]])["id"])

        first = await resolve_cached(resolver, cache, user["id"], SYSTEM)
        override(store, user["id"], board["tasks-list"], granted=False)
        second = await resolve_cached(resolver, cache, user["id"], SYSTEM)

        assert first.granted_keys == second.granted_keys == {"tasks-list"}

        await cache.invalidate_pattern(CacheKeys.user_permissions_pattern(user["id"]))
        third = await resolve_cached(resolver, cache, user["id"], SYSTEM)
        assert third.granted_keys == set()

    async def test_unknown_system_is_not_cached(self, user, resolver):
        cache = CacheManager()
        await resolve_cached(resolver, cache, user["id"], "ghost")
        assert await cache.get(CacheKeys.user_permissions(user["id"], "ghost")) is None
