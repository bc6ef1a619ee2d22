"""Tests for identity and grant provisioning."""
import pytest

from civic_core.identity import add_grants, merge_grants, provision_dual_scoped, provision_operator
from civic_core.models import FailureKind
from civic_core.schemas import Grant, Principal


def _grants(principal: Principal, scope: str) -> set[str]:
    return {g.capability for g in principal.grants_for(scope)}


class TestMergeGrants:
    """Test the client-side grant union."""

    def test_union_by_capability_and_scope(self):
        """Test that grants merge by (capability, scope)."""
        existing = [Grant(capability="GRO", scope="s1"), Grant(capability="GRO", scope="s2")]
        requested = [Grant(capability="GRO", scope="s1"), Grant(capability="CSR", scope="s1")]

        merged, added, already = merge_grants(existing, requested)

        assert [g.key for g in added] == [("CSR", "s1")]
        assert [g.key for g in already] == [("GRO", "s1")]
        assert {g.key for g in merged} == {("GRO", "s1"), ("GRO", "s2"), ("CSR", "s1")}


class TestAddGrants:
    """Test on-demand grant provisioning."""

    @pytest.mark.asyncio
    async def test_grants_on_other_scopes_are_untouched(self, ctx, stores):
        """Test that adding grants on one scope keeps grants on others."""
        stores.identity.add(Principal(
            username="clerk", scope="pg",
            grants=[
                Grant(capability="EMPLOYEE", scope="s1"),
                Grant(capability="GRO", scope="s2"),
                Grant(capability="CSR", scope="s2"),
            ],
        ))
        before_s2 = _grants(stores.identity.principals[("pg", "clerk")], "s2")

        result = await add_grants(ctx, "s1", ["EMPLOYEE", "SUPERUSER"], username="clerk", principal_scope="pg")

        after = stores.identity.principals[("pg", "clerk")]
        assert result.success
        assert [g.capability for g in result.added] == ["SUPERUSER"]
        assert [g.capability for g in result.already_held] == ["EMPLOYEE"]
        assert _grants(after, "s2") == before_s2
        assert _grants(after, "s1") == {"EMPLOYEE", "SUPERUSER"}

    @pytest.mark.asyncio
    async def test_nothing_missing_means_no_update(self, ctx, stores):
        """Test that no update is sent when every grant is held."""
        result = await add_grants(ctx, "pg", ["SUPERUSER"], principal_scope="pg")

        assert result.success
        assert result.added == []
        assert stores.identity.updates == []

    @pytest.mark.asyncio
    async def test_unknown_principal_fails_with_hint(self, ctx):
        """Test that an unknown principal fails with a retry hint."""
        result = await add_grants(ctx, "ke", ["GRO"], username="ghost", principal_scope="ke")

        assert not result.success
        assert result.kind == FailureKind.DEPENDENCY_MISSING
        assert "user_role_add(" in result.hint

    @pytest.mark.asyncio
    async def test_update_failure_is_reported(self, ctx, stores):
        """Test that a failed principal update is reported."""
        stores.identity.fail_update.add("ADMIN")

        result = await add_grants(ctx, "ke", ["GRO"], principal_scope="pg")

        assert not result.success
        assert result.kind == FailureKind.TRANSIENT_SERVICE_FAILURE


class TestProvisionOperator:
    """Test bootstrap-time find-or-create."""

    @pytest.mark.asyncio
    async def test_creates_operator_on_target_with_standard_grants(self, ctx, stores):
        """Test that the operator is created on the target with the standard grants."""
        stage = await provision_operator(ctx, "ke")

        created = stores.identity.principals[("ke", "ADMIN")]
        assert stage.details["created_principal"]
        assert _grants(created, "ke") == {"EMPLOYEE", "SUPERUSER", "GRO"}
        assert created.display_name == "Platform Admin"
        assert created.contact == "9000000001"
        assert stores.identity.passwords[("ke", "ADMIN")] == ctx.settings.default_password

    @pytest.mark.asyncio
    async def test_existing_operator_gains_only_missing_grants(self, ctx, stores):
        """Test that an existing operator gains only missing grants."""
        stores.identity.add(Principal(
            username="ADMIN", scope="ke",
            grants=[Grant(capability="EMPLOYEE", scope="ke"), Grant(capability="CSR", scope="other")],
        ))

        stage = await provision_operator(ctx, "ke")

        held = stores.identity.principals[("ke", "ADMIN")]
        assert stage.skipped == ["EMPLOYEE@ke"]
        assert sorted(stage.created) == ["GRO@ke", "SUPERUSER@ke"]
        assert _grants(held, "other") == {"CSR"}

    @pytest.mark.asyncio
    async def test_second_run_skips_every_grant(self, ctx):
        """Test that a second run skips every grant."""
        await provision_operator(ctx, "ke")
        stage = await provision_operator(ctx, "ke")

        assert stage.created == []
        assert len(stage.skipped) == 3


class TestDualScoped:
    """Test provisioning of a child scope under a parent."""

    @pytest.mark.asyncio
    async def test_child_principal_holds_both_scopes(self, ctx, stores):
        """Test that the child principal holds grants on both scopes."""
        stage = await provision_dual_scoped(ctx, "pg.citya", "pg")

        child = stores.identity.principals[("pg.citya", "ADMIN")]
        assert _grants(child, "pg") == {"EMPLOYEE", "SUPERUSER", "GRO"}
        assert _grants(child, "pg.citya") == {"EMPLOYEE", "SUPERUSER", "GRO"}
        assert stage.details["dual_scoped"]

    @pytest.mark.asyncio
    async def test_home_record_gains_child_grants_and_keeps_its_own(self, ctx, stores):
        """Test that the home record gains child grants and keeps its own."""
        await provision_dual_scoped(ctx, "pg.citya", "pg")

        home = stores.identity.principals[("pg", "ADMIN")]
        assert _grants(home, "pg.citya") == {"EMPLOYEE", "SUPERUSER", "GRO"}
        assert _grants(home, "pg") == {"SUPERUSER"}
