# =============================================================================
# tests/unit/test_limit_gate.py
# Unit Tests for LimitGate
# =============================================================================

import pytest


class TestEnforceLimit:
    """Test plan usage gating"""

    @pytest.mark.asyncio
    async def test_at_limit_blocks_and_notifies(self, fake_supabase, notifier):
        """current=5, limit=5 -> False with a blocking notification"""
        from site_core.subscription.limit_gate import LimitGate
        from site_core.ui.notifications import DESTRUCTIVE

        fake_supabase.rpc_results["check_usage_limit"] = {"allowed": False, "current": 5, "limit": 5}
        gate = LimitGate(fake_supabase, notifier)

        assert await gate.enforce_limit("projects") is False
        assert notifier.history[-1].title == "Limit Reached"
        assert notifier.history[-1].variant == DESTRUCTIVE
        assert "project limit" in notifier.history[-1].description
        assert fake_supabase.rpc_calls == [("check_usage_limit", {"limit_type": "projects", "document_id": None})]

    @pytest.mark.asyncio
    async def test_below_limit_allows_silently(self, fake_supabase, notifier):
        """current=4, limit=5 -> True, no notification"""
        from site_core.subscription.limit_gate import LimitGate

        fake_supabase.rpc_results["check_usage_limit"] = {"allowed": True, "current": 4, "limit": 5}
        gate = LimitGate(fake_supabase, notifier)

        assert await gate.enforce_limit("projects") is True
        assert notifier.history == []
        assert gate.limits["projects"].current == 4

    @pytest.mark.asyncio
    async def test_backend_failure_denies(self, fake_supabase, notifier):
        """A failed check reports and is treated as not allowed"""
        from site_core.subscription.limit_gate import LimitGate

        fake_supabase.rpc_results["check_usage_limit"] = RuntimeError("rpc down")
        gate = LimitGate(fake_supabase, notifier)

        result = await gate.check_limit("storage")

        assert result.allowed is False
        assert notifier.history[0].title == "Limit check failed"

    @pytest.mark.asyncio
    async def test_backend_failure_notifies_once(self, fake_supabase, notifier):
        """enforce_limit on a failed check shows only the failure toast"""
        from site_core.subscription.limit_gate import LimitGate

        fake_supabase.rpc_results["check_usage_limit"] = RuntimeError("rpc down")
        gate = LimitGate(fake_supabase, notifier)

        assert await gate.enforce_limit("projects") is False
        assert [n.title for n in notifier.history] == ["Limit check failed"]
        assert gate.limits["projects"].failed is True

    @pytest.mark.asyncio
    async def test_malformed_response_denies(self, fake_supabase, notifier):
        """Responses without the aggregate fields fail closed"""
        from site_core.subscription.limit_gate import LimitGate

        fake_supabase.rpc_results["check_usage_limit"] = [{"allowed": True}]
        gate = LimitGate(fake_supabase, notifier)

        assert (await gate.check_limit("users")).allowed is False

    @pytest.mark.asyncio
    async def test_unknown_kind_rejected(self, fake_supabase, notifier):
        """Unknown limit kinds raise ValueError"""
        from site_core.subscription.limit_gate import LimitGate

        with pytest.raises(ValueError):
            await LimitGate(fake_supabase, notifier).check_limit("seats")

    @pytest.mark.asyncio
    async def test_all_limits(self, fake_supabase, notifier):
        """check_all_limits covers projects, users and storage"""
        from site_core.subscription.limit_gate import LimitGate

        fake_supabase.rpc_results["check_usage_limit"] = {"allowed": True, "current": 1, "limit": 10}
        results = await LimitGate(fake_supabase, notifier).check_all_limits()

        assert set(results) == {"projects", "users", "storage"}


class TestDocumentLimits:
    """Test per-document version/collaborator limits"""

    @pytest.mark.asyncio
    async def test_versions_require_document_id(self, fake_supabase, notifier):
        """A document kind without an id is malformed input"""
        from site_core.subscription.limit_gate import LimitGate

        with pytest.raises(ValueError):
            await LimitGate(fake_supabase, notifier).check_limit("versions")

    @pytest.mark.asyncio
    async def test_versions_counted_per_document(self, fake_supabase, notifier):
        """Rows of the document are counted against the plan limit"""
        from site_core.subscription.limit_gate import LimitGate

        fake_supabase.rpc_results["get_subscription_limits"] = {"max_versions_per_file": 3}
        fake_supabase.tables["file_versions"] = [
            {"id": 1, "document_id": "d1"},
            {"id": 2, "document_id": "d1"},
            {"id": 3, "document_id": "d2"},
        ]
        gate = LimitGate(fake_supabase, notifier)

        result = await gate.check_limit("versions", "d1")

        assert (result.allowed, result.current, result.limit) == (True, 2, 3)

    @pytest.mark.asyncio
    async def test_unlimited_plan(self, fake_supabase, notifier):
        """-1 means unlimited"""
        from site_core.subscription.limit_gate import LimitGate

        fake_supabase.rpc_results["get_subscription_limits"] = {"max_collaborators": -1}
        fake_supabase.tables["file_collaborators"] = [{"id": i, "document_id": "d1"} for i in range(50)]

        result = await LimitGate(fake_supabase, notifier).check_limit("collaborators", "d1")

        assert result.allowed is True
        assert result.unlimited is True
