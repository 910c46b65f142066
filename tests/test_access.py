"""
Tests for the ad-hoc query trust gate.
"""

import pytest

from fashion_graph.access import (
    AuthContext,
    AuthorizationError,
    Role,
    require_admin,
)


class TestAuthContext:
    """Test authorization checks."""

    def test_unauthenticated(self):
        """Test an anonymous context is refused."""
        ctx = AuthContext()
        assert not ctx.is_authenticated
        assert not ctx.is_admin
        with pytest.raises(AuthorizationError, match="Authentication required"):
            require_admin(ctx)

    def test_missing_context(self):
        """Test no context at all is refused."""
        with pytest.raises(AuthorizationError, match="Authentication required"):
            require_admin(None)

    def test_role_without_principal(self):
        """Test a role alone does not authenticate."""
        ctx = AuthContext(role=Role.ADMIN)
        assert not ctx.is_admin
        with pytest.raises(AuthorizationError):
            require_admin(ctx)

    def test_reader_cannot_run_adhoc(self):
        """Test readers are denied with their principal recorded."""
        ctx = AuthContext(principal="alice", role=Role.READER)
        assert ctx.is_authenticated
        with pytest.raises(AuthorizationError, match="role: reader") as exc_info:
            require_admin(ctx)
        assert exc_info.value.principal == "alice"

    def test_admin(self):
        """Test the admin shortcut passes the check."""
        ctx = AuthContext.admin()
        assert ctx.is_admin
        require_admin(ctx)
