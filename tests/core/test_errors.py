"""Tests for basestack.core.errors."""

from __future__ import annotations

from basestack.core.errors import (
    AssetDownloadError,
    BasestackError,
    ConfigError,
    ContainerNotFound,
    CyclicDependency,
    ErrorCategory,
    ErrorContext,
    InvalidClaims,
    NetworkCreateFailure,
    NetworkNotFound,
    RuntimeCommandError,
    RuntimeGatewayError,
    RuntimeUnavailable,
    ServiceStartFailure,
    VolumeLayoutError,
)


class TestErrorContext:
    def test_empty_context(self):
        assert ErrorContext().to_dict() == {}

    def test_only_set_fields(self):
        ctx = ErrorContext(service="db", metadata={"attempt": 1})
        assert ctx.to_dict() == {"service": "db", "attempt": 1}


class TestBasestackError:
    def test_default_category(self):
        assert BasestackError("x").category == ErrorCategory.INTERNAL
        assert ConfigError("x").category == ErrorCategory.CONFIG
        assert InvalidClaims(["role"]).category == ErrorCategory.AUTH
        assert RuntimeUnavailable("x").category == ErrorCategory.RUNTIME
        assert AssetDownloadError("http://x").category == ErrorCategory.STORAGE
        assert VolumeLayoutError("/srv").category == ErrorCategory.STORAGE

    def test_explicit_category_wins(self):
        err = BasestackError("x", category=ErrorCategory.RUNTIME)
        assert err.category == ErrorCategory.RUNTIME

    def test_cause_is_chained(self):
        cause = ValueError("inner")
        err = BasestackError("outer", cause=cause)
        assert err.__cause__ is cause

    def test_to_dict(self):
        err = ServiceStartFailure("auth", cause=RuntimeCommandError("exit 125"))
        data = err.to_dict()
        assert data["error_type"] == "ServiceStartFailure"
        assert data["category"] == "ORCHESTRATION"
        assert data["context"] == {"service": "auth", "stage": "service"}
        assert data["cause"] == "exit 125"
        assert "auth" in data["message"]

    def test_with_context(self):
        err = BasestackError("x").with_context(run_id="abc", attempt=2)
        assert err.context.run_id == "abc"
        assert err.context.metadata == {"attempt": 2}

    def test_repr(self):
        assert repr(ConfigError("bad")) == "ConfigError('bad', category=CONFIG)"


class TestTaxonomy:
    def test_runtime_hierarchy(self):
        assert issubclass(ContainerNotFound, RuntimeCommandError)
        assert issubclass(NetworkNotFound, RuntimeCommandError)
        assert issubclass(RuntimeCommandError, RuntimeGatewayError)
        assert issubclass(RuntimeUnavailable, RuntimeGatewayError)

    def test_network_failure_context(self):
        err = NetworkCreateFailure("supabase-network")
        assert err.network == "supabase-network"
        assert err.context.stage == "network"

    def test_cycle_message(self):
        err = CyclicDependency(["a", "b", "a"])
        assert "a -> b -> a" in err.message

    def test_command_error_fields(self):
        err = RuntimeCommandError("failed", returncode=125, stderr="conflict")
        assert err.returncode == 125
        assert err.stderr == "conflict"


class TestVolumeLayoutError:
    def test_carries_path_stage_and_cause(self):
        cause = PermissionError("denied")
        err = VolumeLayoutError("/srv/supabase", cause=cause)
        assert err.path == "/srv/supabase"
        assert err.__cause__ is cause
        assert err.to_dict()["context"] == {"stage": "volumes"}
        assert "denied" in err.message
