# tests/unit/orchestrator/test_unit_orchestrator.py - v1
"""Tests for orchestrator/operation_orchestrator.py with fake executables and runner."""

from __future__ import annotations

import pytest

from weaverkit.cache.base_cache_store import FreshnessPolicy
from weaverkit.cache.json_store import JsonCacheStore
from weaverkit.config.models import ProjectConfig, merge_config
from weaverkit.core.errors import CommandTimeoutError, DownloadError, InputUnreadable
from weaverkit.orchestrator.models import OperationRequest, OperationState
from weaverkit.orchestrator.operation_orchestrator import OperationOrchestrator

S = OperationState


@pytest.fixture
def cache(settings, clock):
    store = JsonCacheStore(settings.cache_root, policy=FreshnessPolicy.from_settings(settings), clock=clock)
    yield store
    store.close()


@pytest.fixture
def make_orchestrator(cache, fake_manager, settings):
    def _make(runner, **overrides):
        s = settings.model_copy(update=overrides) if overrides else settings
        return OperationOrchestrator(cache, fake_manager, runner, s)
    return _make


def _req(operation="validate", **kwargs) -> OperationRequest:
    return OperationRequest(operation=operation, project="api", **kwargs)


class TestCaching:
    def test_miss_then_hit(self, make_orchestrator, make_runner, ok, resolved_config):
        runner = make_runner(ok("Registry valid\n"))
        orch = make_orchestrator(runner)

        first = orch.run(_req(), resolved_config)
        assert first.success
        assert first.states == [
            S.FINGERPRINTING, S.CACHE_CHECK, S.RESOLVING_EXECUTABLE,
            S.EXECUTING, S.STORING, S.DONE,
        ]
        assert first.from_cache is False

        second = orch.run(_req(), resolved_config)
        assert second.states == [S.FINGERPRINTING, S.CACHE_CHECK, S.CACHE_HIT, S.DONE]
        assert second.from_cache is True
        assert second.result.output == "Registry valid\n"
        assert second.fingerprint == first.fingerprint
        assert len(runner.invocations) == 1

    def test_input_change_is_a_miss(self, make_orchestrator, make_runner, ok, resolved_config, project_root):
        runner = make_runner(ok(), ok())
        orch = make_orchestrator(runner)
        first = orch.run(_req(), resolved_config)

        (project_root / "weaver" / "registry.yaml").write_text("groups: []\n", encoding="utf-8")
        second = orch.run(_req(), resolved_config)

        assert second.fingerprint != first.fingerprint
        assert second.from_cache is False
        assert len(runner.invocations) == 2

    def test_non_schema_file_ignored(self, make_orchestrator, make_runner, resolved_config, project_root):
        runner = make_runner()
        orch = make_orchestrator(runner)
        orch.run(_req(), resolved_config)
        (project_root / "weaver" / "README.md").write_text("changed\n", encoding="utf-8")
        assert orch.run(_req(), resolved_config).from_cache is True

    def test_options_change_fingerprint(self, make_orchestrator, make_runner, resolved_config):
        orch = make_orchestrator(make_runner())
        plain = orch.run(_req(), resolved_config)
        flagged = orch.run(_req(options={"quiet": True}), resolved_config)
        assert plain.fingerprint != flagged.fingerprint
        assert flagged.from_cache is False

    def test_force_bypasses_lookup_but_stores(self, make_orchestrator, make_runner, ok, resolved_config):
        runner = make_runner(ok("old"), ok("new"))
        orch = make_orchestrator(runner)
        orch.run(_req(), resolved_config)

        forced = orch.run(_req(force=True), resolved_config)
        assert S.CACHE_CHECK not in forced.states
        assert S.STORING in forced.states
        assert orch.run(_req(), resolved_config).result.output == "new"

    def test_cache_disabled(self, make_orchestrator, make_runner, resolved_config):
        runner = make_runner()
        orch = make_orchestrator(runner, cache_enabled=False)
        orch.run(_req(), resolved_config)
        outcome = orch.run(_req(), resolved_config)
        assert S.CACHE_CHECK not in outcome.states
        assert S.STORING not in outcome.states
        assert len(runner.invocations) == 2

    def test_failed_validate_is_cached(self, make_orchestrator, make_runner, failed, resolved_config):
        runner = make_runner(failed("Error: missing brief"))
        orch = make_orchestrator(runner)

        first = orch.run(_req(), resolved_config)
        assert not first.success
        assert first.states[-2:] == [S.STORING, S.ERROR]
        assert first.error_code == "EXECUTION_ERROR"
        assert first.result.validation.valid is False

        second = orch.run(_req(), resolved_config)
        assert second.from_cache
        assert not second.success
        assert second.state == S.DONE
        assert len(runner.invocations) == 1

    def test_failed_generate_not_cached(self, make_orchestrator, make_runner, failed, resolved_config):
        runner = make_runner(failed(), failed())
        orch = make_orchestrator(runner)
        first = orch.run(_req("generate"), resolved_config)
        assert S.STORING not in first.states
        assert first.state == S.ERROR
        orch.run(_req("generate"), resolved_config)
        assert len(runner.invocations) == 2


class TestExecution:
    def test_invocation(self, make_orchestrator, make_runner, fake_manager, resolved_config, project_root):
        runner = make_runner()
        make_orchestrator(runner).run(_req("generate"), resolved_config)

        inv = runner.invocations[0]
        assert inv.executable == fake_manager.path
        assert inv.args[:2] == ["registry", "generate"]
        assert inv.cwd == project_root
        assert inv.environment == {"RUST_LOG": "info", "WEAVER_PROFILE": "ci"}
        assert inv.timeout_s == 10.0
        assert fake_manager.resolved == ["0.13.2"]
        assert fake_manager.pinned == ["0.13.2"]

    def test_generated_files_parsed(self, make_orchestrator, make_runner, ok, resolved_config):
        runner = make_runner(ok("Generated: 'dist/weaver/attributes.py'\n"))
        outcome = make_orchestrator(runner).run(_req("generate"), resolved_config)
        assert outcome.result.files_generated == ["dist/weaver/attributes.py"]

    def test_dry_run(self, make_orchestrator, make_runner, fake_manager, resolved_config):
        runner = make_runner()
        outcome = make_orchestrator(runner).run(_req(dry_run=True), resolved_config)
        assert outcome.success and outcome.dry_run
        assert outcome.states == [S.FINGERPRINTING, S.DONE]
        assert outcome.command[:3] == ["weaver", "registry", "check"]
        assert outcome.description.startswith("Would run: weaver registry check")
        assert runner.invocations == []
        assert fake_manager.resolved == []

    def test_skipped(self, make_orchestrator, make_runner, workspace_config, project_root):
        config = merge_config(
            workspace_config, ProjectConfig(skip_validation=True),
            project_name="api", project_root=project_root,
        )
        runner = make_runner()
        outcome = make_orchestrator(runner).run(_req(), config)
        assert outcome.success and outcome.skipped
        assert outcome.states == [S.DONE]
        assert runner.invocations == []

    def test_disabled_project_skips_everything(self, make_orchestrator, make_runner, workspace_config, project_root):
        config = merge_config(
            workspace_config, ProjectConfig(enabled=False),
            project_name="api", project_root=project_root,
        )
        assert make_orchestrator(make_runner()).run(_req("docs"), config).skipped

    def test_timeout_retried_for_idempotent(self, make_orchestrator, make_runner, ok, resolved_config):
        runner = make_runner(CommandTimeoutError("validate", 10.0), ok("late but fine"))
        outcome = make_orchestrator(runner).run(_req(), resolved_config)
        assert outcome.success
        assert len(runner.invocations) == 2

    def test_timeout_not_retried_for_generate(self, make_orchestrator, make_runner, resolved_config):
        runner = make_runner(
            CommandTimeoutError("generate", 10.0, stdout="Generated: 'a.py'", stderr="slow"),
        )
        outcome = make_orchestrator(runner).run(_req("generate"), resolved_config)
        assert not outcome.success
        assert outcome.error_code == "TIMEOUT"
        assert outcome.state == S.ERROR
        assert outcome.result.output == "Generated: 'a.py'"
        assert "slow" in outcome.error
        assert len(runner.invocations) == 1

    def test_download_error(self, make_orchestrator, make_runner, fake_manager, resolved_config):
        fake_manager.error = DownloadError("HTTP 404", version="0.13.2", retryable=False)
        outcome = make_orchestrator(make_runner()).run(_req(), resolved_config)
        assert not outcome.success
        assert outcome.error_code == "DOWNLOAD_ERROR"
        assert outcome.states[-2:] == [S.RESOLVING_EXECUTABLE, S.ERROR]
        assert outcome.suggestions

    def test_expired_operation_timeout(self, make_orchestrator, make_runner, resolved_config):
        runner = make_runner()
        outcome = make_orchestrator(runner).run(_req(timeout_s=0), resolved_config)
        assert outcome.error_code == "OPERATION_TIMEOUT"
        assert runner.invocations == []


class TestUnreadableInput:
    @pytest.fixture(autouse=True)
    def unreadable(self, monkeypatch):
        def boom(*args, **kwargs):
            raise InputUnreadable("weaver/registry.yaml", "permission denied")

        monkeypatch.setattr(
            "weaverkit.orchestrator.operation_orchestrator.build_fingerprint", boom
        )

    def test_fail_policy(self, make_orchestrator, make_runner, resolved_config):
        runner = make_runner()
        outcome = make_orchestrator(runner).run(_req(), resolved_config)
        assert outcome.error_code == "INPUT_UNREADABLE"
        assert outcome.states == [S.FINGERPRINTING, S.ERROR]
        assert runner.invocations == []

    def test_miss_policy(self, make_orchestrator, make_runner, resolved_config):
        runner = make_runner()
        outcome = make_orchestrator(runner, unreadable_input_policy="miss").run(_req(), resolved_config)
        assert outcome.success
        assert outcome.fingerprint is None
        assert S.CACHE_CHECK not in outcome.states
        assert S.STORING not in outcome.states
        assert len(runner.invocations) == 1


class TestClean:
    @pytest.fixture
    def generated(self, resolved_config):
        out = resolved_config.output_directory
        (out / "docs").mkdir(parents=True)
        (out / "attributes.py").write_text("x = 1\n", encoding="utf-8")
        (out / "docs" / "index.md").write_text("# docs\n", encoding="utf-8")
        return out

    def test_removes_files_and_cache(self, make_orchestrator, make_runner, cache, resolved_config, generated):
        runner = make_runner()
        orch = make_orchestrator(runner)
        orch.run(_req(), resolved_config)
        assert len(cache.keys()) == 1

        outcome = orch.run(_req("clean"), resolved_config)
        assert outcome.success
        assert outcome.states == [S.EXECUTING, S.DONE]
        assert outcome.result.files_deleted == [
            "dist/weaver/attributes.py", "dist/weaver/docs/index.md",
        ]
        assert not any(p.is_file() for p in generated.rglob("*"))
        assert not (generated / "docs").exists()
        assert cache.keys() == []
        assert len(runner.invocations) == 1

    def test_dry_run_keeps_files(self, make_orchestrator, make_runner, resolved_config, generated):
        outcome = make_orchestrator(make_runner()).run(_req("clean", dry_run=True), resolved_config)
        assert outcome.dry_run
        assert "Would remove: 'dist/weaver/attributes.py'" in outcome.result.output
        assert (generated / "attributes.py").exists()

    def test_nothing_to_clean(self, make_orchestrator, make_runner, resolved_config):
        outcome = make_orchestrator(make_runner()).run(_req("clean"), resolved_config)
        assert outcome.success
        assert outcome.result.files_deleted == []

    def test_clean_never_cached(self, make_orchestrator, make_runner, cache, resolved_config, generated):
        make_orchestrator(make_runner()).run(_req("clean"), resolved_config)
        assert cache.keys() == []


class TestRunMany:
    def test_preserves_order(self, make_orchestrator, make_runner, workspace_config, tmp_path):
        items = []
        for name in ("alpha", "beta", "gamma", "delta"):
            root = tmp_path / name
            (root / "weaver").mkdir(parents=True)
            (root / "weaver" / "registry.yaml").write_text(f"name: {name}\n", encoding="utf-8")
            config = merge_config(workspace_config, ProjectConfig(), project_name=name, project_root=root)
            items.append((OperationRequest(operation="validate", project=name), config))

        runner = make_runner()
        outcomes = make_orchestrator(runner).run_many(items, max_workers=3)
        assert [o.project for o in outcomes] == ["alpha", "beta", "gamma", "delta"]
        assert all(o.success for o in outcomes)
        assert len(runner.invocations) == 4

    def test_empty(self, make_orchestrator, make_runner):
        assert make_orchestrator(make_runner()).run_many([]) == []

    def test_unexpected_exception_becomes_outcome(self, make_orchestrator, make_runner, resolved_config):
        runner = make_runner(RuntimeError("runner exploded"))
        outcomes = make_orchestrator(runner).run_many([(_req(), resolved_config)])
        assert outcomes[0].error_code == "INTERNAL_ERROR"
        assert "runner exploded" in outcomes[0].error
