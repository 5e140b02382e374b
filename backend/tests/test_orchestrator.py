"""Tests for the generation and refinement orchestrators and the run supervisor."""

import json

import pytest

from buildable.core.errors import ProviderUnavailable
from buildable.core.orchestrator import (
    GenerationOrchestrator,
    RefinementOrchestrator,
    RunConfig,
    order_file_specs,
)
from buildable.core.tasks import RunSupervisor
from buildable.models.credits import Complexity
from buildable.models.generation import FileSpec, GenerationOptions, SessionStatus

from conftest import MemoryFileStore, PipelineModel, ScriptedProvider, plan_json, single_provider_engine

SESSION_ID = "session-1"
WORKSPACE_ID = "workspace-1"

THREE_FILE_PLAN = plan_json([
    {"path": "src/App.tsx", "purpose": "Root component", "dependencies": ["src/Item.tsx", "src/util.ts"]},
    {"path": "src/Item.tsx", "purpose": "List item", "dependencies": ["src/util.ts"]},
    {"path": "src/util.ts", "purpose": "Helpers", "dependencies": []},
])


def config(**kwargs) -> RunConfig:
    return RunConfig(
        session_id=SESSION_ID,
        workspace_id=WORKSPACE_ID,
        prompt="Build a todo app",
        user_id="user-1",
        **kwargs,
    )


def generation(model, session_ledger, file_store, **kwargs) -> GenerationOrchestrator:
    session_ledger.create(SESSION_ID)
    engine = single_provider_engine(ScriptedProvider(handler=model))
    return GenerationOrchestrator(engine, session_ledger, file_store, config(**kwargs))


class FailingFileStore(MemoryFileStore):
    """File store whose writes fail for one path (optionally only for one kind of write)."""

    def __init__(self, path, reasoning=None):
        super().__init__()
        self.failing_path = path
        self.failing_reasoning = reasoning

    async def upsert_file(self, workspace_id, path, content, **audit):
        if path == self.failing_path and self.failing_reasoning in (None, audit.get("reasoning")):
            raise OSError("disk full")
        await super().upsert_file(workspace_id, path, content, **audit)


class TestOrderFileSpecs:

    def test_dependency_count_orders_files(self):
        specs = [
            FileSpec(path="c", dependencies=["a", "b"]),
            FileSpec(path="b", dependencies=["a"]),
            FileSpec(path="a"),
        ]

        assert [s.path for s in order_file_specs(specs)] == ["a", "b", "c"]

    def test_explicit_priority_wins_and_sort_is_stable(self):
        specs = [
            FileSpec(path="x", priority=2),
            FileSpec(path="y", dependencies=["x", "z"], priority=1),
            FileSpec(path="z", priority=2),
        ]

        assert [s.path for s in order_file_specs(specs)] == ["y", "x", "z"]

    def test_duplicate_paths_keep_first_entry(self):
        specs = [
            FileSpec(path="a", purpose="first"),
            FileSpec(path="a", purpose="second"),
        ]

        ordered = order_file_specs(specs)

        assert len(ordered) == 1
        assert ordered[0].purpose == "first"


class TestSessionStatus:

    def test_generation_path(self):
        path = ["pending", "planning", "scaffolding", "generating", "generating", "validating", "completed"]

        for current, new in zip(path, path[1:]):
            assert SessionStatus.can_transition(current, new)

    def test_refinement_path(self):
        assert SessionStatus.can_transition(SessionStatus.PENDING, SessionStatus.GENERATING)
        assert SessionStatus.can_transition(SessionStatus.GENERATING, SessionStatus.COMPLETED)

    def test_failed_reachable_from_any_active_status(self):
        for status in SessionStatus:
            if not status.is_terminal:
                assert SessionStatus.can_transition(status, SessionStatus.FAILED)

    def test_terminal_statuses_are_final(self):
        for status in SessionStatus:
            assert not SessionStatus.can_transition(SessionStatus.COMPLETED, status)
            assert not SessionStatus.can_transition(SessionStatus.FAILED, status)

    def test_out_of_order_transitions_are_refused(self):
        assert not SessionStatus.can_transition(SessionStatus.PENDING, SessionStatus.VALIDATING)
        assert not SessionStatus.can_transition(SessionStatus.PLANNING, SessionStatus.GENERATING)
        assert not SessionStatus.can_transition(SessionStatus.VALIDATING, SessionStatus.GENERATING)


class TestGenerationOrchestrator:

    @pytest.mark.asyncio
    async def test_full_run_status_sequence(self, session_ledger, file_store):
        model = PipelineModel(THREE_FILE_PLAN)
        orchestrator = generation(model, session_ledger, file_store)

        result = await orchestrator.run()

        assert result.success is True
        assert session_ledger.history[SESSION_ID] == [
            SessionStatus.PLANNING,
            SessionStatus.SCAFFOLDING,
            SessionStatus.GENERATING,
            SessionStatus.GENERATING,
            SessionStatus.GENERATING,
            SessionStatus.GENERATING,
            SessionStatus.VALIDATING,
            SessionStatus.COMPLETED,
        ]

        session = session_ledger.sessions[SESSION_ID]
        assert session["files_planned"] == 3
        assert session["files_generated"] == 3
        assert session["plan"]["projectType"] == "app"
        assert session["suggestions"][0]["title"] == "Add tests"
        assert session["tokens_used"] == result.total_tokens
        assert session["credits_used"] == result.credits_used
        assert all(r["validated"] for r in session["file_results"])

    @pytest.mark.asyncio
    async def test_files_generated_in_dependency_order(self, session_ledger, file_store):
        model = PipelineModel(THREE_FILE_PLAN)
        orchestrator = generation(model, session_ledger, file_store)

        await orchestrator.run()

        assert model.generated_paths == ["src/util.ts", "src/Item.tsx", "src/App.tsx"]
        assert file_store.files[WORKSPACE_ID]["src/util.ts"] == "// src/util.ts"

    @pytest.mark.asyncio
    async def test_dependency_contents_are_passed_as_context(self, session_ledger, file_store):
        prompts = {}
        model = PipelineModel(THREE_FILE_PLAN)

        def recording(system_prompt, user_prompt):
            if user_prompt.startswith("Generate the file:"):
                prompts[user_prompt.splitlines()[0]] = user_prompt
            return model(system_prompt, user_prompt)

        orchestrator = generation(recording, session_ledger, file_store)
        await orchestrator.run()

        app_prompt = prompts["Generate the file: src/App.tsx"]
        assert "### src/util.ts" in app_prompt
        assert "### src/Item.tsx" in app_prompt
        assert "Dependency files" not in prompts["Generate the file: src/util.ts"]

    @pytest.mark.asyncio
    async def test_validation_failures_do_not_fail_the_run(self, session_ledger, file_store):
        def verdicts(path):
            if path == "src/Item.tsx":
                return json.dumps({"valid": False, "issues": ["Missing export"]})
            return '{"valid": true}'

        model = PipelineModel(THREE_FILE_PLAN, verdicts=verdicts)
        orchestrator = generation(model, session_ledger, file_store)

        result = await orchestrator.run()

        assert result.success is True
        assert session_ledger.sessions[SESSION_ID]["status"] == SessionStatus.COMPLETED

        item = next(f for f in result.files if f.path == "src/Item.tsx")
        assert item.validated is False
        assert item.issues == ["Missing export"]
        assert model.validated_paths.count("src/Item.tsx") == 3
        assert model.fixed_paths.count("src/Item.tsx") == 3

        results = {r["path"]: r for r in session_ledger.sessions[SESSION_ID]["file_results"]}
        assert results["src/Item.tsx"] == {"path": "src/Item.tsx", "validated": False, "issues": ["Missing export"]}
        assert results["src/util.ts"]["validated"] is True

        # The last fix is what the workspace keeps
        assert file_store.files[WORKSPACE_ID]["src/Item.tsx"] == "// fixed src/Item.tsx"

    @pytest.mark.asyncio
    async def test_validation_retries_option_overrides_default(self, session_ledger, file_store):
        model = PipelineModel(
            THREE_FILE_PLAN,
            verdicts=lambda path: '{"valid": false, "issues": ["bad"]}',
        )
        orchestrator = generation(
            model,
            session_ledger,
            file_store,
            options=GenerationOptions(max_validation_retries=1),
        )

        await orchestrator.run()

        assert len(model.validated_paths) == 3

    @pytest.mark.asyncio
    async def test_failed_file_is_skipped(self, session_ledger, file_store):
        model = PipelineModel(THREE_FILE_PLAN, failures={"src/Item.tsx": ProviderUnavailable("down")})
        orchestrator = generation(model, session_ledger, file_store)

        result = await orchestrator.run()

        assert result.success is True
        assert [f.path for f in result.files] == ["src/util.ts", "src/App.tsx"]
        session = session_ledger.sessions[SESSION_ID]
        assert session["files_planned"] == 3
        assert session["files_generated"] == 2
        assert "src/Item.tsx" not in file_store.files[WORKSPACE_ID]

    @pytest.mark.asyncio
    async def test_file_that_cannot_be_saved_is_skipped(self, session_ledger):
        store = FailingFileStore("src/Item.tsx")
        model = PipelineModel(THREE_FILE_PLAN)
        orchestrator = generation(model, session_ledger, store)

        result = await orchestrator.run()

        assert result.success is True
        assert model.generated_paths == ["src/util.ts", "src/Item.tsx", "src/App.tsx"]
        assert [f.path for f in result.files] == ["src/util.ts", "src/App.tsx"]
        assert set(store.files[WORKSPACE_ID]) == {"src/util.ts", "src/App.tsx"}

        session = session_ledger.sessions[SESSION_ID]
        assert session["status"] == SessionStatus.COMPLETED
        assert session["files_generated"] == 2
        # The unsaved file's generation call is still counted
        assert result.total_tokens == 30 * (1 + 3 + 2 + 1)

    @pytest.mark.asyncio
    async def test_fix_that_cannot_be_saved_does_not_fail_the_run(self, session_ledger):
        store = FailingFileStore("src/Item.tsx", reasoning="Validation fix")
        model = PipelineModel(
            THREE_FILE_PLAN,
            verdicts=lambda path: '{"valid": false, "issues": ["bad"]}' if path == "src/Item.tsx" else '{"valid": true}',
        )
        orchestrator = generation(model, session_ledger, store, options=GenerationOptions(max_validation_retries=1))

        result = await orchestrator.run()

        assert result.success is True
        assert model.fixed_paths == ["src/Item.tsx"]
        assert store.files[WORKSPACE_ID]["src/Item.tsx"] == "// src/Item.tsx"

    @pytest.mark.asyncio
    async def test_unparseable_plan_fails_the_session(self, session_ledger, file_store):
        model = PipelineModel("Sure! I'd love to help you build that.")
        orchestrator = generation(model, session_ledger, file_store)

        result = await orchestrator.run()

        assert result.success is False
        session = session_ledger.sessions[SESSION_ID]
        assert session["status"] == SessionStatus.FAILED
        assert "project plan" in session["error_message"]
        assert session["files_generated"] == 0
        # The plan call was made and is billed even though it was unusable
        assert session["tokens_used"] == 30
        assert result.total_tokens == 30
        assert session_ledger.history[SESSION_ID] == [SessionStatus.PLANNING, SessionStatus.FAILED]

    @pytest.mark.asyncio
    async def test_cancel_stops_at_next_file_boundary(self, session_ledger, file_store):
        def cancel_during_first_file(path):
            if path == "src/util.ts":
                session_ledger.cancel(SESSION_ID)

        model = PipelineModel(THREE_FILE_PLAN, on_generate=cancel_during_first_file)
        orchestrator = generation(model, session_ledger, file_store)

        result = await orchestrator.run()

        assert result.success is False
        assert result.error == "Cancelled by user"
        assert model.generated_paths == ["src/util.ts"]
        assert model.validated_paths == []

        session = session_ledger.sessions[SESSION_ID]
        assert session["status"] == SessionStatus.FAILED
        assert session["error_message"] == "Cancelled by user"

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, session_ledger, file_store):
        model = PipelineModel(THREE_FILE_PLAN)
        orchestrator = generation(model, session_ledger, file_store)
        session_ledger.cancel(SESSION_ID)

        result = await orchestrator.run()

        assert result.success is False
        assert result.total_tokens == 0
        assert session_ledger.history[SESSION_ID] == []

    @pytest.mark.asyncio
    async def test_template_scaffold_files_are_available(self, session_ledger, file_store):
        model = PipelineModel(THREE_FILE_PLAN)
        orchestrator = generation(
            model,
            session_ledger,
            file_store,
            options=GenerationOptions(template="react-vite"),
        )

        await orchestrator.run()

        files = file_store.files[WORKSPACE_ID]
        assert "package.json" in files
        assert "src/App.tsx" in files

    @pytest.mark.asyncio
    async def test_suggestion_failure_is_not_fatal(self, session_ledger, file_store):
        model = PipelineModel(THREE_FILE_PLAN)

        def no_suggestions(system_prompt, user_prompt):
            if "suggest next steps" in system_prompt:
                return "no"
            return model(system_prompt, user_prompt)

        orchestrator = generation(no_suggestions, session_ledger, file_store)

        result = await orchestrator.run()

        assert result.success is True
        assert result.suggestions == []
        # plan, three files, three validations and the unusable suggestions
        assert result.total_tokens == 30 * 8


class TestRefinementOrchestrator:

    @pytest.mark.asyncio
    async def test_modifies_and_creates_files(self, session_ledger, file_store):
        file_store.files[WORKSPACE_ID] = {"src/App.tsx": "old app"}
        analysis = json.dumps({
            "filesToModify": [
                {"path": "src/App.tsx", "changes": "Add a header"},
                {"path": "src/Missing.tsx", "changes": "Does not exist"},
            ],
            "newFiles": [{"path": "src/Header.tsx", "purpose": "Page header"}],
        })
        model = PipelineModel(plan="", analysis=analysis)
        session_ledger.create(SESSION_ID)
        engine = single_provider_engine(ScriptedProvider(handler=model))
        orchestrator = RefinementOrchestrator(
            engine,
            session_ledger,
            file_store,
            config(previous_context="A todo app"),
        )

        result = await orchestrator.run()

        assert result.success is True
        assert file_store.files[WORKSPACE_ID] == {
            "src/App.tsx": "// modified src/App.tsx",
            "src/Header.tsx": "// created src/Header.tsx",
        }
        assert session_ledger.history[SESSION_ID] == [
            SessionStatus.GENERATING,
            SessionStatus.GENERATING,
            SessionStatus.GENERATING,
            SessionStatus.GENERATING,
            SessionStatus.COMPLETED,
        ]
        session = session_ledger.sessions[SESSION_ID]
        assert session["files_planned"] == 2
        assert session["files_generated"] == 2
        assert all(not r["validated"] for r in session["file_results"])

    @pytest.mark.asyncio
    async def test_file_that_cannot_be_saved_is_skipped(self, session_ledger):
        store = FailingFileStore("src/App.tsx")
        store.files[WORKSPACE_ID] = {"src/App.tsx": "old app"}
        analysis = json.dumps({
            "filesToModify": [{"path": "src/App.tsx", "changes": "Add a header"}],
            "newFiles": [{"path": "src/Header.tsx", "purpose": "Page header"}],
        })
        session_ledger.create(SESSION_ID)
        engine = single_provider_engine(ScriptedProvider(handler=PipelineModel(plan="", analysis=analysis)))
        orchestrator = RefinementOrchestrator(engine, session_ledger, store, config())

        result = await orchestrator.run()

        assert result.success is True
        assert [f.path for f in result.files] == ["src/Header.tsx"]
        assert store.files[WORKSPACE_ID] == {
            "src/App.tsx": "old app",
            "src/Header.tsx": "// created src/Header.tsx",
        }
        session = session_ledger.sessions[SESSION_ID]
        assert session["status"] == SessionStatus.COMPLETED
        assert session["files_generated"] == 1
        assert result.total_tokens == 30 * 3


class TestRunSupervisor:

    @pytest.mark.asyncio
    async def test_releases_workspace_and_charges_once(self, session_ledger, file_store, credit_ledger, workspace_lock):
        await workspace_lock.acquire(WORKSPACE_ID)
        orchestrator = generation(PipelineModel(THREE_FILE_PLAN), session_ledger, file_store, complexity=Complexity.HIGH)
        supervisor = RunSupervisor(credit_ledger, workspace_lock)

        task = supervisor.spawn_run(orchestrator)
        result = await task

        assert result.success is True
        assert workspace_lock.released == [(WORKSPACE_ID, True)]
        assert credit_ledger.deductions == [("user-1", result.total_tokens, Complexity.HIGH, SESSION_ID)]
        assert supervisor.active == 0

    @pytest.mark.asyncio
    async def test_failed_run_marks_workspace_errored(self, session_ledger, file_store, credit_ledger, workspace_lock):
        await workspace_lock.acquire(WORKSPACE_ID)
        orchestrator = generation(PipelineModel("not a plan"), session_ledger, file_store)
        supervisor = RunSupervisor(credit_ledger, workspace_lock)

        await supervisor.spawn_run(orchestrator)

        assert workspace_lock.released == [(WORKSPACE_ID, False)]
        # Planning still consumed tokens
        assert len(credit_ledger.deductions) == 1
        assert credit_ledger.deductions[0][1] == 30

    @pytest.mark.asyncio
    async def test_no_charge_without_tokens(self, session_ledger, file_store, credit_ledger, workspace_lock):
        orchestrator = generation(PipelineModel(THREE_FILE_PLAN), session_ledger, file_store)
        session_ledger.cancel(SESSION_ID)
        supervisor = RunSupervisor(credit_ledger, workspace_lock)

        await supervisor.spawn_run(orchestrator)

        assert credit_ledger.deductions == []
        assert workspace_lock.released == [(WORKSPACE_ID, False)]
