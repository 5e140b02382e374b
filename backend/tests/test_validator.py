"""Tests for validation/repair and model output parsing."""

import pytest
from pydantic import BaseModel

from buildable.core.errors import ProviderUnavailable, ResponseParseError
from buildable.core.parsing import TRUNCATION_MARKER, parse_model_json, strip_code_fences, truncate
from buildable.core.validator import ValidationRepairCoordinator, file_type, rules_for
from buildable.models.generation import GeneratedFile, ProjectPlan

from conftest import ScriptedProvider, single_provider_engine


class TestParsing:

    def test_strip_code_fences(self):
        assert strip_code_fences("```tsx\nconst a = 1;\n```") == "const a = 1;"
        assert strip_code_fences("  const a = 1;  ") == "const a = 1;"
        assert strip_code_fences("```\nplain\n```") == "plain"

    def test_truncate_marks_cut_content(self):
        assert truncate("short", 10) == "short"
        assert truncate("x" * 20, 5) == "xxxxx" + TRUNCATION_MARKER

    def test_parse_fenced_json(self):
        plan = parse_model_json(
            '```json\n{"projectType": "blog", "description": "A blog", "files": [{"path": "src/App.tsx"}]}\n```',
            ProjectPlan,
            "project plan",
        )

        assert plan.project_type == "blog"
        assert plan.files[0].path == "src/App.tsx"
        assert plan.files[0].dependencies == []

    def test_parse_json_embedded_in_prose(self):
        class Verdict(BaseModel):
            valid: bool

        verdict = parse_model_json('Here you go: {"valid": false} Hope that helps!', Verdict, "verdict")

        assert verdict.valid is False

    def test_parse_failure_raises_with_raw_text(self):
        with pytest.raises(ResponseParseError) as exc_info:
            parse_model_json("I could not do that", ProjectPlan, "project plan")

        assert "project plan" in str(exc_info.value)
        assert exc_info.value.raw == "I could not do that"

    def test_schema_mismatch_raises(self):
        with pytest.raises(ResponseParseError):
            parse_model_json('{"projectType": "spaceship", "description": "x", "files": []}', ProjectPlan, "plan")


class TestRules:

    def test_file_type_from_extension(self):
        assert file_type("src/App.tsx") == "typescript-react"
        assert file_type("README") == "text"

    def test_typescript_react_files_get_extra_rules(self):
        assert len(rules_for("src/App.tsx")) > len(rules_for("styles.css"))


class TestValidateAndRepair:

    @staticmethod
    def coordinator(replies):
        provider = ScriptedProvider(replies=replies)
        return ValidationRepairCoordinator(single_provider_engine(provider)), provider

    @pytest.mark.asyncio
    async def test_valid_file_needs_one_call(self):
        coordinator, provider = self.coordinator(['{"valid": true, "issues": []}'])
        file = GeneratedFile(path="src/App.tsx", content="export default App;")

        outcome = await coordinator.validate_and_repair(file)

        assert file.validated is True
        assert file.issues == []
        assert outcome.attempts == 1
        assert outcome.fixes_applied == 0
        assert outcome.tokens_used == 30
        assert provider.calls[0]["temperature"] == 0.1
        assert provider.calls[0]["max_tokens"] == 2000
        assert provider.calls[0]["json_mode"] is True

    @pytest.mark.asyncio
    async def test_invalid_file_is_fixed_then_validated(self):
        fixed = []
        coordinator, provider = self.coordinator([
            '{"valid": false, "issues": ["Missing export"]}',
            "```tsx\nexport default App;\n```",
            '{"valid": true}',
        ])
        file = GeneratedFile(path="src/App.tsx", content="const App = 1;")

        async def on_fix(path, content):
            fixed.append((path, content))

        outcome = await coordinator.validate_and_repair(file, on_fix=on_fix)

        assert file.validated is True
        assert file.content == "export default App;"
        assert outcome.attempts == 2
        assert outcome.fixes_applied == 1
        assert outcome.tokens_used == 90
        assert fixed == [("src/App.tsx", "export default App;")]
        assert "1. Missing export" in provider.calls[1]["user_prompt"]
        assert provider.calls[1]["json_mode"] is False

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        coordinator, provider = self.coordinator([
            '{"valid": false, "issues": ["Missing export"]}',
            "fix 1",
            '{"valid": false, "issues": ["Missing export"]}',
            "fix 2",
            '{"valid": false, "issues": ["Still missing"]}',
            "fix 3",
        ])
        file = GeneratedFile(path="src/App.tsx", content="broken")

        outcome = await coordinator.validate_and_repair(file, max_attempts=3)

        assert file.validated is False
        assert file.issues == ["Still missing"]
        assert file.content == "fix 3"
        assert outcome.attempts == 3
        assert len(provider.calls) == 6

    @pytest.mark.asyncio
    async def test_zero_attempts_leaves_file_unvalidated(self):
        coordinator, provider = self.coordinator([])
        file = GeneratedFile(path="src/App.tsx", content="anything")

        outcome = await coordinator.validate_and_repair(file, max_attempts=0)

        assert file.validated is False
        assert outcome.attempts == 0
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_unparseable_verdict_is_recorded_as_issue(self):
        coordinator, _ = self.coordinator(["Looks fine to me!"])
        file = GeneratedFile(path="src/App.tsx", content="code")

        outcome = await coordinator.validate_and_repair(file)

        assert file.validated is False
        assert file.issues[0].startswith("Validation failed:")
        # The call that produced the verdict still counts
        assert outcome.tokens_used == 30
        assert outcome.cost > 0

    @pytest.mark.asyncio
    async def test_provider_exhaustion_is_recorded_as_issue(self):
        coordinator, _ = self.coordinator([ProviderUnavailable("down")])
        file = GeneratedFile(path="src/App.tsx", content="code")

        outcome = await coordinator.validate_and_repair(file)

        assert file.validated is False
        assert "All providers exhausted" in file.issues[0]
        assert outcome.tokens_used == 0
