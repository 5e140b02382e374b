"""Validation and repair of generated files."""

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, Field

from .engine import ExecutionEngine
from .errors import AllProvidersExhausted, ResponseParseError
from .parsing import parse_response, strip_code_fences
from ..models.execution import ExecutionRequest
from ..models.generation import FixResult, GeneratedFile, ValidationResult
from ..models.provider import TaskType

logger = logging.getLogger(__name__)

# Called with (path, new_content) after each successful fix
FixCallback = Callable[[str, str], Awaitable[None]]


VALIDATION_RULES: dict[str, list[str]] = {
    "typescript": [
        "Check for TypeScript syntax errors",
        "Verify all imports are valid and accessible",
        "Ensure proper type annotations",
        "Check for unused variables and imports",
        "Verify async/await usage is correct",
    ],
    "react": [
        "Verify JSX syntax is valid",
        "Check hook rules (no conditionals around hooks)",
        "Ensure proper component naming (PascalCase)",
        "Verify key props in lists",
        "Check for proper event handler types",
    ],
    "security": [
        "No hardcoded API keys or secrets",
        "No dangerouslySetInnerHTML without sanitization",
        "No eval() or Function() with user input",
        "Proper input validation",
        "No exposed sensitive endpoints",
    ],
    "best_practices": [
        "Components should be under 200 lines",
        "Proper error handling with try/catch",
        "Loading and error states handled",
        "Accessible components (ARIA labels where needed)",
        "Semantic HTML elements used appropriately",
    ],
}

FILE_TYPES = {
    "ts": "typescript",
    "tsx": "typescript-react",
    "js": "javascript",
    "jsx": "javascript-react",
    "css": "css",
    "scss": "scss",
    "vue": "vue",
    "svelte": "svelte",
    "py": "python",
    "dart": "dart",
}


def file_type(path: str) -> str:
    """Language label for a file path, by extension."""
    return FILE_TYPES.get(PurePosixPath(path).suffix.lstrip(".").lower(), "text")


def rules_for(path: str) -> list[str]:
    """Security and best-practice rules always; language rules by file type."""
    kind = file_type(path)
    rules = VALIDATION_RULES["security"] + VALIDATION_RULES["best_practices"]
    if "typescript" in kind:
        rules = rules + VALIDATION_RULES["typescript"]
    if "react" in kind:
        rules = rules + VALIDATION_RULES["react"]
    return rules


class _ValidationPayload(BaseModel):
    valid: bool
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


@dataclass
class RepairOutcome:
    """Accumulated result of validating (and possibly repairing) one file."""
    file: GeneratedFile
    attempts: int = 0
    fixes_applied: int = 0
    tokens_used: int = 0
    cost: float = 0.0


class ValidationRepairCoordinator:
    """Runs the validate-then-fix loop for generated files."""

    def __init__(self, engine: ExecutionEngine):
        self.engine = engine

    async def validate_file(self, path: str, content: str) -> ValidationResult:
        """
        Ask a validation model to review one file.

        Raises:
            AllProvidersExhausted: no provider could serve the request
            ResponseParseError: the verdict was not valid JSON of the expected shape
        """
        rules = "\n".join(f"{i}. {rule}" for i, rule in enumerate(rules_for(path), start=1))
        kind = file_type(path)

        system_prompt = (
            "You are a code validator. Analyze the code for errors, security issues, "
            "and best practices.\n\n"
            f"Validation rules to check:\n{rules}\n\n"
            "Return JSON:\n"
            "{\n"
            '  "valid": boolean,\n'
            '  "issues": ["list of problems found"],\n'
            '  "suggestions": ["list of improvements"]\n'
            "}\n\n"
            "Be thorough but practical. Minor style issues are suggestions, not issues."
        )
        user_prompt = f"Validate this {kind} file: {path}\n\n```\n{content}\n```"

        logger.info(f"Validating {path} ({kind})")

        response = await self.engine.execute(ExecutionRequest(
            task=TaskType.VALIDATION,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=0.1,
            max_tokens=2000,
            json_mode=True,
        ))

        payload = parse_response(response, _ValidationPayload, f"validation of {path}")

        return ValidationResult(
            valid=payload.valid,
            issues=payload.issues,
            suggestions=payload.suggestions,
            tokens_used=response.total_tokens,
            cost=response.cost,
        )

    async def fix(self, path: str, content: str, issues: list[str]) -> FixResult:
        """Ask a debugging model for the minimal change that resolves ``issues``."""
        numbered = "\n".join(f"{i}. {issue}" for i, issue in enumerate(issues, start=1))

        system_prompt = (
            "You are fixing code issues. Apply the minimum changes needed to resolve all issues.\n"
            "Output ONLY the corrected file content - no explanations, no markdown.\n"
            "Preserve all working code that doesn't need changes."
        )
        user_prompt = (
            f"File: {path}\n\n"
            f"Issues to fix:\n{numbered}\n\n"
            f"Current content:\n```\n{content}\n```\n\n"
            "Output the corrected file content."
        )

        logger.info(f"Fixing {len(issues)} issue(s) in {path}")

        response = await self.engine.execute(ExecutionRequest(
            task=TaskType.DEBUGGING,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=0.1,
            max_tokens=8000,
        ))

        return FixResult(
            content=strip_code_fences(response.content),
            changes_applied=list(issues),
            tokens_used=response.total_tokens,
            cost=response.cost,
        )

    async def validate_and_repair(
        self,
        file: GeneratedFile,
        max_attempts: int = 3,
        on_fix: Optional[FixCallback] = None,
    ) -> RepairOutcome:
        """
        Validate a file, fixing and re-validating at most ``max_attempts`` times.

        The file is updated in place. If it never validates it keeps
        ``validated=False`` and the issues from the last round. Provider and
        parse failures are recorded as issues on the file rather than raised.
        """
        outcome = RepairOutcome(file=file)

        while outcome.attempts < max_attempts:
            outcome.attempts += 1

            try:
                result = await self.validate_file(file.path, file.content)
            except ResponseParseError as e:
                outcome.tokens_used += e.tokens_used
                outcome.cost += e.cost
                logger.warning(f"Validation of {file.path} failed: {e}")
                file.issues = [f"Validation failed: {e}"]
                return outcome
            except AllProvidersExhausted as e:
                logger.warning(f"Validation of {file.path} failed: {e}")
                file.issues = [f"Validation failed: {e}"]
                return outcome

            outcome.tokens_used += result.tokens_used
            outcome.cost += result.cost

            if result.valid:
                file.validated = True
                file.issues = []
                return outcome

            file.issues = result.issues or ["Validator reported the file as invalid"]

            try:
                fixed = await self.fix(file.path, file.content, file.issues)
            except AllProvidersExhausted as e:
                logger.warning(f"Repair of {file.path} failed: {e}")
                return outcome

            outcome.tokens_used += fixed.tokens_used
            outcome.cost += fixed.cost
            outcome.fixes_applied += 1
            file.content = fixed.content

            if on_fix is not None:
                await on_fix(file.path, file.content)

        logger.warning(
            f"{file.path} still invalid after {max_attempts} validation attempt(s): {file.issues}"
        )
        return outcome
