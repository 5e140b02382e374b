"""Coding phase: generate, modify and create individual files."""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from .engine import ExecutionEngine
from .errors import AllProvidersExhausted, PerFileGenerationError
from .parsing import strip_code_fences, truncate
from ..models.execution import ExecutionRequest
from ..models.generation import FileSpec, ProjectPlan
from ..models.provider import TaskType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameworkConfig:
    language: str
    import_style: str
    component_style: str


FRAMEWORKS: dict[str, FrameworkConfig] = {
    "react": FrameworkConfig("TypeScript", "import X from '@/components/X'", "functional components with hooks"),
    "vue": FrameworkConfig("TypeScript", "import X from '@/components/X.vue'", "Composition API with <script setup>"),
    "svelte": FrameworkConfig("TypeScript", "import X from '$lib/components/X.svelte'", "Svelte components with TypeScript"),
    "node": FrameworkConfig("TypeScript", "import { x } from './module'", "ES modules with async/await"),
    "django": FrameworkConfig("Python", "from app.models import X", "Django class-based views"),
    "react-native": FrameworkConfig("TypeScript", "import X from '@/components/X'", "React Native functional components"),
    "flutter": FrameworkConfig("Dart", "import 'package:app/widgets/x.dart'", "Flutter StatelessWidget/StatefulWidget"),
}


def stack_description(plan: ProjectPlan) -> str:
    framework = plan.framework or "react"
    styling = plan.styling or "tailwind"
    tailwind = styling == "tailwind"

    stacks = {
        "react": f"React 18, TypeScript, Vite, {'Tailwind CSS, shadcn/ui' if tailwind else styling}",
        "vue": f"Vue 3, TypeScript, Vite, {'Tailwind CSS' if tailwind else styling}",
        "svelte": f"SvelteKit, TypeScript, {'Tailwind CSS' if tailwind else styling}",
        "node": "Node.js, TypeScript, Hono/Express, Zod",
        "django": "Django 5, Python 3.12, Django REST Framework",
        "react-native": "React Native, TypeScript, Expo, NativeWind",
        "flutter": "Flutter 3, Dart, Material Design 3",
    }
    return stacks.get(framework, stacks["react"])


@dataclass
class CodeResult:
    path: str
    content: str
    tokens_used: int
    cost: float
    model: str


class Coder:
    """
    Builds CODING requests for single files.

    Every public method wraps provider exhaustion in PerFileGenerationError so
    callers can isolate failures to the file that caused them.
    """

    def __init__(self, engine: ExecutionEngine, dependency_context_chars: int = 2000):
        self.engine = engine
        self.dependency_context_chars = dependency_context_chars

    def dependency_context(
        self,
        spec: FileSpec,
        available: Mapping[str, str],
        language: str,
    ) -> str:
        """Contents of the file's dependencies that exist, truncated for the prompt."""
        blocks = []
        for dep in spec.dependencies:
            if dep not in available:
                continue
            content = truncate(available[dep], self.dependency_context_chars)
            blocks.append(f"### {dep}\n```{language.lower()}\n{content}\n```")
        return "\n\n".join(blocks)

    async def _run(self, path: str, request: ExecutionRequest) -> CodeResult:
        try:
            response = await self.engine.execute(request)
        except AllProvidersExhausted as e:
            raise PerFileGenerationError(path, e) from e

        content = strip_code_fences(response.content)
        logger.info(f"Generated {path} ({len(content)} chars) via {response.provider}/{response.model}")

        return CodeResult(
            path=path,
            content=content,
            tokens_used=response.total_tokens,
            cost=response.cost,
            model=response.model,
        )

    async def generate_file(
        self,
        spec: FileSpec,
        plan: ProjectPlan,
        available: Mapping[str, str],
        original_prompt: str,
    ) -> CodeResult:
        """Generate one planned file, given the contents of files generated so far."""
        framework = plan.framework or "react"
        config = FRAMEWORKS.get(framework, FRAMEWORKS["react"])
        context = self.dependency_context(spec, available, config.language)

        system_prompt = (
            f"You are an expert {config.language} developer specializing in {framework}.\n"
            "Generate clean, production-ready code.\n\n"
            f"Stack: {stack_description(plan)}\n\n"
            "Rules:\n"
            "1. Output ONLY the file content - no markdown, no explanation, no code fences\n"
            f"2. Use {config.language} with proper types\n"
            f"3. Use {config.import_style} for imports\n"
            f"4. Use {config.component_style}\n"
            "5. Keep components under 200 lines\n"
            "6. Include helpful comments for complex logic\n"
            "7. Handle loading/error states where appropriate\n"
            "8. Make it production-ready with proper error handling\n"
            "9. Use semantic tokens for colors (bg-background, text-foreground, etc.)\n"
            f"10. Follow best practices for {framework}\n\n"
            f"DO NOT include ```{config.language.lower()} or any markdown - output raw code only."
        )

        user_parts = [
            f"Generate the file: {spec.path}",
            f"Purpose: {spec.purpose}",
            f"Original user request:\n{original_prompt}",
            "Project plan context:\n"
            f"- Type: {plan.project_type}\n"
            f"- Description: {plan.description}\n"
            f"- Framework: {framework}\n"
            f"- Styling: {plan.styling or 'tailwind'}\n"
            f"- Related files: {', '.join(f.path for f in plan.files)}",
        ]
        if context:
            user_parts.append(f"Dependency files for context:\n\n{context}")
        user_parts.append("Generate the complete file content now.")

        logger.info(f"Generating {spec.path} ({len(spec.dependencies)} dependencies, {framework})")

        return await self._run(spec.path, ExecutionRequest(
            task=TaskType.CODING,
            system_prompt=system_prompt,
            user_prompt="\n\n".join(user_parts),
            temperature=0.2,
            max_tokens=8000,
        ))

    async def modify_file(
        self,
        path: str,
        existing_content: str,
        changes: str,
        context: Optional[str] = None,
    ) -> CodeResult:
        """Apply a described change to an existing file."""
        system_prompt = (
            "You are modifying an existing file. Apply the requested changes precisely.\n"
            "Output ONLY the complete modified file content - no explanations, no markdown.\n"
            "Preserve all working code that doesn't need to change."
        )
        user_prompt = (
            f"File: {path}\n\n"
            f"Current content:\n```\n{existing_content}\n```\n\n"
            f"Changes to apply: {changes}\n\n"
        )
        if context:
            user_prompt += f"Additional context: {context}\n\n"
        user_prompt += "Output the complete modified file content."

        return await self._run(path, ExecutionRequest(
            task=TaskType.CODING,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=0.1,
            max_tokens=8000,
        ))

    async def create_file(self, path: str, purpose: str, context: str) -> CodeResult:
        """Create a new file outside of a project plan (refinement)."""
        return await self._run(path, ExecutionRequest(
            task=TaskType.CODING,
            system_prompt=(
                "Generate a new file for a React/TypeScript project.\n"
                "Output ONLY the file content - no explanations."
            ),
            user_prompt=f"Create file: {path}\nPurpose: {purpose}\nContext: {context}",
            temperature=0.2,
            max_tokens=8000,
        ))
