"""Planning phase: turn a user prompt into a structured project plan."""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .engine import ExecutionEngine
from .parsing import parse_response
from ..models.execution import ExecutionRequest
from ..models.generation import ProjectPlan, SuggestionList
from ..models.provider import TaskType

logger = logging.getLogger(__name__)


PLANNER_SYSTEM_PROMPT = """You are an expert software architect. Your job is to analyze user requirements and create a structured project plan.

You must output a JSON object with this structure:
{{
  "projectType": "landing-page" | "dashboard" | "e-commerce" | "blog" | "app" | "mobile-app" | "api" | "fullstack",
  "description": "Brief description of what will be built",
  "files": [
    {{
      "path": "src/components/Hero.tsx",
      "purpose": "Hero section with headline and CTA",
      "dependencies": ["src/components/ui/button.tsx"],
      "priority": 1
    }}
  ],
  "dependencies": ["package-name"],
  "routes": ["/", "/about", "/contact"],
  "framework": "react" | "vue" | "svelte" | "node" | "django" | "react-native" | "flutter",
  "styling": "tailwind" | "css" | "scss" | "styled-components"
}}

Rules:
1. Support multiple stacks: React, Vue, Svelte (frontend), Node, Django (backend), React Native, Flutter (mobile)
2. Default to {default_stack} if not specified
3. Prefer shadcn/ui components for React projects (already installed)
4. Keep files small and focused (under 200 lines each)
5. Use proper component organization: pages, components, hooks, lib, utils
6. Consider existing files and avoid conflicts
7. Plan for incremental builds - each file should be independently valid
8. Assign priority numbers (1 = highest) based on dependency order
9. For mobile hints, suggest React Native or Flutter patterns

Existing files in project:
{existing_files}"""

DEFAULT_STACK = "React + Vite + TypeScript + Tailwind CSS"


@dataclass
class PlanResult:
    plan: ProjectPlan
    tokens_used: int
    cost: float


class Planner:
    """Builds PLANNING requests and validates the plan that comes back."""

    def __init__(self, engine: ExecutionEngine):
        self.engine = engine

    async def create_plan(
        self,
        prompt: str,
        existing_paths: Iterable[str],
        framework: Optional[str] = None,
    ) -> PlanResult:
        """
        Create a project plan for ``prompt``.

        Raises:
            AllProvidersExhausted: no provider could serve the request
            ResponseParseError: the plan did not match the ProjectPlan schema
        """
        existing = sorted(existing_paths)
        system_prompt = PLANNER_SYSTEM_PROMPT.format(
            default_stack=framework or DEFAULT_STACK,
            existing_files="\n".join(existing) or "None (new project)",
        )
        user_prompt = (
            f"Create a project plan for:\n\n{prompt}\n\n"
            "Output ONLY valid JSON, no markdown or explanation."
        )

        logger.info(f"Creating project plan ({len(prompt)} chars, {len(existing)} existing files)")

        response = await self.engine.execute(ExecutionRequest(
            task=TaskType.PLANNING,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=0.7,
            max_tokens=4000,
            json_mode=True,
        ))

        plan = parse_response(response, ProjectPlan, "project plan")

        logger.info(
            f"Plan created: {len(plan.files)} files, type={plan.project_type}, "
            f"framework={plan.framework or 'react'} via {response.provider}/{response.model}"
        )

        return PlanResult(plan=plan, tokens_used=response.total_tokens, cost=response.cost)

    async def suggest(self, generated_paths: list[str], project_type: str) -> tuple[SuggestionList, int, float]:
        """Suggest 3-5 follow-up enhancements for a finished project."""
        response = await self.engine.execute(ExecutionRequest(
            task=TaskType.REASONING,
            system_prompt="You are a helpful AI assistant. Based on generated files, suggest next steps.",
            user_prompt=(
                f"Project type: {project_type}\n"
                f"Generated files: {', '.join(generated_paths)}\n\n"
                "Suggest 3-5 helpful next steps or enhancements. Return JSON: "
                '{ "suggestions": [{ "title": string, "description": string, '
                '"priority": "high" | "medium" | "low" }] }'
            ),
            json_mode=True,
        ))

        suggestions = parse_response(response, SuggestionList, "suggestions")
        return suggestions, response.total_tokens, response.cost
