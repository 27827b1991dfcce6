"""
Service plans - compile an external service payload into an executable plan.

Payload shape::

    {
        "name": "support_playbook",
        "steps": [
            {"name": "discover", "kind": "llm", "prompt": "Research {topic}",
             "metadata": {"provider": "echo", "token_estimate": 64},
             "links": ["https://example.com/policy"]},
            {"name": "summarize", "prompt": "Summarize {discover[result][prompt]}",
             "dependencies": ["discover"]},
        ],
        "prefetch": {"links": ["https://example.com/policy"]},
    }

Every step compiles to a tool step. Its function renders the prompt against
the node inputs and returns ``{step, prompt, inputs, metadata, kind, result}``
where ``result`` comes from the LLM registry for ``llm`` steps and echoes the
rendered prompt for any other kind.
"""

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from plangraph.errors import PlanValidationError
from plangraph.graph.dag import DAG
from plangraph.graph.plan import Plan, PlanStep, ToolMap, parse_plan
from plangraph.graph.prompt import render_prompt
from plangraph.graph.scheduler import Scheduler, SchedulerConfig
from plangraph.llm.registry import DEFAULT_LLM_RUNTIME, LLMRuntimeRegistry
from plangraph.service.prefetch import prefetch_many

logger = logging.getLogger(__name__)

# Input key the prefetch results are exposed under during execution
PREFETCH_KEY = "prefetch"


def _merge_unique(existing: Any, extra: list[Any]) -> list[Any]:
    current = list(existing) if isinstance(existing, list | tuple) else []
    return list(dict.fromkeys([*current, *extra]))


def _number(value: Any) -> float | None:
    if isinstance(value, int | float) and not isinstance(value, bool):
        return value
    return None


class ServicePlan:
    """A compiled service payload: the plan, its prefetch links and the raw payload."""

    def __init__(self, plan: Plan, prefetch_links: list[str], raw: dict[str, Any]):
        self.plan = plan
        self.prefetch_links = prefetch_links
        self.raw = raw

    @property
    def name(self) -> str:
        return self.plan.name

    async def prefetch(self, client: httpx.AsyncClient | None = None) -> dict[str, str]:
        if not self.prefetch_links:
            return {}
        logger.debug(f"Prefetching {len(self.prefetch_links)} plan resources")
        return await prefetch_many(self.prefetch_links, client=client)

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan": {
                "name": self.plan.name,
                "steps": [
                    step.model_dump(exclude={"action"}) for step in self.plan.steps
                ],
            },
            "prefetch_links": list(self.prefetch_links),
            "raw": dict(self.raw),
        }

    def to_graph(self, tool_map: ToolMap | None = None) -> DAG:
        return parse_plan(self.plan, tool_map)

    async def execute(
        self,
        inputs: dict[str, Any] | None = None,
        config: SchedulerConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> dict[str, Any]:
        """Prefetch, then run the plan with the scheduler in parallel mode."""
        run_inputs = dict(inputs or {})
        run_inputs[PREFETCH_KEY] = await self.prefetch(client)
        scheduler = Scheduler(self.to_graph(), config)
        return await scheduler.execute_parallel(run_inputs)


class ServicePlanBuilder:
    """Builds ``ServicePlan`` objects from service payloads."""

    def __init__(self, registry: LLMRuntimeRegistry | None = None):
        self.registry = registry or DEFAULT_LLM_RUNTIME

    def build(self, payload: Mapping[str, Any]) -> ServicePlan:
        steps_payload = payload.get("steps")
        if not isinstance(steps_payload, list):
            raise PlanValidationError("Service payload missing 'steps' array")

        steps = []
        for raw_step in steps_payload:
            if not isinstance(raw_step, Mapping):
                continue
            steps.append(self._build_step(raw_step))

        prefetch_links: list[str] = []
        prefetch = payload.get("prefetch")
        if isinstance(prefetch, Mapping) and isinstance(prefetch.get("links"), list):
            prefetch_links = list(dict.fromkeys(str(link) for link in prefetch["links"]))

        plan = Plan(name=str(payload.get("name") or "service_plan"), steps=steps)
        logger.debug(
            f"Built service plan '{plan.name}': {len(steps)} steps, "
            f"{len(prefetch_links)} prefetch links"
        )
        return ServicePlan(plan, prefetch_links, dict(payload))

    def _build_step(self, step: Mapping[str, Any]) -> PlanStep:
        name = step.get("name")
        if not isinstance(name, str) or not name:
            raise PlanValidationError("Each step in payload requires a string name")

        prompt = step.get("prompt") if isinstance(step.get("prompt"), str) else ""
        kind = step.get("kind") if isinstance(step.get("kind"), str) else "llm"
        dependencies = list(step.get("dependencies") or [])
        metadata = dict(step.get("metadata") or {})
        links = list(step.get("links") or [])
        tags = list(step.get("tags") or [])
        provider = metadata.get("provider")
        if not isinstance(provider, str):
            provider = "echo"

        if tags:
            metadata["tags"] = _merge_unique(metadata.get("tags"), tags)
        if links:
            metadata["links"] = _merge_unique(metadata.get("links"), links)
        if step.get("level") is not None and "level" not in metadata:
            metadata["level"] = step["level"]
        metadata["prompt"] = prompt
        metadata["kind"] = kind

        token_estimate = metadata.get("token_estimate", metadata.get("tokenEstimate"))
        latency = _number(metadata.get("latency_estimate"))
        if latency is None:
            latency = _number(metadata.get("simulated_duration"))

        return PlanStep(
            id=name,
            type="tool",
            action=self._step_function(name, prompt, kind, metadata, provider),
            dependencies=dependencies,
            metadata=metadata,
            token_cost=_number(token_estimate) or 0,
            latency_estimate=latency,
            critical=bool(step.get("is_critical") or metadata.get("is_critical")),
        )

    def _step_function(
        self,
        name: str,
        prompt_template: str,
        kind: str,
        metadata: dict[str, Any],
        provider: str,
    ):
        registry = self.registry

        async def run_step(inputs: dict[str, Any]) -> dict[str, Any]:
            rendered = render_prompt(prompt_template, inputs)
            if kind == "llm":
                result = await registry.call(provider, rendered, metadata, inputs)
            else:
                result = {"echo": rendered}
            return {
                "step": name,
                "prompt": rendered,
                "inputs": dict(inputs),
                "metadata": dict(metadata),
                "kind": kind,
                "result": result,
            }

        run_step.__name__ = f"service_step_{name}"
        return run_step
