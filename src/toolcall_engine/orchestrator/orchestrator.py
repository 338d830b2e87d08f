"""Request-level glue between the Planner, the execution loop and the Designer."""

from typing import Any, Mapping, Optional, Sequence, Union

from toolcall_engine.engine_core import (
    BaseMessage,
    EngineConfig,
    ExecutionLoop,
    GeoPoint,
    ModelProvider,
    NameMapping,
    SessionContext,
    ToolBackend,
    get_logger,
    prepare_history,
)

from .models import Designer, OrchestratorResponse, Plan, Planner, RenderedResponse
from .sanitizer import sanitize_response
from .selection import select_tools

logger = get_logger(__name__)


class Orchestrator:
    """
    Runs one user request end to end.

    The planner proposes tools, the proposal is matched against what the
    backend serves (falling back to every tool), the execution loop runs
    with a fresh name mapping and context, and the designer renders the
    outcome. A failing designer degrades to the sanitized loop text.
    """

    def __init__(
        self,
        *,
        provider: ModelProvider,
        backend: ToolBackend,
        planner: Optional[Planner] = None,
        designer: Optional[Designer] = None,
        config: Optional[EngineConfig] = None,
        default_model: Optional[str] = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            provider: Model provider for the execution loop.
            backend: Backend serving and executing the tools.
            planner: Optional planner; without one every tool is offered.
            designer: Optional designer; without one the sanitized loop text is returned.
            config: Engine configuration.
            default_model: Model used when neither caller nor planner chooses one.
        """
        self.config = config or EngineConfig()
        self._backend = backend
        self._planner = planner
        self._designer = designer
        self._default_model = default_model
        self._loop = ExecutionLoop(provider=provider, backend=backend, config=self.config)

    async def process_request(
        self,
        user_message: str,
        history: Optional[Sequence[Union[BaseMessage, Mapping[str, Any]]]] = None,
        location: Optional[GeoPoint] = None,
        model: Optional[str] = None,
    ) -> OrchestratorResponse:
        """
        Answer a user request.

        Args:
            user_message: The request text.
            history: Prior chat turns, oldest first.
            location: The user's location, if known.
            model: Preferred model for this request.

        Returns:
            The rendered answer together with the gathered data and the plan.
        """
        available = await self._backend.list_tools()
        prepared = prepare_history(history or [], self.config.history_window)
        requested_model = model or self._default_model

        plan = await self._plan(user_message, available, prepared, location, requested_model)
        active = select_tools(plan.tools, available) if plan.tools else []
        if not active:
            logger.info("No usable tools proposed by the planner, offering all tools.")
            active = list(available)

        outcome = await self._loop.run(
            user_message=user_message,
            tools=active,
            mapping=NameMapping(),
            session=SessionContext(location=location),
            history=prepared,
            plan_thought=plan.thought or None,
            model=plan.used_model or requested_model,
        )

        rendered = await self._design(outcome, plan)
        return OrchestratorResponse(
            text=rendered.text,
            widgets=rendered.widgets,
            gathered_data=outcome.gathered_data,
            used_model=outcome.used_model,
            plan=plan,
            degraded=outcome.degraded,
        )

    async def _plan(
        self,
        user_message: str,
        available: Sequence[Any],
        history: Sequence[BaseMessage],
        location: Optional[GeoPoint],
        model: Optional[str],
    ) -> Plan:
        if self._planner is None:
            return Plan()
        try:
            return await self._planner.plan(user_message, available, history, location, model)
        except Exception as exc:
            logger.error(f"Planner failed, continuing without a plan: {exc}", exc_info=True)
            return Plan()

    async def _design(self, outcome: Any, plan: Plan) -> RenderedResponse:
        fallback = RenderedResponse(text=sanitize_response(outcome.text), widgets=[])
        if self._designer is None:
            return fallback
        try:
            return await self._designer.design(outcome, plan.steps)
        except Exception as exc:
            logger.error(f"Designer failed, returning sanitized text: {exc}", exc_info=True)
            return fallback
