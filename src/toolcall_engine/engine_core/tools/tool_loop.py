"""Bounded multi-turn execution loop driving a model and its tools."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from ..base import ModelProvider
from ..config import EngineConfig
from ..exceptions import ProviderRateLimitedError, ToolNotFoundError
from ..logger import get_logger
from ..messages import BaseMessage, ModelMessage, ToolMessage, UserMessage
from .backend import ToolBackend
from .call_protocol import ToolCall
from .compression import ResultCompressor
from .enrichment import ArgumentEnricher, SessionContext
from .fallbacks import empty_result_hint, is_not_found, is_suspiciously_empty, not_found_message, plan_retry
from .models import GatheredItem, TextContent, ToolDefinition, ToolResult
from .naming import NameMapping, adapt_tools
from .recovery import CallRecoveryParser
from .schema.validator import ArgumentValidator

logger = get_logger(__name__)

RATE_LIMIT_MARKERS = ("429", "quota", "too many requests", "rate limit", "resource_exhausted")


def is_rate_limited(error: BaseException) -> bool:
    """Whether a provider exception signals rate limiting or quota exhaustion."""
    if isinstance(error, ProviderRateLimitedError):
        return True
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def build_system_instruction(tool_names: Sequence[str]) -> str:
    """System prompt enumerating the tools offered in this request."""
    listed = ", ".join(tool_names) if tool_names else "(none)"
    return (
        "You are an execution agent that answers the user's request by calling tools.\n"
        f"Available tools: {listed}.\n"
        "Call tools through the function-calling interface, one step at a time. "
        "Use only the tools listed above and never invent tool names. "
        "When a tool result contains a [SYSTEM HINT] or [SYSTEM ERROR], follow its instructions. "
        "Once you have enough information, answer the user in natural language."
    )


class ExecutionOutcome(BaseModel):
    """Result of one run of the execution loop.

    Attributes:
        text: Final natural-language answer.
        gathered_data: UI-budget results of every executed call, in order.
        used_model: Model that answered last.
        turns: Number of model calls made.
        messages: The full conversation, including tool messages.
        degraded: True when the run ended on a provider failure.
    """

    text: str = ""
    gathered_data: List[GatheredItem] = Field(default_factory=list)
    used_model: Optional[str] = None
    turns: int = 0
    messages: List[BaseMessage] = Field(default_factory=list)
    degraded: bool = False


class _RunState:
    """Mutable per-run bookkeeping."""

    def __init__(
        self,
        *,
        user_message: str,
        tools: Sequence[ToolDefinition],
        adapted: Sequence[ToolDefinition],
        mapping: NameMapping,
        session: SessionContext,
        messages: List[BaseMessage],
        model: Optional[str],
    ) -> None:
        self.user_message = user_message
        self.tools = list(tools)
        self.adapted = {definition.name: definition for definition in adapted}
        self.mapping = mapping
        self.session = session
        self.messages = messages
        self.model = model
        self.gathered: List[GatheredItem] = []
        self.text = ""
        self.turns = 0

    @property
    def tool_names(self) -> List[str]:
        return list(self.adapted)

    def outcome(self, text: str, degraded: bool = False) -> ExecutionOutcome:
        return ExecutionOutcome(
            text=text,
            gathered_data=self.gathered,
            used_model=self.model,
            turns=self.turns,
            messages=self.messages,
            degraded=degraded,
        )


class ExecutionLoop:
    """Drives model turns and tool executions for one request at a time.

    Each turn asks the model for its next step, takes native tool calls or
    recovers them from text, then executes the calls sequentially: resolve
    the name, enrich and validate the arguments, execute, classify the
    outcome and append compressed results to the conversation and to the
    gathered data. A turn without calls ends the run.
    """

    def __init__(
        self,
        *,
        provider: ModelProvider,
        backend: ToolBackend,
        config: Optional[EngineConfig] = None,
        recovery: Optional[CallRecoveryParser] = None,
        enricher: Optional[ArgumentEnricher] = None,
        compressor: Optional[ResultCompressor] = None,
        validator: Optional[ArgumentValidator] = None,
    ) -> None:
        """Initialize the execution loop.

        Args:
            provider: Model provider used for every turn.
            backend: Backend executing the tools.
            config: Engine configuration. Defaults are used when omitted.
            recovery: Parser for tool calls written as text.
            enricher: Argument enrichment layer.
            compressor: Result compressor.
            validator: Argument validator.
        """
        self._provider = provider
        self._backend = backend
        self.config = config or EngineConfig()
        self._recovery = recovery or CallRecoveryParser()
        self._enricher = enricher or ArgumentEnricher(self.config.enrichment)
        self._compressor = compressor or ResultCompressor(self.config.compression)
        self._validator = validator or ArgumentValidator()

    async def run(
        self,
        *,
        user_message: str,
        tools: Sequence[ToolDefinition],
        mapping: Optional[NameMapping] = None,
        session: Optional[SessionContext] = None,
        history: Optional[Sequence[BaseMessage]] = None,
        plan_thought: Optional[str] = None,
        model: Optional[str] = None,
    ) -> ExecutionOutcome:
        """Run the loop until the model answers without calling tools or the turn limit is hit.

        Args:
            user_message: The user's request.
            tools: Original (backend) definitions of the active tools.
            mapping: The request's name mapping. A fresh one is created when omitted.
            session: Location and context accumulator of the request.
            history: Prior conversation, already prepared.
            plan_thought: Planner rationale folded into the user turn.
            model: Model to start with.

        Returns:
            The final answer, gathered data and conversation.
        """
        if mapping is None:
            mapping = NameMapping()
        adapted = adapt_tools(tools, mapping)

        prompt = user_message
        if plan_thought:
            prompt = f"{user_message}\n\n[EXECUTION PLAN]: {plan_thought}"

        state = _RunState(
            user_message=user_message,
            tools=tools,
            adapted=adapted,
            mapping=mapping,
            session=session or SessionContext(),
            messages=[*(history or []), UserMessage(content=prompt)],
            model=model,
        )
        system_instruction = build_system_instruction(state.tool_names)

        for turn in range(self.config.max_turns):
            state.turns = turn + 1
            try:
                completion = await self._provider.generate(
                    state.messages, adapted, system_instruction, model=state.model
                )
            except Exception as exc:
                return self._degraded(state, exc)

            if completion.used_model:
                state.model = completion.used_model

            text = completion.text or ""
            calls = list(completion.function_calls)
            if not calls and text.strip():
                recovered = self._recovery.recover(text, state.tool_names, adapted)
                if recovered.calls:
                    calls = recovered.calls
                    text = recovered.text

            if not calls:
                logger.debug(f"Turn {turn + 1}: no tool calls. Loop finished.")
                state.messages.append(ModelMessage(content=text))
                return state.outcome(text)

            logger.info(f"Turn {turn + 1}/{self.config.max_turns}: processing {len(calls)} tool call(s).")
            state.text = text
            state.messages.append(ModelMessage(content=text, tool_calls=calls))
            for call in calls:
                await self._handle_call(state, call)

        logger.warning(f"Max turns ({self.config.max_turns}) reached. Stopping execution.")
        return state.outcome(state.text)

    async def _handle_call(self, state: _RunState, call: ToolCall) -> None:
        """Execute one call and record its outcome in history and gathered data."""
        original = state.mapping.resolve(call.name)
        args: Dict[str, Any] = dict(call.args or {})

        if call.name not in state.adapted:
            logger.warning(f"Model called unknown tool '{call.name}'.")
            result = ToolResult.from_text(not_found_message(call.name, state.tool_names), is_error=True)
        else:
            args = self._enricher.enrich(original, args, state.user_message, state.tools, state.session)
            report = self._validator.validate(state.adapted[call.name], args)
            if not report.ok:
                logger.warning(f"Rejected call to '{original}': missing={report.missing} errors={report.type_errors}")
                result = report.to_result()
            else:
                result = await self._execute(original, args)
                if is_not_found(result, (original, call.name)):
                    result = ToolResult.from_text(not_found_message(call.name, state.tool_names), is_error=True)
                elif not result.is_error:
                    state.session.accumulator.absorb(result, self.config.extraction_rules)
                    if is_suspiciously_empty(result, self.config.empty_result_min_chars):
                        result, args = await self._handle_empty(state, original, args, result)

        history_result = self._compressor.compress(result, self.config.history_item_limit)
        state.messages.append(ToolMessage(name=call.name, content=history_result.text, is_error=result.is_error))
        state.gathered.append(
            GatheredItem(
                tool=original,
                args=args,
                result=self._compressor.compress(result, self.config.ui_item_limit),
            )
        )

    async def _execute(self, name: str, args: Dict[str, Any]) -> ToolResult:
        """Run a tool on the backend, turning any failure into an error result."""
        try:
            return await self._backend.execute(name, args)
        except ToolNotFoundError as exc:
            logger.warning(f"Backend does not serve tool '{name}': {exc}")
            return ToolResult.from_text(f"Unknown tool '{name}': {exc}", is_error=True)
        except Exception as exc:
            logger.warning(f"Tool '{name}' failed: {exc} ({type(exc).__name__})", exc_info=True)
            return ToolResult.from_text(f"Error: {exc}", is_error=True)

    async def _handle_empty(
        self, state: _RunState, name: str, args: Dict[str, Any], result: ToolResult
    ) -> tuple[ToolResult, Dict[str, Any]]:
        """Try one broadened retry, otherwise append a normalization hint."""
        retry_args = plan_retry(
            self.config.empty_result_retries, name, args, self.config.enrichment.coordinates
        )
        if retry_args is not None:
            logger.info(f"Empty result from '{name}', retrying once with {retry_args}")
            retry = await self._execute(name, retry_args)
            if not retry.is_error and not is_suspiciously_empty(retry, self.config.empty_result_min_chars):
                state.session.accumulator.absorb(retry, self.config.extraction_rules)
                return retry, retry_args

        hint = empty_result_hint(args)
        if hint is None:
            return result, args
        return ToolResult(is_error=False, content=[*result.content, TextContent(text=hint)]), args

    def _degraded(self, state: _RunState, error: Exception) -> ExecutionOutcome:
        if is_rate_limited(error):
            logger.error(f"Model provider rate limited: {error}")
            return state.outcome(self.config.rate_limit_message, degraded=True)
        logger.error(f"Model provider failed: {error}", exc_info=True)
        return state.outcome(self.config.error_message_template.format(reason=error), degraded=True)
