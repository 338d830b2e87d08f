import asyncio
import inspect
from typing import Annotated, Any, Callable, Dict, List, Optional, Union, get_args, get_origin

import jsonref
from pydantic import ValidationError, create_model
from pydantic.fields import FieldInfo

from ...exceptions import ToolExecutionError, ToolNotFoundError, ToolRegistrationError, ToolValidationError
from ...logger import get_logger
from ..models import LocalToolDefinition, ToolDefinition, ToolResult
from ..schema.validator import assert_no_recursive_refs

logger = get_logger(__name__)


class ToolRegistry:
    """
    A tool backend serving in-process Python callables.

    Holds the declarations exposed to the engine and maps tool names to their
    implementations. Parameter schemas are generated from annotated function
    signatures through Pydantic.
    """

    def __init__(self, tool_timeout: float = 180.0):
        self.tools: Dict[str, LocalToolDefinition] = {}
        self.tool_timeout = tool_timeout

    def register(
        self,
        name_or_tool: Union[str, LocalToolDefinition, Callable],
        description: Optional[str] = None,
        func: Optional[Callable] = None,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> LocalToolDefinition:
        """
        Register a new tool.

        A tool can be registered from a ready ``LocalToolDefinition``, from a
        documented callable whose signature describes its parameters, or from
        a name plus callable (and optionally an explicit parameter schema).

        Args:
            name_or_tool: A ``LocalToolDefinition``, the tool name, or a callable.
            description: What the tool does. Required with an explicit schema.
            func: The implementation. Required if ``name_or_tool`` is a string.
            parameters: Explicit JSON schema. Inferred from ``func`` when omitted.

        Returns:
            The stored definition.

        Raises:
            ToolRegistrationError: If arguments are missing or the name is already taken.
        """
        if isinstance(name_or_tool, LocalToolDefinition):
            tool = name_or_tool
        elif callable(name_or_tool):
            tool = self._generate_tool_definition(name_or_tool, description=description)
        else:
            if func is None:
                raise ToolRegistrationError("If passing name as string, func is required.")
            if parameters is None:
                tool = self._generate_tool_definition(func, name=name_or_tool, description=description)
            else:
                if description is None:
                    raise ToolRegistrationError("If passing name and parameters, description is required.")
                tool = LocalToolDefinition(name=name_or_tool, description=description, func=func, parameters=parameters)

        if tool.name in self.tools:
            raise ToolRegistrationError(f"Tool '{tool.name}' is already registered.")

        self.tools[tool.name] = tool
        logger.debug(f"Registered tool '{tool.name}'")
        return tool

    def tool(self, func: Callable) -> Callable:
        """A decorator to turn a function into a tool."""
        self.register(func)
        return func

    async def list_tools(self) -> List[ToolDefinition]:
        """Public declarations of the registered tools."""
        return [
            ToolDefinition(name=tool.name, description=tool.description, parameters=tool.parameters)
            for tool in self.tools.values()
        ]

    async def execute(self, name: str, args: Dict[str, Any]) -> ToolResult:
        """
        Validate arguments and run a registered tool.

        Args:
            name: The tool name.
            args: Arguments for the call.

        Returns:
            The tool output wrapped as a result. Non-string outputs are JSON-encoded.

        Raises:
            ToolNotFoundError: If no tool has that name.
            ToolValidationError: If the arguments do not fit the tool's signature.
            ToolExecutionError: If the tool times out.
        """
        tool = self.tools.get(name)
        if tool is None:
            raise ToolNotFoundError(f"Tool '{name}' not found in registry.")

        if tool.args_model is not None:
            try:
                args = tool.args_model(**args).model_dump()
            except ValidationError as exc:
                raise ToolValidationError(f"Argument validation failed: {exc}") from exc

        logger.info(f"Executing tool '{name}'...")
        output = await self._run(tool.func, args)
        if isinstance(output, ToolResult):
            return output
        return ToolResult.from_payload(output)

    async def _run(self, func: Callable, args: Dict[str, Any]) -> Any:
        """Run the callable, in a worker thread when synchronous, bounded by the tool timeout."""
        try:
            if inspect.iscoroutinefunction(func):
                return await asyncio.wait_for(func(**args), timeout=self.tool_timeout)
            return await asyncio.wait_for(asyncio.to_thread(func, **args), timeout=self.tool_timeout)
        except asyncio.TimeoutError as exc:
            raise ToolExecutionError(f"Tool execution timed out after {self.tool_timeout} seconds.") from exc

    def _generate_tool_definition(
        self, func: Callable, name: Optional[str] = None, description: Optional[str] = None
    ) -> LocalToolDefinition:
        tool_name = name or func.__name__

        if description is None:
            description = inspect.getdoc(func)
            if not description:
                raise ToolValidationError(f"Tool '{tool_name}' missing docstring. Models need a description of what the tool does.")

        fields = {}
        for param_name, param in inspect.signature(func).parameters.items():
            if param_name == "self":
                continue
            annotation = param.annotation

            # Parameters must be declared as Annotated[<type>, Field(description="...")]
            described = get_origin(annotation) is Annotated and any(
                isinstance(meta, FieldInfo) and meta.description for meta in get_args(annotation)
            )
            if not described:
                raise ToolValidationError(
                    f"Parameter '{param_name}' in tool '{tool_name}' is missing a description.\n"
                    f"Usage: {param_name}: Annotated[Type, Field(description='...')] = ..."
                )
            default = param.default if param.default is not inspect.Parameter.empty else ...
            fields[param_name] = (annotation, default)

        args_model = create_model(f"{tool_name}Params", **fields)
        raw_schema = args_model.model_json_schema()
        assert_no_recursive_refs(raw_schema)

        # proxies=False yields plain dicts instead of lazy JsonRef objects
        resolved = jsonref.replace_refs(raw_schema, proxies=False)

        return LocalToolDefinition(
            name=tool_name,
            description=description,
            func=func,
            parameters=self._simplify_schema(resolved),
            args_model=args_model,
        )

    @classmethod
    def _simplify_schema(cls, schema: Any) -> Any:
        """Drop titles and collapse ``Optional[X]`` (``anyOf`` with null) into ``X``."""
        if isinstance(schema, list):
            return [cls._simplify_schema(item) for item in schema]
        if not isinstance(schema, dict):
            return schema

        node = {key: value for key, value in schema.items() if key not in ("title", "$defs", "definitions")}
        options = node.get("anyOf")
        if isinstance(options, list):
            non_null = [option for option in options if not (isinstance(option, dict) and option.get("type") == "null")]
            if len(non_null) == 1 and isinstance(non_null[0], dict):
                merged = {**non_null[0], **{k: v for k, v in node.items() if k != "anyOf"}}
                return cls._simplify_schema(merged)

        simplified: Dict[str, Any] = {}
        for key, value in node.items():
            if key == "properties" and isinstance(value, dict):
                simplified[key] = {prop: cls._simplify_schema(sub) for prop, sub in value.items()}
            elif key in ("default", "enum", "const", "examples"):
                simplified[key] = value
            else:
                simplified[key] = cls._simplify_schema(value)
        return simplified
