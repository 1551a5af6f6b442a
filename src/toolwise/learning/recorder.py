"""Run tools and record what happened as experiences.

This is the seam between an agent loop and the learning engine: every tool
call made through ``ExperienceRecorder.run_tool`` lands in the experience
log, and failures are optionally forwarded to the error analyzer.
"""

from typing import Any

from toolwise.learning.error_patterns import ErrorAnalyzer
from toolwise.learning.experience import ExperienceStore
from toolwise.learning.models import Experience
from toolwise.learning.protocols import ToolCatalog
from toolwise.logging import AsyncTimer, get_logger
from toolwise.tools.base import ToolErrorKind, ToolResult

logger = get_logger("toolwise.learning.recorder")


class ExperienceRecorder:
    """Executes catalog tools and records each call as an Experience.

    Recording is best effort: a store failure is logged and the tool result
    is still returned to the caller unchanged.
    """

    def __init__(
        self,
        experiences: ExperienceStore,
        catalog: ToolCatalog,
        analyzer: ErrorAnalyzer | None = None,
    ):
        """Initialize the recorder.

        Args:
            experiences: Experience log to write to
            catalog: Tool catalog to resolve tool names
            analyzer: Optional error analyzer fed with failed experiences
        """
        self._experiences = experiences
        self._catalog = catalog
        self._analyzer = analyzer

    async def run_tool(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        query: str,
        intent: str,
        reasoning_mode: str = "react",
        conversation_id: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> tuple[ToolResult, Experience]:
        """Run a tool and record the outcome.

        Args:
            tool_name: Name of the tool to run
            arguments: Raw tool arguments
            query: The user request being served
            intent: Detected intent label
            reasoning_mode: Reasoning mode in use (react, cot, ...)
            conversation_id: Session identifier
            metadata: Extra context stored with the experience

        Returns:
            tuple[ToolResult, Experience]: The tool result and the recorded experience
        """
        tool = self._catalog.get(tool_name)

        if tool is None:
            result = ToolResult.error_result(
                error=f"Tool '{tool_name}' not found in registry",
                kind=ToolErrorKind.TOOL_NOT_FOUND,
            )
            latency_ms = 0
        else:
            async with AsyncTimer(f"tool.run({tool_name})", logger) as timer:
                result = await tool.run(arguments)
            latency_ms = timer.elapsed_ms

        experience = Experience.new(
            query=query,
            intent=intent,
            reasoning_mode=reasoning_mode,
            conversation_id=conversation_id,
            metadata=metadata or {},
            tool_called=tool_name,
            arguments=arguments,
            response=str(result.data) if result.success else "",
            success=result.success,
            error=result.error,
            error_type=str(result.error_kind) if result.error_kind else None,
            result=_jsonable(result.data),
            confidence=1.0 if result.success else 0.0,
            latency_ms=latency_ms,
        )

        await self.record(experience)
        return result, experience

    async def record(self, experience: Experience) -> bool:
        """Record an experience built elsewhere; failures are logged, not raised.

        Returns:
            bool: True if the experience was stored
        """
        try:
            await self._experiences.record(experience)
        except Exception as e:
            logger.warning("Failed to record experience", exp_id=experience.id, error=str(e))
            return False

        if not experience.success and self._analyzer is not None:
            pattern = await self._analyzer.observe_failure(experience)
            if pattern is not None:
                logger.info(
                    "Failure matched error pattern",
                    exp_id=experience.id,
                    pattern_id=pattern.id,
                )

        return True


def _jsonable(value: Any) -> Any:
    """Keep JSON-friendly tool results as-is, stringify anything else."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    return str(value)
