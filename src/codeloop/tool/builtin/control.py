"""Control-flow tools: pause for the user, or finish the run.

Neither tool has side effects; the orchestrator recognizes them by name and
turns them into a pause or a completion.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel, Field

from codeloop.tool.base import BaseTool, ToolOk, ToolResult

if TYPE_CHECKING:
    from codeloop.workspace import ProjectContext

INTERRUPTING_TOOL = "ask_user_question"
TERMINAL_TOOL = "signal_completion"


class AskUserQuestionParams(BaseModel):
    questions: list[str] = Field(
        min_length=1, description="Array of questions to ask the user."
    )


class AskUserQuestionTool(BaseTool[AskUserQuestionParams]):
    name: ClassVar[str] = INTERRUPTING_TOOL
    description: ClassVar[str] = (
        "Ask the user one or more questions when you need clarification or input. "
        "The agent will pause and wait for the user to respond."
    )
    param_model: ClassVar[type[BaseModel]] = AskUserQuestionParams

    async def execute(
        self, params: AskUserQuestionParams, context: ProjectContext
    ) -> ToolResult:
        return ToolOk(
            output="User questions prepared",
            brief=f"{len(params.questions)} question(s)",
            data={"questions": list(params.questions)},
        )


class SignalCompletionParams(BaseModel):
    result: str = Field(min_length=1, description="Summary of what was accomplished.")
    plan: str | None = Field(
        default=None,
        description="The implementation plan (plan mode only).",
    )


class SignalCompletionTool(BaseTool[SignalCompletionParams]):
    name: ClassVar[str] = TERMINAL_TOOL
    description: ClassVar[str] = (
        "Signal that the task is complete and provide a final summary. Use this "
        "when you have finished all requested work. In plan mode, pass the plan."
    )
    param_model: ClassVar[type[BaseModel]] = SignalCompletionParams

    async def execute(
        self, params: SignalCompletionParams, context: ProjectContext
    ) -> ToolResult:
        return ToolOk(
            output=params.result,
            brief="Task complete",
            data={"result": params.result, "plan": params.plan},
        )
