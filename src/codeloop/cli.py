"""CLI entry point for codeloop."""

from __future__ import annotations

import asyncio
import json
import logging

import typer

from codeloop import __version__
from codeloop.config import CodeloopConfig

app = typer.Typer(
    name="codeloop",
    help="An autonomous coding agent that works inside a project directory.",
    no_args_is_help=True,
)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_config(config_file: str | None, model: str | None) -> CodeloopConfig:
    config = CodeloopConfig.load(config_file)
    if model:
        config.llm.model = model
    return config


@app.command()
def run(
    project: str = typer.Argument(help="Project id (a directory under the projects root)."),
    prompt: str = typer.Option(
        ..., "--prompt", "-p", help="What the agent should do."
    ),
    mode: str = typer.Option(
        "fast", "--mode", help="Agent mode: fast, plan or execute."
    ),
    model: str | None = typer.Option(
        None, "--model", "-m", help="LLM model to use (default: from env/config)."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run the agent on a project, answering its questions interactively."""
    setup_logging(verbose)
    config = _load_config(config_file, model)

    typer.echo(f"codeloop v{__version__}")
    typer.echo(f"Project: {project}")
    typer.echo(f"Mode: {mode}")
    typer.echo(f"Model: {config.llm.model}")
    if config.llm.reasoning_effort:
        typer.echo(f"Reasoning effort: {config.llm.reasoning_effort}")
    typer.echo("---")

    status = asyncio.run(_run_session(project, prompt, mode, config))
    if status != "completed":
        raise typer.Exit(1)


@app.command()
def resume(
    project: str = typer.Argument(help="Project id of a paused session."),
    answers: list[str] = typer.Option(
        ..., "--answer", "-a", help="Answer to a pending question (repeatable)."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Answer the questions of a saved, paused session and continue it."""
    setup_logging(verbose)
    config = _load_config(config_file, None)
    status = asyncio.run(_resume_session(project, answers, config))
    if status != "completed":
        raise typer.Exit(1)


@app.command()
def tools(
    as_json: bool = typer.Option(False, "--json", help="Print full input schemas."),
) -> None:
    """List the tools offered to the model."""
    from codeloop.tool import create_registry

    registry = create_registry()
    if as_json:
        typer.echo(json.dumps(registry.get_specs(), indent=2))
        return
    for definition in registry.definitions():
        required = ", ".join(definition.required) or "-"
        typer.echo(f"{definition.name:<20} {definition.description}")
        typer.echo(f"{'':<20} required: {required}")


async def _run_session(project: str, prompt: str, mode: str, config: CodeloopConfig) -> str:
    from codeloop.agent import Orchestrator
    from codeloop.session import JsonlSessionStore

    store = JsonlSessionStore(config.workspace.sessions_path())
    orchestrator = Orchestrator.from_config(config, project, mode=mode, store=store)
    return await _drive(orchestrator, orchestrator.run(prompt), config)


async def _resume_session(project: str, answers: list[str], config: CodeloopConfig) -> str:
    from codeloop.agent import Orchestrator
    from codeloop.errors import InvalidStateError
    from codeloop.llm import create_provider
    from codeloop.session import JsonlSessionStore
    from codeloop.workspace import LocalSandbox

    store = JsonlSessionStore(config.workspace.sessions_path())
    try:
        orchestrator = await Orchestrator.restore(
            project,
            store,
            provider=create_provider(
                config.llm.model,
                temperature=config.llm.temperature,
                max_tokens=config.llm.max_tokens,
                context_window=config.llm.context_window,
                reasoning_effort=config.llm.reasoning_effort,
            ),
            sandbox=LocalSandbox(config.workspace.projects_path()),
            config=config.loop,
            max_listed_files=config.workspace.max_listed_files,
            prompt_caching=config.llm.prompt_caching,
        )
    except InvalidStateError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    return await _drive(orchestrator, orchestrator.resume(answers), config)


async def _drive(orchestrator, events, config: CodeloopConfig) -> str:
    """Pump runs into a wire, render them, and answer questions until done."""
    from codeloop.session import EventType, Wire, pump

    while True:
        wire = Wire(buffer=config.loop.event_buffer)
        queue = wire.subscribe()
        renderer = asyncio.create_task(_render(queue))
        try:
            terminal = await pump(events, wire)
        finally:
            await renderer

        if terminal is None or terminal.type is not EventType.ASK_USER_QUESTION:
            break

        answers = []
        for question in terminal.data.get("questions", []):
            answers.append(await asyncio.to_thread(typer.prompt, question))
        events = orchestrator.resume(answers)

    return orchestrator.status.value


async def _render(queue) -> None:
    """Plain-text renderer for a wire subscription."""
    from codeloop.session import EventType, consume

    thinking_started = False
    async for event in consume(queue):
        d = event.data

        if event.type == EventType.ITERATION_START:
            thinking_started = False
            print(f"\n[Iteration {event.iteration}/{d.get('max_iterations')}]", flush=True)

        elif event.type == EventType.THINKING:
            if not thinking_started:
                print("  [thinking] ", end="", flush=True)
                thinking_started = True
            print(d.get("text", ""), end="", flush=True)

        elif event.type == EventType.TEXT_DELTA:
            if thinking_started:
                print(flush=True)  # newline after thinking block
                thinking_started = False
            print(d.get("text", ""), end="", flush=True)

        elif event.type == EventType.TOOL_START:
            args = json.dumps(d.get("input"), ensure_ascii=False)
            if len(args) > 200:
                args = args[:200] + "..."
            print(f"\n  -> {d.get('name')}({args})", flush=True)

        elif event.type == EventType.TOOL_COMPLETE:
            print(f"  <- {d.get('name')}: {d.get('brief') or 'ok'}", flush=True)

        elif event.type == EventType.TOOL_ERROR:
            print(f"  <- {d.get('name')} failed: {d.get('error')}", flush=True)

        elif event.type == EventType.TODO_UPDATE:
            for todo in d.get("todos", []):
                mark = {"completed": "x", "in_progress": ">"}.get(todo.get("status"), " ")
                print(f"  [{mark}] {todo.get('content')}", flush=True)

        elif event.type == EventType.ERROR:
            print(f"\n  [retrying] {d.get('message')}", flush=True)

        elif event.type == EventType.ASK_USER_QUESTION:
            print("\n--- The agent has questions ---", flush=True)

        elif event.type == EventType.COMPLETE:
            print("\n\n--- Complete ---", flush=True)
            print(d.get("summary", ""), flush=True)
            if d.get("plan"):
                print(f"\nPlan:\n{d['plan']}", flush=True)
            for path in d.get("files_created", []):
                print(f"  + {path}", flush=True)
            for path in d.get("files_modified", []):
                print(f"  ~ {path}", flush=True)
            usage = d.get("usage", {})
            print(
                f"Tokens: {usage.get('input', 0)} in / {usage.get('output', 0)} out"
                f" (${usage.get('cost_usd', 0):.4f})",
                flush=True,
            )

        elif event.type == EventType.BUDGET_EXCEEDED:
            print(f"\n--- Budget exceeded: {d.get('message')} ---", flush=True)

        elif event.type == EventType.FATAL_ERROR:
            print(f"\n--- Error ({d.get('classification')}): {d.get('message')} ---", flush=True)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
