"""Command-line interface for autocoder."""
import asyncio
import logging
import sys

import click
from rich.console import Console
from rich.table import Table
from rich.theme import Theme

from .ai.errors import NoValidCommandsError
from .ai.model_selector import ModelSelector
from .ai.processor import CodeSuggestionProcessor, ProcessorOptions
from .ai.provider import create_provider
from .core.models import Config
from .core.optimizer import ContentOptimizer
from .core.snapshot import build_snapshot
from .core.tokenizer import TokenEstimator, get_budget

THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "highlight": "bold magenta",
    "path": "blue",
    "number": "bold white",
    "dim": "dim",
})


def get_console() -> Console:
    return Console(theme=THEME, highlight=False)


def setup_logging(debug: bool) -> None:
    """Configure logging based on debug flag."""
    level = logging.INFO if debug else logging.WARNING
    format_string = '[%(levelname)s] %(name)s: %(message)s' if debug else '[%(levelname)s] %(message)s'

    logging.basicConfig(
        level=level,
        format=format_string,
        handlers=[logging.StreamHandler(sys.stderr)]
    )

    # Reduce noise from external libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


@click.group()
@click.option('--debug', is_flag=True, help='Show info-level logs from the optimizer and fallback manager')
@click.version_option(package_name='autocoder')
@click.pass_context
def main(ctx: click.Context, debug: bool) -> None:
    """
    Suggest code changes for a repository with a language model.

    Examples:

        autocoder plan . --prompt "add input validation to the parser"

        autocoder models "qwen/qwen3-coder:free,moonshotai/kimi-k2:free"

        autocoder suggest ./my-app --prompt "fix the login redirect"
    """
    setup_logging(debug)
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug


@main.command()
@click.argument('repo', type=click.Path(exists=True, file_okay=False))
@click.option('--prompt', '-p', required=True, help='The change request the content is selected for')
@click.option('--model', '-m', default=None, help='Model id whose context window is the budget')
@click.option('--heuristic', is_flag=True, help='Skip the AI classifier and use keyword heuristics')
@click.pass_context
def plan(ctx: click.Context, repo: str, prompt: str, model: str, heuristic: bool) -> None:
    """Show which files of REPO would be sent to the model."""
    console = get_console()
    config = Config()
    model_id = model or ModelSelector(config.models).get_all_models()[0].name

    try:
        snapshot = build_snapshot(repo, config, show_progress=ctx.obj['debug'])

        provider = None
        if config.openrouter_api_key and not heuristic:
            provider = create_provider('openrouter', {'openrouter_api_key': config.openrouter_api_key}, model_id)

        optimizer = ContentOptimizer(ai_provider=provider, config=config)
        optimized = asyncio.run(optimizer.process_with_tokenization(snapshot, prompt, model_id))
    except ValueError as e:
        console.print(f"[error]> ERROR:[/error] {e}")
        sys.exit(1)

    report = optimizer.get_optimization_report()
    estimator = TokenEstimator(model_id)

    table = Table(title=f"Content plan for {model_id}")
    table.add_column("File", style="path")
    table.add_column("Tokens", justify="right", style="number")
    table.add_column("Mode")
    for path, content in optimized.items():
        original = snapshot.get(path, content)
        mode = "full" if content == original else "[warning]summary[/warning]"
        table.add_row(path, f"{estimator.estimate_tokens(content):,}", mode)
    console.print(table)

    console.print(f"[info]STRATEGY:[/info] {report.get('strategy', 'none')}")
    console.print(
        f"[info]FILES:[/info] [number]{report.get('selected_files', 0)}[/number] of "
        f"[number]{report.get('total_files', 0)}[/number]"
    )
    console.print(
        f"[info]TOKENS:[/info] [number]{report.get('optimized_tokens', 0):,}[/number] of "
        f"[number]{report.get('original_tokens', 0):,}[/number] "
        f"(budget [number]{report.get('budget', 0):,}[/number])"
    )


@main.command()
@click.argument('model_list', required=False, default=None)
def models(model_list: str) -> None:
    """Show the model priority list parsed from MODEL_LIST (or AUTOCODER_MODELS)."""
    console = get_console()
    selector = ModelSelector(model_list if model_list is not None else Config().models)
    estimator = TokenEstimator()

    table = Table(title="Model priority")
    table.add_column("#", justify="right")
    table.add_column("Model")
    table.add_column("Provider")
    table.add_column("Context", justify="right", style="number")
    table.add_column("Budget", justify="right", style="number")
    for index, model in enumerate(selector.get_all_models(), start=1):
        limit = estimator.get_model_limit(model.name)
        table.add_row(str(index), model.display_name, model.provider.value, f"{limit:,}", f"{get_budget(limit):,}")
    console.print(table)


@main.command()
@click.argument('repo', type=click.Path(exists=True, file_okay=False))
@click.option('--prompt', '-p', required=True, help='The change request')
@click.option('--models', 'model_list', default=None, help='Comma-separated models in priority order')
@click.option('--base-branch', default='main', show_default=True, help='Branch the changes are based on')
@click.option('--max-requests', type=int, default=10, show_default=True, help='Maximum turns per response')
@click.pass_context
def suggest(ctx: click.Context, repo: str, prompt: str, model_list: str, base_branch: str, max_requests: int) -> None:
    """Ask the models for changes to REPO and print the suggested files."""
    console = get_console()
    config = Config()
    options = ProcessorOptions(models=model_list or config.models, max_requests=max_requests)
    processor = CodeSuggestionProcessor(options, config=config)

    try:
        selected_model, provider_name = processor.initialize()
        console.print(f"[info]> MODEL:[/info] {selected_model.display_name} [dim]({provider_name})[/dim]")
        snapshot = build_snapshot(repo, config, show_progress=ctx.obj['debug'])
        response = asyncio.run(processor.process_changes(prompt, base_branch, snapshot))
    except NoValidCommandsError as e:
        console.print(f"[error]> NO CHANGES:[/error] {e}")
        sys.exit(1)
    except ValueError as e:
        console.print(f"[error]> ERROR:[/error] {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[error]> PROCESS TERMINATED BY USER[/error]")
        sys.exit(1)

    if not response:
        console.print("[error]> No model produced a response[/error]")
        sys.exit(1)

    changes = processor.parse_commands(response)
    if not changes:
        console.print("[warning]> The response contained no file changes[/warning]")
        return

    console.print(f"[success]{len(changes)} suggested file changes[/success]")
    for change in changes:
        console.rule(f"[path]{change.file_path}[/path]")
        console.print(change.content, markup=False)


if __name__ == '__main__':
    main()
