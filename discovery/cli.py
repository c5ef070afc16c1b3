"""Click CLI: serve the web API, run one exploration, list and check the roster."""

import asyncio
import logging
import sys
from pathlib import Path

import click
import uvicorn
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, ConfigError, ModelConfig, load_config
from discovery.context import AppContext, build_agents, build_provider
from discovery.events import Event, EventBus
from discovery.experiments import ToyWorld
from discovery.healthcheck import run_health_checks
from discovery.knowledge import KnowledgeBase
from discovery.models import ExplorationResult
from discovery.orchestrator import Orchestrator
from discovery.output import print_exploration, print_roster, save_exploration
from discovery.personas import PersonaRegistry
from discovery.providers.base import AIProvider, ProviderError
from discovery.server import create_app

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _load(verbose: bool) -> AppConfig:
    # Reconfigure stdout/stderr to UTF-8 on Windows so model replies with
    # non-ASCII characters don't crash the ANSI render path.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)
    try:
        return load_config()
    except (FileNotFoundError, ConfigError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)


def _load_roster(config: AppConfig, roster: str | None) -> PersonaRegistry:
    try:
        return PersonaRegistry.from_yaml(roster or config.defaults.roster, config.personas_path)
    except (FileNotFoundError, ConfigError) as exc:
        console.print(f"[bold red]Roster error:[/bold red] {exc}")
        sys.exit(1)


def _load_knowledge(config: AppConfig) -> KnowledgeBase:
    try:
        return KnowledgeBase.from_yaml(config.knowledge_path)
    except (FileNotFoundError, ConfigError) as exc:
        console.print(f"[bold red]Knowledge error:[/bold red] {exc}")
        sys.exit(1)


def _build_roster_providers(config: AppConfig, registry: PersonaRegistry) -> dict[str, AIProvider]:
    """Build one provider per backend the roster needs. Exits if any is missing."""
    providers: dict[str, AIProvider] = {}
    missing: list[str] = []
    for backend in registry.backends():
        model_cfg = config.models.get(backend)
        if model_cfg is None:
            missing.append(f"{backend} (not in settings)")
            continue
        try:
            providers[backend] = build_provider(model_cfg)
        except (ProviderError, ConfigError) as exc:
            missing.append(f"{backend} ({exc})")
    if missing:
        console.print(f"[bold red]Error:[/bold red] Backends unavailable: {', '.join(missing)}")
        console.print("Set the API keys in .env or choose another --roster.")
        sys.exit(1)
    return providers


def _check_providers(providers: dict[str, AIProvider]) -> list[str]:
    """Run health checks and print results. Returns the failed backend names."""
    console.print("\n[bold]Checking backends...[/bold]")
    results = asyncio.run(run_health_checks(providers))

    failed: list[str] = []
    for name in sorted(results):
        result = results[name]
        if result.ok:
            console.print(f"  [green]OK  [/green] {name} [dim]({result.model}, {result.latency_sec:.1f}s)[/dim]")
        else:
            console.print(f"  [red]FAIL[/red] {name}: {result.error.splitlines()[0][:120]}")
            failed.append(name)
    console.print()
    return failed


async def _run_exploration(orchestrator: Orchestrator, topic: str) -> ExplorationResult:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(f"{len(orchestrator.agents)} agents thinking...", total=None)

        def on_thought(event: Event) -> None:
            progress.print(f"[green]OK[/green] {event.data['agent_name']} (agreement {event.data['agreement']})")

        def on_error(event: Event) -> None:
            progress.print(f"[red]FAIL[/red] {event.data['agent_name']}: {event.data.get('error')}")

        orchestrator.bus.subscribe("agent_thought", on_thought)
        orchestrator.bus.subscribe("agent_error", on_error)
        result = await orchestrator.explore_topic(topic)
        progress.update(task, description="Done")
    return result


@click.group()
def main() -> None:
    """Discovery Council -- physicist personas deliberating toward discoveries.

    \b
    Examples:
      discovery serve --port 3000
      discovery explore "Why does a pendulum's period not depend on mass?"
      discovery explore "Dark matter alternatives" --roster legends --language es
      discovery agents --roster legends
      discovery check
    """


@main.command()
@click.option("--host", default=None, help="Bind address (default: from config)")
@click.option("--port", default=None, type=int, help="Port (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def serve(host: str | None, port: int | None, verbose: bool) -> None:
    """Run the HTTP and WebSocket server."""
    config = _load(verbose)
    app = create_app(AppContext(config))
    host = host or config.defaults.host
    port = port or config.defaults.port
    console.print(f"[bold cyan]Discovery Council[/bold cyan] on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="debug" if verbose else "info")


@main.command()
@click.argument("topic")
@click.option("--roster", default=None, help="Persona roster (default: from config)")
@click.option("--language", default=None, type=click.Choice(["en", "es"]), help="Reply language")
@click.option("--output", "output_path", default=None, type=click.Path(), help="Save a markdown transcript here")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
def explore(
    topic: str,
    roster: str | None,
    language: str | None,
    output_path: str | None,
    verbose: bool,
    skip_health_check: bool,
) -> None:
    """Ask every agent about TOPIC once and report the consensus."""
    config = _load(verbose)
    registry = _load_roster(config, roster)
    knowledge = _load_knowledge(config)
    providers = _build_roster_providers(config, registry)

    if not skip_health_check:
        failed = _check_providers(providers)
        if failed:
            affected = sum(1 for p in registry if p.backend in failed)
            console.print(f"[yellow]{affected} agent(s) use failing backends and will report failures.[/yellow]")
            if not click.confirm("Continue anyway?", default=False):
                sys.exit(0)

    def reuse(model_cfg: ModelConfig, api_key: str | None) -> AIProvider:
        return providers[model_cfg.name]

    agents = build_agents(config, registry, provider_factory=reuse, knowledge=knowledge)
    orchestrator = Orchestrator(agents, ToyWorld(), EventBus(), config.orchestrator)
    orchestrator.set_language(language or config.defaults.language)

    console.print(f"\n[bold cyan]Discovery Council[/bold cyan] -- {len(agents)} agents")
    console.print(f"Topic: [italic]{topic[:80]}{'...' if len(topic) > 80 else ''}[/italic]\n")

    result = asyncio.run(_run_exploration(orchestrator, topic))
    print_exploration(result)

    if output_path:
        saved = save_exploration(result, Path(output_path))
        console.print(f"\n[dim]Saved to: {saved}[/dim]")


@main.command()
@click.option("--roster", default=None, help="Persona roster (default: from config)")
def agents(roster: str | None) -> None:
    """List the personas in a roster."""
    config = _load(False)
    registry = _load_roster(config, roster)
    print_roster(registry, config.available_backends)


@main.command()
@click.option("--roster", default=None, help="Persona roster (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def check(roster: str | None, verbose: bool) -> None:
    """Ping every backend the roster needs."""
    config = _load(verbose)
    registry = _load_roster(config, roster)
    providers = _build_roster_providers(config, registry)
    if _check_providers(providers):
        sys.exit(1)
    console.print("[green]All backends reachable.[/green]")


if __name__ == "__main__":
    main()
