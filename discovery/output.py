"""Rich console output and markdown file save for exploration results."""

import logging
import re
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from discovery.models import AgentResult, ExplorationResult, Persona, ResultStatus, Role

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STATUS_STYLE = {
    ResultStatus.OK: "green",
    ResultStatus.DEGRADED: "yellow",
    ResultStatus.FAILED: "red",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _preview(text: str, words: int = 50) -> str:
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_roster(personas: Iterable[Persona], available_backends: set[str] | None = None) -> None:
    table = Table(title="Council Roster", show_lines=False)
    table.add_column("Key", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Role")
    table.add_column("Backend")
    table.add_column("Expertise", style="dim")
    for persona in personas:
        backend = persona.backend
        if available_backends is not None and backend not in available_backends:
            backend = f"[red]{backend} (no key)[/red]"
        role = persona.role.value if persona.role is not Role.STANDARD else ""
        table.add_row(persona.key, persona.name, role, backend, ", ".join(persona.expertise[:4]))
    console.print(table)


def print_agent_results(results: list[AgentResult]) -> None:
    console.print(Rule("[bold cyan]Agent Positions[/bold cyan]"))
    for result in results:
        style = _STATUS_STYLE[result.status]
        title = f"[bold]{result.agent_name}[/bold]"
        if result.role is Role.SKEPTIC:
            title += " [magenta](skeptic)[/magenta]"
        console.print(
            Panel(
                _preview(result.thinking),
                title=title,
                subtitle=f"[{style}]{result.status.value}[/{style}] | agreement {result.agreement} | {result.latency_sec:.1f}s",
                border_style="dim",
            )
        )


def print_exploration(exploration: ExplorationResult) -> None:
    """Print agent positions, proposed theories and the consensus verdict."""
    print_agent_results(exploration.agent_results)

    if exploration.theories:
        console.print(Rule("[bold cyan]Proposed Theories[/bold cyan]"))
        for theory in exploration.theories:
            console.print(
                Panel(
                    theory.description,
                    title=f"[bold]{theory.name}[/bold]",
                    subtitle=f"by {theory.proposed_by_name} | agreement {theory.agreement}",
                    border_style="cyan",
                )
            )

    consensus = exploration.consensus
    if consensus is None:
        return
    console.print(Rule("[bold green]Consensus[/bold green]"))
    console.print(
        Text(
            f"{consensus.agree_count}/{consensus.total} agents agree "
            f"({consensus.percent:.1f}%) | average agreement {consensus.average:.1f}",
            style="bold",
        )
    )
    if exploration.discovery is not None:
        console.print(f"[bold green]DISCOVERY:[/bold green] {exploration.discovery.description}")
    else:
        console.print("[yellow]No discovery: supermajority not reached.[/yellow]")


def save_exploration(exploration: ExplorationResult, output_dir: Path) -> Path:
    """Save the exploration transcript as a markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(exploration.topic)}.md"

    duration = ""
    if exploration.completed_at is not None:
        duration = f"{(exploration.completed_at - exploration.started_at).total_seconds():.1f}s"

    lines: list[str] = [
        f"# Exploration: {exploration.topic[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Agents:** {len(exploration.agent_results)}",
        f"**Duration:** {duration}",
        "",
        "---",
        "",
        "## Agent Positions",
        "",
    ]
    for result in exploration.agent_results:
        lines.append(f"### {result.agent_name} ({result.status.value}, agreement {result.agreement})")
        lines.append("")
        lines.append(result.thinking)
        lines.append("")

    if exploration.theories:
        lines += ["## Theories", ""]
        for theory in exploration.theories:
            lines.append(f"### {theory.name} (by {theory.proposed_by_name})")
            lines.append("")
            lines.append(theory.description)
            if theory.mathematics:
                lines += ["", f"`{theory.mathematics}`"]
            lines.append("")

    consensus = exploration.consensus
    if consensus is not None:
        lines += [
            "## Consensus",
            "",
            f"{consensus.agree_count}/{consensus.total} agree ({consensus.percent:.1f}%), "
            f"average {consensus.average:.1f}",
            "",
        ]
    if exploration.discovery is not None:
        lines += [f"**Discovery:** {exploration.discovery.description}", ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Exploration saved to: %s", filepath)
    return filepath
