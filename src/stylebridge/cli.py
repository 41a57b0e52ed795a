"""CLI entry point for stylebridge."""

from __future__ import annotations

import functools
import json
import re
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

console = Console()

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


@click.group()
@click.version_option(version="0.1.0")
def main() -> None:
    """Style-preserving paragraph revision that learns from your edits."""


def _handles_errors(command):
    """Print stylebridge errors instead of a traceback."""

    @functools.wraps(command)
    def wrapper(*args, **kwargs):
        from stylebridge.errors import StyleBridgeError

        try:
            return command(*args, **kwargs)
        except StyleBridgeError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc.message}")
            raise SystemExit(1) from exc

    return wrapper


# ---------------------------------------------------------------------------
# edit: revise one paragraph and record what you did with it
# ---------------------------------------------------------------------------


@main.command()
@click.option("--file", "-f", "file_path", type=click.Path(exists=True), required=True,
              help="Document text; paragraphs are separated by blank lines")
@click.option("--doc", "-d", "document_id", help="Document id (defaults to the file name)")
@click.option("--paragraph", "-p", "paragraph_index", type=int, required=True,
              help="Paragraph number to edit (1-based)")
@click.option("--instruction", "-i", help="What to change")
@click.option("--profile", "profile_id", help="Audience profile id to use")
@click.option("--no-review", is_flag=True, help="Show the suggestion without recording a decision")
@_handles_errors
def edit(
    file_path: str,
    document_id: str | None,
    paragraph_index: int,
    instruction: str | None,
    profile_id: str | None,
    no_review: bool,
) -> None:
    """Suggest a revision for one paragraph of a document."""
    service = _service(require_key=True)
    paragraphs = _split_paragraphs(Path(file_path).read_text())
    document_id = document_id or Path(file_path).stem

    with console.status("[bold green]Revising paragraph..."):
        result = service.orchestrate_edit(
            document_id,
            paragraph_index - 1,
            paragraphs,
            instruction=instruction,
            profile_id=profile_id,
        )

    console.print(Panel(result.original_text, title="Original", border_style="dim"))
    console.print(
        Panel(
            result.edited_text,
            title="Suggestion",
            subtitle=f"alignment {result.critique.alignment_score:.2f} | "
            f"{result.iterations} iteration(s)",
            border_style="green" if result.converged else "yellow",
        )
    )
    _print_convergence(result)

    if no_review:
        return

    choice = Prompt.ask(
        "\nDecision", choices=["accept", "reject", "partial", "skip"], default="accept"
    )
    if choice == "skip":
        return

    final_text = result.edited_text
    if choice != "accept":
        final_text = Prompt.ask("Your version", default=result.edited_text)
    tags = Prompt.ask("Feedback tags (comma separated, optional)", default="")

    outcome = service.record_decision(
        {
            "document_id": document_id,
            "paragraph_index": paragraph_index - 1,
            "original_text": result.original_text,
            "suggested_text": result.edited_text,
            "final_text": final_text,
            "decision": {"accept": "accepted", "reject": "rejected"}.get(choice, choice),
            "instruction": instruction,
            "critique": result.critique.model_dump(),
        },
        _parse_tags(tags),
        profile_id=profile_id,
    )
    _print_outcome(outcome)


# ---------------------------------------------------------------------------
# decide: record a decision made elsewhere
# ---------------------------------------------------------------------------


@main.command()
@click.option("--doc", "-d", "document_id", required=True, help="Document id")
@click.option("--paragraph", "-p", "paragraph_index", type=int, required=True,
              help="Paragraph number (1-based)")
@click.option("--decision", "kind", type=click.Choice(["accepted", "rejected", "partial"]),
              required=True)
@click.option("--original", "original", type=click.Path(exists=True), required=True,
              help="File with the original paragraph")
@click.option("--suggested", "suggested", type=click.Path(exists=True), required=True,
              help="File with the suggested paragraph")
@click.option("--final", "final", type=click.Path(exists=True),
              help="File with the text you kept (defaults to the suggestion)")
@click.option("--feedback", "-t", multiple=True, help="Feedback tag, e.g. too_formal (repeatable)")
@click.option("--instruction", "-i", help="Instruction the suggestion was made for")
@_handles_errors
def decide(
    document_id: str,
    paragraph_index: int,
    kind: str,
    original: str,
    suggested: str,
    final: str | None,
    feedback: tuple[str, ...],
    instruction: str | None,
) -> None:
    """Record what you did with a suggestion so the style can adapt."""
    service = _service()
    suggested_text = Path(suggested).read_text().strip()
    final_text = Path(final).read_text().strip() if final else suggested_text

    with console.status("[bold green]Learning from your decision..."):
        outcome = service.record_decision(
            {
                "document_id": document_id,
                "paragraph_index": paragraph_index - 1,
                "original_text": Path(original).read_text().strip(),
                "suggested_text": suggested_text,
                "final_text": final_text,
                "decision": kind,
                "instruction": instruction,
            },
            list(feedback),
        )
    _print_outcome(outcome)


# ---------------------------------------------------------------------------
# document layer: prefs, sliders, reset, goals, consolidate
# ---------------------------------------------------------------------------


@main.command()
@click.option("--doc", "-d", "document_id", required=True, help="Document id")
@_handles_errors
def prefs(document_id: str) -> None:
    """Show what has been learned for a document."""
    service = _service()
    summary = service.get_preferences_summary(document_id)

    console.print(f"\n[bold]Document preferences[/bold] ({document_id})\n")
    if not summary.has_adjustments:
        console.print("[dim]No adjustments learned yet.[/dim]")
    for line in summary.lines:
        console.print(f"  {line}")
    console.print(
        f"\nDecisions: {summary.edit_count} | "
        f"Acceptance rate: {summary.acceptance_rate:.0%}"
    )

    document = service.get_document(document_id)
    if document and document.adjustments.learned_rules:
        table = Table(title="Learned rules")
        table.add_column("Rule")
        table.add_column("Source")
        table.add_column("Confidence", justify="right")
        for rule in document.adjustments.learned_rules:
            table.add_row(rule.rule, rule.source.value, f"{rule.confidence:.2f}")
        console.print(table)


@main.command()
@click.option("--doc", "-d", "document_id", required=True, help="Document id")
@click.option("--verbosity", type=float, help="-2 (terse) to 2 (detailed)")
@click.option("--formality", type=float, help="-2 (casual) to 2 (formal)")
@click.option("--hedging", type=float, help="-2 (confident) to 2 (cautious)")
@_handles_errors
def sliders(
    document_id: str,
    verbosity: float | None,
    formality: float | None,
    hedging: float | None,
) -> None:
    """Set a document's style sliders directly."""
    service = _service()
    adjustments = service.update_document_sliders(
        document_id, verbosity=verbosity, formality=formality, hedging=hedging
    )
    console.print(
        f"[green]Sliders for {document_id}:[/green] "
        f"verbosity {adjustments.verbosity_adjust:+.1f}, "
        f"formality {adjustments.formality_adjust:+.1f}, "
        f"hedging {adjustments.hedging_adjust:+.1f}"
    )


@main.command()
@click.option("--doc", "-d", "document_id", required=True, help="Document id")
@click.option("--clear-history", is_flag=True, help="Also forget recorded decisions")
@_handles_errors
def reset(document_id: str, clear_history: bool) -> None:
    """Clear everything learned for a document (its goals are kept)."""
    service = _service()
    service.clear_document_adjustments(document_id, keep_history=not clear_history)
    console.print(f"[green]Cleared adjustments for {document_id}[/green]")


@main.command()
@click.option("--file", "-f", "file_path", type=click.Path(exists=True), required=True,
              help="Document text")
@click.option("--doc", "-d", "document_id", help="Document id (defaults to the file name)")
@click.option("--force", is_flag=True, help="Re-infer goals that were inferred before")
@_handles_errors
def goals(file_path: str, document_id: str | None, force: bool) -> None:
    """Infer what a document is trying to achieve."""
    service = _service(require_key=True)
    document_id = document_id or Path(file_path).stem

    with console.status("[bold green]Reading the document..."):
        result = service.synthesize_goals(document_id, Path(file_path).read_text(), force=force)

    if result is None:
        console.print("[yellow]Could not infer goals for this document.[/yellow]")
        return
    console.print(Panel(result.summary, title="Document goals"))
    for objective in result.objectives:
        console.print(f"  - {objective}")
    if result.main_argument:
        console.print(f"\n[bold]Main argument:[/bold] {result.main_argument}")


@main.command()
@click.option("--doc", "-d", "document_id", required=True, help="Document id")
@_handles_errors
def consolidate(document_id: str) -> None:
    """Merge a document's framing guidance into fewer directives."""
    service = _service(require_key=True)
    with console.status("[bold green]Consolidating guidance..."):
        guidance = service.consolidate_guidance(document_id)

    if guidance is None:
        console.print("[yellow]Consolidation failed; guidance left unchanged.[/yellow]")
        return
    console.print(f"[green]Guidance consolidated into {len(guidance)} items:[/green]")
    for item in guidance:
        console.print(f"  - {item}")


@main.command()
@click.option("--file", "-f", "file_path", type=click.Path(exists=True), required=True,
              help="Grant call, style guide or submission requirements")
@click.option("--doc", "-d", "document_id", required=True, help="Document id")
@click.option("--no-merge", is_flag=True, help="Show the constraints without storing them")
@_handles_errors
def constraints(file_path: str, document_id: str, no_merge: bool) -> None:
    """Extract writing constraints from instructions and apply them to a document."""
    service = _service(require_key=True)
    with console.status("[bold green]Reading the requirements..."):
        result = service.extract_constraints(
            document_id, Path(file_path).read_text(), merge=not no_merge
        )

    if result is None:
        console.print("[yellow]Could not extract constraints; nothing was changed.[/yellow]")
        return
    console.print(Panel(result.summary, title="Requirements"))
    console.print(
        f"Sliders: verbosity {result.verbosity_adjust:+.1f}, "
        f"formality {result.formality_adjust:+.1f}, hedging {result.hedging_adjust:+.1f}"
    )
    if result.avoid_words:
        console.print(f"Avoid: {', '.join(result.avoid_words)}")
    for source, target in result.prefer_words.items():
        console.print(f"  {source} -> {target}")
    for rule in result.rules:
        console.print(f"  - {rule}")
    if not no_merge:
        console.print(f"[green]Merged into document {document_id}.[/green]")


# ---------------------------------------------------------------------------
# profiles: audience profiles
# ---------------------------------------------------------------------------


@main.group()
def profiles() -> None:
    """Manage audience profiles."""


@profiles.command("list")
@_handles_errors
def list_profiles() -> None:
    """List audience profiles."""
    service = _service()
    active = service.repository.load_preferences().value.active_profile_id
    items = service.list_profiles()
    if not items:
        console.print("[dim]No audience profiles yet.[/dim]")
        return

    table = Table(title="Audience profiles")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Source")
    table.add_column("Active", justify="center")
    for profile in items:
        table.add_row(
            profile.id,
            profile.name,
            profile.source.value,
            "*" if profile.id == active else "",
        )
    console.print(table)


@profiles.command("create")
@click.option("--name", "-n", required=True, help="Profile name")
@click.option("--description", default="", help="Who the audience is")
@click.option("--jargon", type=click.Choice(["minimal", "moderate", "heavy"]), default="moderate")
@click.option("--framing", multiple=True, help="Framing guidance (repeatable)")
@click.option("--from-description", "description_file", type=click.Path(exists=True),
              help="Draft the settings from a file describing the audience's preferences")
@_handles_errors
def create_profile(
    name: str,
    description: str,
    jargon: str,
    framing: tuple[str, ...],
    description_file: str | None,
) -> None:
    """Create an audience profile."""
    if description_file:
        service = _service(require_key=True)
        with console.status("[bold green]Drafting profile settings..."):
            profile = service.create_profile_from_description(
                name, Path(description_file).read_text(), description=description
            )
    else:
        service = _service()
        profile = service.create_profile(
            {
                "name": name,
                "description": description,
                "jargon_level": jargon,
                "framing_guidance": list(framing),
            }
        )
    console.print(f"[green]Created profile {profile.name} ({profile.id})[/green]")



@profiles.command("delete")
@click.argument("profile_id")
@_handles_errors
def delete_profile(profile_id: str) -> None:
    """Delete an audience profile."""
    _service().delete_profile(profile_id)
    console.print(f"[green]Deleted profile {profile_id}[/green]")


@profiles.command("activate")
@click.argument("profile_id", required=False)
@_handles_errors
def activate_profile(profile_id: str | None) -> None:
    """Make a profile the default (no argument clears it)."""
    _service().set_active_profile(profile_id)
    if profile_id:
        console.print(f"[green]Active profile: {profile_id}[/green]")
    else:
        console.print("[green]No active profile[/green]")


@main.command()
@click.option("--doc", "-d", "document_id", required=True, help="Document id")
@click.option("--name", "-n", help="Name for a new profile")
@click.option("--into", "target_profile_id", help="Existing profile id to merge into")
@_handles_errors
def promote(document_id: str, name: str | None, target_profile_id: str | None) -> None:
    """Turn what a document has learned into an audience profile."""
    if not name and not target_profile_id:
        raise click.UsageError("Pass --name for a new profile or --into for an existing one")
    profile = _service().merge_document_to_profile(
        document_id, target_profile_id=target_profile_id, name=name
    )
    console.print(f"[green]Saved document preferences to profile {profile.name} ({profile.id})[/green]")


# ---------------------------------------------------------------------------
# style: base style
# ---------------------------------------------------------------------------


@main.command()
@click.option("--reset", "reset_style", is_flag=True, help="Restore the default base style")
@click.option("--set", "assignments", multiple=True, metavar="FIELD=VALUE",
              help="Change a base style field, e.g. formality_level=4 (repeatable)")
@_handles_errors
def style(reset_style: bool, assignments: tuple[str, ...]) -> None:
    """Show or change your base writing style."""
    service = _service()
    if reset_style:
        base = service.reset_base_style()
        console.print("[green]Base style reset to defaults[/green]")
    elif assignments:
        base = service.update_base_style(_parse_assignments(assignments))
        console.print("[green]Base style updated[/green]")
    else:
        base = service.get_base_style()

    console.print("\n[bold]Base style[/bold]\n")
    console.print(f"  Verbosity: {base.verbosity.value}")
    console.print(f"  Formality: {base.formality_level}/5")
    console.print(f"  Hedging: {base.hedging_style.value}")
    console.print(f"  Active voice: {base.active_voice_preference:.0%}")
    if base.avoid_words:
        console.print(f"  Avoid: {', '.join(base.avoid_words)}")
    if base.preferred_words:
        pairs = ", ".join(f"{k} -> {v}" for k, v in base.preferred_words.items())
        console.print(f"  Prefer: {pairs}")
    if base.format_bans:
        console.print(f"  Never use: {', '.join(base.format_bans)}")


# ---------------------------------------------------------------------------
# export / import
# ---------------------------------------------------------------------------


@main.command("export")
@click.option("--out", "-o", "out_path", type=click.Path(), required=True, help="Output JSON file")
@_handles_errors
def export_prefs(out_path: str) -> None:
    """Export global preferences to a JSON file."""
    record = _service().export_preferences()
    path = Path(out_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(record, indent=2))
    console.print(f"[green]Exported preferences to {path}[/green]")


@main.command("import")
@click.argument("in_path", type=click.Path(exists=True))
@_handles_errors
def import_prefs(in_path: str) -> None:
    """Replace global preferences with an exported JSON file."""
    from stylebridge.errors import ValidationError

    try:
        record = json.loads(Path(in_path).read_text())
    except json.JSONDecodeError as exc:
        raise ValidationError(f"{in_path} is not valid JSON: {exc.msg}") from exc
    imported = _service().import_preferences(record)
    console.print(
        f"[green]Imported preferences with {len(imported.audience_profiles)} profile(s)[/green]"
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _service(require_key: bool = False):
    """Build the service from settings, with logging routed through rich."""
    from stylebridge.config import get_settings
    from stylebridge.logging_config import configure_logging
    from stylebridge.service import StyleBridge

    settings = get_settings()
    configure_logging(settings.log_level, console)
    if require_key:
        _check_api_key(settings)
    return StyleBridge(settings)


def _check_api_key(settings: object) -> None:
    """Exit with a helpful message if the API key is not set."""
    if not getattr(settings, "anthropic_api_key", ""):
        console.print(
            "[bold red]Error:[/bold red] ANTHROPIC_API_KEY not set.\n"
            "Add it to .env or export it in your shell."
        )
        raise SystemExit(1)


def _split_paragraphs(text: str) -> list[str]:
    return [p.strip() for p in _PARAGRAPH_BREAK.split(text) if p.strip()]


def _parse_tags(raw: str) -> list[str]:
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


def _parse_assignments(assignments: tuple[str, ...]) -> dict:
    """Turn FIELD=VALUE pairs into a dict. Values are parsed as JSON when possible."""
    changes = {}
    for assignment in assignments:
        field, sep, value = assignment.partition("=")
        if not sep or not field.strip():
            raise click.BadParameter(f"Expected FIELD=VALUE, got {assignment!r}")
        try:
            changes[field.strip()] = json.loads(value)
        except json.JSONDecodeError:
            changes[field.strip()] = value
    return changes


def _print_convergence(result: object) -> None:
    table = Table(title="Convergence")
    table.add_column("Iteration", justify="right")
    table.add_column("Alignment", justify="right")
    table.add_column("Issues", justify="right")
    table.add_column("Note")
    for step in result.convergence_history:
        table.add_row(
            str(step.iteration),
            f"{step.alignment_score:.2f}",
            str(step.issue_count),
            step.note,
        )
    console.print(table)


def _print_outcome(outcome: object) -> None:
    console.print("[bold green]Decision recorded.[/bold green]")
    for insight in outcome.insights:
        console.print(f"  - {insight}")
    for error in outcome.errors:
        console.print(f"  [yellow]! {error}[/yellow]")
