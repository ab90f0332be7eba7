"""CLI entry point for earsflow.

Commands:
- earsflow init: Scaffold the .ai directory for a project
- earsflow route: Recommend skills for a request
- earsflow context: Load budgeted context for a skill
- earsflow phase: Track progress through the workflow phases
- earsflow skills: List and show skills
- earsflow worktree: Manage git worktrees
- earsflow reset: Reset memory and docs with archiving
- earsflow archive: List, create, restore and prune archives
- earsflow validate: Validate skills, cross-references and config
- earsflow config: Inspect configuration
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from earsflow import __version__
from earsflow.core.archive import DOC_DIRECTORIES
from earsflow.core.config import (
    DEFAULT_CONFIG_PATH,
    ConfigManager,
    SkillsConfig,
    default_config_dict,
    get_config_value,
)
from earsflow.core.context import ContextOptimizer
from earsflow.core.errors import EarsflowError, format_error
from earsflow.core.models import ResetLevel, SessionContext
from earsflow.core.phases import PHASE_DESCRIPTIONS, PHASE_NAMES, PHASE_SEQUENCE, PhaseStateStore, PhaseTracker
from earsflow.core.reset import ResetManager, parse_level
from earsflow.core.routing import create_router
from earsflow.core.skills import SkillCatalog
from earsflow.core.templates import TEMPLATE_DIR, TemplateRenderer
from earsflow.core.utils import human_size
from earsflow.core.validation import CrossReferenceValidator, SkillValidator, validate_config_file
from earsflow.core.worktree import WorktreeManager

console = Console()
logger = logging.getLogger(__name__)


class AppContext:
    """Project root and lazily loaded configuration shared by commands."""

    def __init__(self, project_root: Path, verbose: bool = False):
        self.project_root = project_root
        self.verbose = verbose
        self._config: SkillsConfig | None = None

    @property
    def config(self) -> SkillsConfig:
        if self._config is None:
            self._config = ConfigManager(self.project_root).load()
        return self._config

    @property
    def skills_dir(self) -> Path:
        return self.project_root / ".ai" / "skills"


pass_app = click.make_pass_decorator(AppContext)


def _fail(error: EarsflowError) -> NoReturn:
    console.print(f"[red]Error:[/red] {escape(format_error(error))}")
    sys.exit(1)


def _progress(phase: str, processed: int, total: int) -> None:
    console.print(f"[dim]{phase}: {processed}/{total}[/dim]")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option(
    "--project",
    "-p",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory)",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, project: Path | None) -> None:
    """earsflow - skill routing, context budgeting and project upkeep.

    Works on the .ai directory of a project: skills, memory files,
    workflow docs and archives.
    """
    app = AppContext((project or Path.cwd()).absolute(), verbose=verbose)
    ctx.obj = app
    if ctx.invoked_subcommand not in ("init", "version", "validate", "config"):
        try:
            display = app.config.display
        except EarsflowError:
            # Commands that need config report the error themselves
            display = None
        if display is not None:
            verbose = verbose or display.verbose_logging
            console.no_color = not display.color_output
    _configure_logging(verbose)


@main.command()
def version() -> None:
    """Show the earsflow version."""
    console.print(f"earsflow {__version__}")


@main.command()
@pass_app
def init(app: AppContext) -> None:
    """Scaffold the .ai directory without overwriting existing files."""
    ai_dir = app.project_root / ".ai"
    renderer = TemplateRenderer()
    created: list[str] = []
    skipped: list[str] = []

    def write(path: Path, content: str) -> None:
        rel = str(path.relative_to(app.project_root))
        if path.exists():
            skipped.append(rel)
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        created.append(rel)

    write(app.project_root / DEFAULT_CONFIG_PATH, json.dumps(default_config_dict(), indent=2) + "\n")
    for name in ("lessons", "decisions"):
        template_text = (TEMPLATE_DIR / f"{name}.md.j2").read_text(encoding="utf-8")
        write(ai_dir / "templates" / f"{name}.template.md", template_text)
        write(ai_dir / "memory" / f"{name}.md", renderer.render_memory(name))
    for doc_dir in DOC_DIRECTORIES:
        write(ai_dir / "docs" / doc_dir / "README.md", f"# {doc_dir.title()}\n")
    write(
        ai_dir / "skills" / "example-skill" / "SKILL.md",
        renderer.render(
            "skill.md.j2",
            name="example-skill",
            title="Example Skill",
            description="Example skill scaffold. Use this skill when you need a starting point for a new skill.",
        ),
    )
    (ai_dir / "archive").mkdir(parents=True, exist_ok=True)

    body = "\n".join(f"- {p}" for p in created) or "Nothing to create"
    if skipped:
        body += f"\n\n[dim]Kept {len(skipped)} existing file(s)[/dim]"
    console.print(Panel(f"[green]Project initialized![/green]\n\n{body}", title="earsflow init"))


@main.command()
@click.argument("text")
@click.option("--phase", help="Current workflow phase")
@click.option("--activity", "-a", multiple=True, help="Recent activity (repeatable, oldest first)")
@click.option("--explain", is_flag=True, help="Explain the top recommendation")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@pass_app
def route(
    app: AppContext, text: str, phase: str | None, activity: tuple[str, ...], explain: bool, as_json: bool
) -> None:
    """Recommend skills for TEXT.

    Example:
        earsflow route "create requirements for login" --phase spec-forge
    """
    try:
        session = PhaseStateStore(app.project_root).session()
    except EarsflowError as e:
        _fail(e)
    router = create_router(session)
    router.update_session(current_phase=phase, recent_activities=list(activity))
    result = router.analyze(text)

    if as_json:
        click.echo(result.model_dump_json(indent=2))
        return

    check = result.phase_check
    if check and not check.valid:
        console.print(Panel(f"[yellow]{escape(check.message)}[/yellow]", title="Phase Sequence"))

    if not result.recommendations:
        console.print("[yellow]No skill matched this request[/yellow]")
        return

    table = Table(title="Skill Recommendations")
    table.add_column("Skill", style="cyan")
    table.add_column("Confidence", justify="right")
    table.add_column("Type")
    table.add_column("Trigger")
    for rec in result.recommendations:
        table.add_row(rec.skill, f"{rec.confidence}%", rec.type.value, escape(rec.trigger))
    console.print(table)

    if explain and result.best:
        console.print(Panel(escape(router.explain(result.best, result)), title="Explanation"))


@main.command()
@click.argument("args", nargs=-1, required=True)
@click.option("--phase", help="Current workflow phase")
@click.option("--recent", "-r", multiple=True, help="Recently used file (repeatable)")
@pass_app
def context(app: AppContext, args: tuple[str, ...], phase: str | None, recent: tuple[str, ...]) -> None:
    """Load budgeted context: [SKILL] INTENT.

    Example:
        earsflow context bug-fix "fix failing login test"
    """
    if len(args) > 2:
        raise click.UsageError("Expected [SKILL] INTENT")
    skill, intent = (args[0], args[1]) if len(args) == 2 else (None, args[0])

    session = SessionContext(current_phase=phase, recent_files=list(recent))
    result = ContextOptimizer(app.project_root).optimize(skill, intent, session)
    ctx_load = result.context

    table = Table(title=f"Context ({ctx_load.tier} tier)")
    table.add_column("Source", style="cyan")
    table.add_column("Type")
    table.add_column("Score", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Pruned")
    for source in ctx_load.loaded:
        loaded = source.load_result
        table.add_row(
            escape(source.path),
            source.type,
            str(source.score),
            str(loaded.tokens if loaded else 0),
            "yes" if loaded and loaded.pruned else "no",
        )
    console.print(table)

    stats = ctx_load.stats
    console.print(
        f"[bold]Budget:[/bold] {stats.used}/{stats.budget} tokens "
        f"({stats.utilization:.1f}% used, {stats.remaining} remaining)"
    )
    mem = result.memory.stats
    if mem:
        console.print(
            f"[bold]Memory:[/bold] {mem['optimized_lessons']}/{mem['original_lessons']} lessons, "
            f"{mem['optimized_decisions']}/{mem['original_decisions']} decisions"
        )
    for advice in result.recommendations:
        color = "yellow" if advice.type == "warning" else "blue"
        console.print(f"[{color}]{advice.message}[/{color}] {advice.action}")


@main.group()
def phase() -> None:
    """Track progress through the workflow phases."""
    pass


def _phase_store(app: AppContext) -> tuple[PhaseStateStore, PhaseTracker]:
    store = PhaseStateStore(app.project_root)
    try:
        return store, store.tracker()
    except EarsflowError as e:
        _fail(e)


@phase.command("status")
@pass_app
def phase_status(app: AppContext) -> None:
    """Show phase progress and what comes next."""
    _, tracker = _phase_store(app)
    table = Table(title="Workflow Phases")
    table.add_column("Phase", style="cyan")
    table.add_column("Status")
    table.add_column("Description")
    for name in PHASE_SEQUENCE:
        status = tracker.status(name)
        color = {"completed": "green", "in_progress": "yellow"}.get(status, "dim")
        marker = " (current)" if name == tracker.current_phase else ""
        table.add_row(PHASE_NAMES[name], f"[{color}]{status}[/{color}]{marker}", PHASE_DESCRIPTIONS[name])
    console.print(table)
    console.print(tracker.progress_indicator())
    upcoming = tracker.next_phase()
    if upcoming:
        console.print(f"[bold]Next:[/bold] {PHASE_NAMES[upcoming]}")
    else:
        console.print("[green]All phases completed[/green]")


@phase.command("start")
@click.argument("name")
@pass_app
def phase_start(app: AppContext, name: str) -> None:
    """Enter phase NAME once earlier phases are completed."""
    store, tracker = _phase_store(app)
    try:
        record = tracker.transition(name)
    except EarsflowError as e:
        _fail(e)
    store.save(tracker.state)
    console.print(f"[green]Entered[/green] {PHASE_NAMES[record.to_phase]}")
    console.print(tracker.progress_indicator())


@phase.command("complete")
@click.argument("name", required=False)
@pass_app
def phase_complete(app: AppContext, name: str | None) -> None:
    """Mark phase NAME (default: current phase) completed."""
    store, tracker = _phase_store(app)
    try:
        upcoming = tracker.complete(name)
    except EarsflowError as e:
        _fail(e)
    store.save(tracker.state)
    console.print(tracker.progress_indicator())
    if upcoming:
        console.print(f"[bold]Next:[/bold] {PHASE_NAMES[upcoming]}")
    else:
        console.print("[green]Workflow complete[/green]")


@phase.command("history")
@pass_app
def phase_history(app: AppContext) -> None:
    """Show recent phase transitions."""
    _, tracker = _phase_store(app)
    if not tracker.history:
        console.print("[dim]No phase transitions recorded[/dim]")
        return
    table = Table(title="Phase History")
    table.add_column("When")
    table.add_column("From")
    table.add_column("To", style="cyan")
    for record in tracker.history:
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            record.from_phase or "-",
            record.to_phase,
        )
    console.print(table)


@phase.command("reset")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@pass_app
def phase_reset(app: AppContext, yes: bool) -> None:
    """Forget phase progress and history."""
    if not yes:
        click.confirm("Reset workflow phase progress?", abort=True)
    store = PhaseStateStore(app.project_root)
    tracker = PhaseTracker()
    store.save(tracker.state)
    console.print("[green]Phase progress reset[/green]")


@main.group()
def skills() -> None:
    """List and inspect skills."""
    pass


@skills.command("list")
@pass_app
def skills_list(app: AppContext) -> None:
    """List discovered skills."""
    catalog = SkillCatalog(app.skills_dir)
    summaries = catalog.summaries()
    if not summaries:
        console.print(f"[yellow]No skills found in {app.skills_dir}[/yellow]")
        return

    table = Table(title="Skills")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Description", style="green")
    for meta in summaries:
        table.add_row(meta.name, meta.version or "-", escape(meta.description))
    console.print(table)
    console.print(f"[dim]Metadata tier: ~{catalog.estimate_metadata_tokens()} tokens[/dim]")


@skills.command("show")
@click.argument("name")
@pass_app
def skills_show(app: AppContext, name: str) -> None:
    """Show the full instructions of skill NAME."""
    catalog = SkillCatalog(app.skills_dir)
    try:
        meta = catalog.get(name)
        body = catalog.load_instructions(name)
    except EarsflowError as e:
        _fail(e)
    console.print(Panel(escape(body), title=f"{meta.name} ({meta.version or 'unversioned'})"))


@main.group()
def worktree() -> None:
    """Manage git worktrees."""
    pass


def _worktree_manager(app: AppContext) -> WorktreeManager:
    try:
        return WorktreeManager(app.project_root, app.config)
    except EarsflowError as e:
        _fail(e)


@worktree.command("create")
@click.argument("branch")
@click.option("--base", default="main", show_default=True, help="Base branch for a new branch")
@click.option("--path", "path", type=click.Path(path_type=Path), help="Worktree location")
@pass_app
def worktree_create(app: AppContext, branch: str, base: str, path: Path | None) -> None:
    """Create a worktree for BRANCH."""
    manager = _worktree_manager(app)
    try:
        wt = manager.create(branch, base=base, path=path)
    except EarsflowError as e:
        _fail(e)
    console.print(f"[green]Created worktree[/green] {escape(wt.path)} on {wt.branch} ({wt.commit})")


@worktree.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@pass_app
def worktree_list(app: AppContext, as_json: bool) -> None:
    """List worktrees."""
    manager = _worktree_manager(app)
    try:
        worktrees = manager.list()
    except EarsflowError as e:
        _fail(e)

    if as_json:
        click.echo(json.dumps([wt.model_dump(mode="json") for wt in worktrees], indent=2))
        return

    table = Table(title="Worktrees")
    table.add_column("Path", style="cyan")
    table.add_column("Branch", style="green")
    table.add_column("Commit")
    table.add_column("Status")
    for wt in worktrees:
        table.add_row(escape(wt.path), wt.branch or "(detached)", (wt.commit or "")[:8], wt.status.value)
    console.print(table)


@worktree.command("remove")
@click.argument("branch")
@click.option("--delete-branch", is_flag=True, help="Also delete the branch")
@pass_app
def worktree_remove(app: AppContext, branch: str, delete_branch: bool) -> None:
    """Remove the worktree for BRANCH."""
    manager = _worktree_manager(app)
    try:
        result = manager.remove(branch, delete_branch=delete_branch)
    except EarsflowError as e:
        _fail(e)
    suffix = " and deleted branch" if result.branch_deleted else ""
    console.print(f"[green]Removed worktree[/green] {escape(result.path)}{suffix}")


@worktree.command("cleanup")
@pass_app
def worktree_cleanup(app: AppContext) -> None:
    """Prune stale worktree records."""
    manager = _worktree_manager(app)
    try:
        result = manager.cleanup()
    except EarsflowError as e:
        _fail(e)
    if not result.cleaned:
        console.print("[dim]Nothing to clean up[/dim]")
    for line in result.cleaned:
        console.print(f"  - {escape(line)}")
    for line in result.errors:
        console.print(f"[yellow]{escape(line)}[/yellow]")


@worktree.command("status")
@pass_app
def worktree_status(app: AppContext) -> None:
    """Show repository and worktree status."""
    manager = _worktree_manager(app)
    try:
        report = manager.status(app.project_root)
    except EarsflowError as e:
        _fail(e)
    console.print(f"[bold]Repository:[/bold] {escape(report.repository_root)}")
    console.print(f"[bold]Current branch:[/bold] {report.current_branch or '(none)'}")
    console.print(f"[bold]In worktree:[/bold] {'yes' if report.in_worktree else 'no'}")
    console.print(f"[bold]Worktrees:[/bold] {len(report.worktrees)}")
    for name, url in report.remotes.items():
        console.print(f"[bold]Remote {name}:[/bold] {escape(url)}")


def _reset_manager(app: AppContext) -> ResetManager:
    try:
        config = app.config
    except EarsflowError as e:
        _fail(e)
    progress = _progress if config.display.progress_indicators else None
    return ResetManager(app.project_root, config, progress=progress)


@main.command()
@click.argument("level", type=click.Choice([lvl.value for lvl in ResetLevel]))
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.option("--no-archive", is_flag=True, help="Do not archive before resetting")
@click.option("--clear-archive", is_flag=True, help="Remove all archives afterwards")
@click.option("--archive-limit", type=click.IntRange(min=0), help="Keep only the newest N archives")
@click.option("--path", "paths", multiple=True, help="Path to delete (custom level, repeatable)")
@pass_app
def reset(
    app: AppContext,
    level: str,
    yes: bool,
    no_archive: bool,
    clear_archive: bool,
    archive_limit: int | None,
    paths: tuple[str, ...],
) -> None:
    """Reset project memory and docs at LEVEL.

    \b
    light   clear documentation only
    medium  reset memory files to templates
    full    reset memory and clear documentation
    custom  delete the given --path entries
    """
    manager = _reset_manager(app)
    try:
        reset_level = parse_level(level)
    except EarsflowError as e:
        _fail(e)
    if reset_level is ResetLevel.CUSTOM and not paths:
        raise click.UsageError("custom reset needs at least one --path")

    if manager.config.reset.confirm_destructive and not yes:
        note = "" if no_archive else " (an archive is created first)"
        click.confirm(f"Perform a {level} reset{note}?", abort=True)

    try:
        result = manager.perform_reset(
            reset_level,
            no_archive=no_archive,
            clear_archive=clear_archive,
            archive_limit=archive_limit,
            custom_paths=paths,
        )
    except EarsflowError as e:
        _fail(e)

    lines = [f"[green]Reset '{result.level.value}' complete[/green]"]
    if result.archive:
        lines.append(f"Archive: {result.archive}")
    if result.memory_reset:
        lines.append("Memory files reset to templates")
    if result.docs_cleared:
        lines.append("Documentation cleared")
    if result.files_processed:
        lines.append(f"Removed {result.files_processed} path(s)")
    if result.archives_removed:
        lines.append(f"Removed {result.archives_removed} old archive(s)")
    console.print(Panel("\n".join(lines), title="Reset"))
    for error in result.errors:
        console.print(f"[yellow]{escape(error)}[/yellow]")


@main.group()
def archive() -> None:
    """Manage reset archives."""
    pass


@archive.command("list")
@pass_app
def archive_list(app: AppContext) -> None:
    """List archives, newest first."""
    archives = _reset_manager(app).list_archives()
    if not archives:
        console.print("[dim]No archives found[/dim]")
        return

    table = Table(title="Archives")
    table.add_column("Name", style="cyan")
    table.add_column("Created")
    table.add_column("Operation")
    table.add_column("Files", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Valid")
    for item in archives:
        table.add_row(
            item.name,
            item.created.strftime("%Y-%m-%d %H:%M:%S") if item.created else "-",
            item.operation or "-",
            str(item.total_files),
            human_size(item.total_size),
            "[green]yes[/green]" if item.valid else f"[red]no[/red] {escape(item.error or '')}",
        )
    console.print(table)


@archive.command("create")
@click.argument("name")
@pass_app
def archive_create(app: AppContext, name: str) -> None:
    """Archive current memory and docs as NAME."""
    manager = _reset_manager(app)
    try:
        summary = manager.create_archive(name)
    except EarsflowError as e:
        _fail(e)
    console.print(
        f"[green]Created archive[/green] {summary.name} "
        f"({summary.total_files} files, {human_size(summary.total_size)})"
    )


@archive.command("restore")
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@pass_app
def archive_restore(app: AppContext, name: str, yes: bool) -> None:
    """Restore archive NAME over the current memory and docs."""
    manager = _reset_manager(app)
    if manager.config.reset.confirm_destructive and not yes:
        click.confirm(f"Restore {name}? Current state is backed up first.", abort=True)
    try:
        backup = manager.restore(name)
    except EarsflowError as e:
        _fail(e)
    console.print(f"[green]Restored[/green] {name} [dim](backup: {backup.name})[/dim]")


@archive.command("prune")
@pass_app
def archive_prune(app: AppContext) -> None:
    """Remove archives older than reset.retentionDays."""
    manager = _reset_manager(app)
    removed = manager.prune_expired()
    if not removed:
        console.print("[dim]No expired archives[/dim]")
        return
    for name in removed:
        console.print(f"  - {name}")
    console.print(f"[green]Removed {len(removed)} expired archive(s)[/green]")


@main.group()
def validate() -> None:
    """Validate skills, documentation references and configuration."""
    pass


@validate.command("skills")
@click.option("--skill", "-s", help="Validate a single skill")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["console", "json", "markdown"]),
    default="console",
    show_default=True,
)
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write report to file")
@click.option("--strict", is_flag=True, help="Also show recommendations")
@pass_app
def validate_skills(app: AppContext, skill: str | None, fmt: str, output: Path | None, strict: bool) -> None:
    """Validate SKILL.md files and skill directory structure."""
    try:
        validator = SkillValidator(app.skills_dir, strict=strict)
    except EarsflowError as e:
        _fail(e)
    report = validator.validate(skill)
    if not report.results:
        console.print(f"[yellow]No skills found in {app.skills_dir}[/yellow]")
        return

    if fmt == "console":
        report.render(console)
    else:
        text = report.to_json() if fmt == "json" else report.to_markdown()
        if output:
            output.write_text(text, encoding="utf-8")
            console.print(f"Report written to {output}")
        else:
            click.echo(text)

    if not report.valid:
        sys.exit(1)


@validate.command("refs")
@pass_app
def validate_refs(app: AppContext) -> None:
    """Check links and file references in documentation."""
    report = CrossReferenceValidator(app.project_root).validate()
    console.print(f"Checked {len(report.files_checked)} file(s)")
    for warning in report.warnings:
        console.print(f"[yellow]⚠ {escape(warning)}[/yellow]")
    for error in report.errors:
        console.print(f"[red]✗ {escape(error)}[/red]")
    if report.errors:
        console.print(f"[red]Found {len(report.errors)} cross-reference error(s)[/red]")
        sys.exit(1)
    console.print("[green]All cross-references are valid![/green]")


@validate.command("config")
@click.option("--file", "config_file", type=click.Path(dir_okay=False, path_type=Path), help="Config file")
@pass_app
def validate_config(app: AppContext, config_file: Path | None) -> None:
    """Validate the configuration file."""
    path = config_file or app.project_root / DEFAULT_CONFIG_PATH
    errors = validate_config_file(path)
    if errors:
        for error in errors:
            console.print(f"[red]✗ {escape(error)}[/red]")
        sys.exit(1)
    if not path.is_file():
        console.print(f"[dim]{path} not found, defaults apply[/dim]")
    console.print("[green]Configuration is valid[/green]")


@main.group()
def config() -> None:
    """Inspect configuration."""
    pass


@config.command("show")
@pass_app
def config_show(app: AppContext) -> None:
    """Print the effective configuration as JSON."""
    try:
        data = app.config.to_json_dict()
    except EarsflowError as e:
        _fail(e)
    click.echo(json.dumps(data, indent=2))


@config.command("get")
@click.argument("key")
@pass_app
def config_get(app: AppContext, key: str) -> None:
    """Print one value by dotted KEY, e.g. worktree.baseDirectory."""
    try:
        cfg = app.config
    except EarsflowError as e:
        _fail(e)
    missing = object()
    value = get_config_value(cfg, key, default=missing)
    if value is missing:
        console.print(f"[red]Error:[/red] Unknown configuration key: {escape(key)}")
        sys.exit(1)
    click.echo(json.dumps(value) if not isinstance(value, str) else value)


if __name__ == "__main__":
    main()
