"""rdlaunch command-line interface.

Commands:
    upload     Upload a project using its export description(s)
    prepare    Upload, start remote gdb and report the prepared session
    config     Show or change stored configuration
"""

import logging
import sys
import threading
from pathlib import Path

import click
import paramiko
from rich.console import Console
from rich.table import Table

from rdlaunch import __version__
from rdlaunch.click_group import RdlaunchGroup
from rdlaunch.config_manager import ConfigManager, LaunchConfiguration
from rdlaunch.exceptions import RdlaunchError
from rdlaunch.launcher import Launch, LaunchCapabilities, LaunchMonitor, LaunchOrchestrator
from rdlaunch.source_mapping import MappingSourceContainer
from rdlaunch.ssh.connection import SSHConnection, SSHConnectionError
from rdlaunch.ssh.file_service import SFTPFileService
from rdlaunch.upload.exporter import ExportCoordinator

logger = logging.getLogger(__name__)

console = Console()


def _load_launch_configuration(ctx: click.Context, project: Path) -> LaunchConfiguration:
    config = ConfigManager.load_config(ctx.obj.get("config_path"), project_root=project)
    return config.to_launch_configuration(project)


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@click.group(
    cls=RdlaunchGroup,
    context_settings={"help_option_names": ["--help", "-h"]},
)
@click.option("--verbose", "-v", is_flag=True, help="Show remote output and debug logging")
@click.option("--config", "config_path", type=click.Path(), help="Config file path")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: str | None) -> None:
    """rdlaunch - prepare gdb on a remote host for debugging.

    \b
    Uploads the project described by its *.rexpfd file, starts a remote
    shell, waits for gdb to report its version and maps the remote
    workspace back to the local project.
    """
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path


@main.command(name="upload")
@click.argument("project", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("descriptions", nargs=-1, type=click.Path(path_type=Path))
@click.pass_context
def upload_command(ctx: click.Context, project: Path, descriptions: tuple[Path, ...]) -> None:
    """Upload PROJECT using DESCRIPTIONS (default: the *.rexpfd in PROJECT)."""
    try:
        config = _load_launch_configuration(ctx, project)
        files = list(descriptions)
        if not files:
            found = LaunchOrchestrator.find_export_description(config.project_root)
            if found is None:
                click.echo(f"No export description found in {config.project_root}")
                return
            files = [found]

        with SSHConnection(config.ssh_target()) as connection:
            service = SFTPFileService.open(
                connection, separator=config.remote_separator, encoding=config.remote_encoding
            )
            try:
                status = ExportCoordinator(service).run(files)
            finally:
                service.close()
    except (RdlaunchError, SSHConnectionError, paramiko.SSHException, OSError) as e:
        _fail(str(e))
        return

    console.print(f"[green]✓[/green] {status.message}")


def _report_ready(config: LaunchConfiguration, launch: Launch) -> None:
    """Debug backend used by `prepare`: print what was prepared."""
    table = Table(title="Remote debugger ready", show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Host", f"{config.user}@{config.host}:{config.port}")
    table.add_row("gdb", f"{config.gdb_path} ({launch.gdb_version or 'unknown version'})")
    if launch.export_status is not None:
        table.add_row("Upload", launch.export_status.message)
    if launch.source_locator is not None:
        for container in launch.source_locator.containers:
            if isinstance(container, MappingSourceContainer):
                for entry in container.entries:
                    table.add_row("Source mapping", f"{entry.remote_root} -> {entry.local_root}")
    console.print(table)
    if launch.console_output:
        console.print("[dim]Remote output:[/dim]")
        console.print(launch.console_output, markup=False, highlight=False, end="")


@main.command(name="prepare")
@click.argument("project", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
def prepare_command(ctx: click.Context, project: Path) -> None:
    """Prepare remote gdb for PROJECT and report the result."""
    try:
        config = _load_launch_configuration(ctx, project)
    except RdlaunchError as e:
        _fail(str(e))
        return

    orchestrator = LaunchOrchestrator(LaunchCapabilities(start_session=_report_ready))
    monitor = LaunchMonitor(progress_callback=lambda msg: console.print(f"[dim]► {msg}[/dim]"))
    launch = Launch(configuration=config)
    errors: list[BaseException] = []

    def run() -> None:
        try:
            orchestrator.launch(config, launch, monitor)
        except Exception as e:
            errors.append(e)

    worker = threading.Thread(target=run, name="rdlaunch-launch", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(timeout=0.2)
    except KeyboardInterrupt:
        monitor.cancel()
        worker.join()
        click.echo("\nLaunch cancelled", err=True)
        sys.exit(130)
    finally:
        if launch.shell is not None:
            launch.shell.exit()
        launch.debug_session.dispose()

    if errors:
        if ctx.obj.get("verbose") and launch.console_output:
            click.echo(launch.console_output, err=True, nl=False)
        _fail(str(errors[0]))


@main.group(name="config")
def config_group() -> None:
    """Show or change stored configuration."""


@config_group.command(name="show")
@click.option("--project", type=click.Path(file_okay=False, path_type=Path), help="Project directory")
@click.pass_context
def config_show(ctx: click.Context, project: Path | None) -> None:
    """Show the effective configuration."""
    try:
        config = ConfigManager.load_config(ctx.obj.get("config_path"), project_root=project)
    except RdlaunchError as e:
        _fail(str(e))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for section, values in config.to_dict().items():
        for key, value in values.items():
            table.add_row(f"{section}.{key}", str(value))
    console.print(table)


@config_group.command(name="set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Set KEY (for example remote.host) to VALUE."""
    try:
        ConfigManager.update_config(ctx.obj.get("config_path"), **{key: value})
    except RdlaunchError as e:
        _fail(str(e))
        return
    click.echo(f"Set {key} = {value}")


__all__ = ["main"]
