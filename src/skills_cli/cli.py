import asyncio
import json
import sys
from pathlib import Path

import click

from skills_cli.constant import VERSION

_LOG_LEVEL_OPTION = "--log-level"
_DEFAULT_LOG_LEVEL_KEY = "default"


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(VERSION)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Log debug information. Default: no.",
)
@click.option(
    "--log-level",
    "-L",
    "log_level_override",
    multiple=True,
    help=(
        "Override log level per module. Use `module=LEVEL` to target a specific module "
        "(e.g. `-L skills_cli.backends=DEBUG`) or just `LEVEL` to change the default level."
    ),
)
@click.option(
    "--config-file",
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (TOML or JSON). Default: config.toml in the share directory.",
)
@click.pass_context
def skills(
    ctx: click.Context,
    debug: bool,
    log_level_override: tuple[str, ...],
    config_file: Path | None,
):
    """Install agent skills from remote skill sources."""
    from skills_cli.config import load_config
    from skills_cli.exception import ConfigError
    from skills_cli.share import get_share_dir
    from skills_cli.utils.logging import configure_file_logging, logger

    try:
        config = load_config(config_file)
    except ConfigError as exc:
        raise click.ClickException(exc.message) from exc

    logger.enable("skills_cli")
    config_levels = dict(config.logging.levels)
    cli_levels = _parse_log_level_overrides(log_level_override)
    merged_levels = {**config_levels, **cli_levels}
    base_level = "TRACE" if debug else "INFO"
    try:
        configure_file_logging(
            get_share_dir() / "logs" / "skills.log",
            base_level=base_level,
            module_levels=merged_levels,
        )
    except ValueError as exc:
        raise click.BadOptionUsage("--log-level", str(exc)) from exc

    ctx.obj = config


@skills.command()
@click.argument("reference", metavar="OWNER/REPO")
@click.option(
    "--skill",
    "-s",
    "skill_name",
    type=str,
    default=None,
    help="Install only this skill. Default: every skill in the source's manifest.",
)
@click.option(
    "--revision",
    "-r",
    type=str,
    default=None,
    help="Branch, tag or commit to install from. Default: the source's default branch.",
)
@click.option(
    "--force",
    is_flag=True,
    default=False,
    help="Replace skills that are already installed.",
)
@click.option(
    "--skip-existing",
    is_flag=True,
    default=False,
    help="Leave skills that are already installed untouched.",
)
@click.option(
    "--dir",
    "skills_dir",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Local skills directory. Default: $SKILLS_DIR or .agents/skills.",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Network timeout in seconds. Default: from config (30).",
)
@click.pass_obj
def add(
    config,
    reference: str,
    skill_name: str | None,
    revision: str | None,
    force: bool,
    skip_existing: bool,
    skills_dir: Path | None,
    timeout: float | None,
):
    """Install skills from OWNER/REPO."""
    from skills_cli.display import err_console, print_report
    from skills_cli.exception import SkillsError
    from skills_cli.pipeline import AddRequest, add_skills_from_config

    if force and skip_existing:
        raise click.UsageError("--force and --skip-existing cannot be used together")
    policy = "force" if force else "skip-existing" if skip_existing else "ask"

    async def _confirm_overwrite(name: str) -> bool:
        return await asyncio.to_thread(
            click.confirm, f"Skill '{name}' is already installed. Overwrite it?", default=False
        )

    on_conflict = _confirm_overwrite if policy == "ask" and sys.stdin.isatty() else None
    request = AddRequest(reference=reference, skill=skill_name, revision=revision, policy=policy)

    try:
        report = asyncio.run(
            add_skills_from_config(
                request,
                config,
                skills_dir=skills_dir,
                timeout=timeout,
                on_conflict=on_conflict,
            )
        )
    except SkillsError as exc:
        err_console.print(f"Error: {exc.message}", markup=False)
        sys.exit(1)
    except KeyboardInterrupt:
        err_console.print("Interrupted; nothing was left half-installed.")
        sys.exit(130)

    print_report(report)
    if not report.ok:
        sys.exit(1)


@skills.command("list")
@click.option(
    "--dir",
    "skills_dir",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Local skills directory. Default: $SKILLS_DIR or .agents/skills.",
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print as JSON.")
@click.pass_obj
def list_(config, skills_dir: Path | None, as_json: bool):
    """List installed skills."""
    from skills_cli.display import print_installed
    from skills_cli.installer import Installer

    installer = Installer(config.resolve_skills_dir(skills_dir))
    installed = installer.list_installed()
    if as_json:
        click.echo(json.dumps([skill.to_dict() for skill in installed], indent=2))
        return
    print_installed(installed)


@skills.command()
@click.argument("name")
@click.option(
    "--dir",
    "skills_dir",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Local skills directory. Default: $SKILLS_DIR or .agents/skills.",
)
@click.option("--yes", "-y", is_flag=True, default=False, help="Do not ask for confirmation.")
@click.pass_obj
def remove(config, name: str, skills_dir: Path | None, yes: bool):
    """Remove an installed skill."""
    from skills_cli.display import console, err_console
    from skills_cli.exception import SkillsError
    from skills_cli.installer import Installer

    installer = Installer(config.resolve_skills_dir(skills_dir))
    if not yes:
        click.confirm(f"Remove skill '{name}'?", abort=True)
    try:
        removed = installer.remove(name)
    except SkillsError as exc:
        err_console.print(f"Error: {exc.message}", markup=False)
        sys.exit(1)
    console.print(f"Removed {removed}", markup=False)


def _parse_log_level_overrides(values: tuple[str, ...]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for raw in values:
        entry = raw.strip()
        if not entry:
            raise click.BadOptionUsage(_LOG_LEVEL_OPTION, "Log level override cannot be empty")
        if "=" in entry:
            module, level = entry.split("=", 1)
            module = module.strip()
            if not module:
                raise click.BadOptionUsage(
                    _LOG_LEVEL_OPTION,
                    "Module name is required before '=' when using --log-level",
                )
        else:
            module = _DEFAULT_LOG_LEVEL_KEY
            level = entry
        level = level.strip()
        if not level:
            raise click.BadOptionUsage(_LOG_LEVEL_OPTION, "Log level cannot be empty")
        overrides[_normalize_module_key(module)] = level
    return overrides


def _normalize_module_key(module: str) -> str:
    normalized = module.strip().rstrip(".").lower()
    if not normalized:
        return _DEFAULT_LOG_LEVEL_KEY
    return normalized


def main():
    skills()


if __name__ == "__main__":
    main()
