"""Config commands -- view and modify global configuration.

Provides the ``loopauth config`` sub-command group for reading, updating,
and resetting the user's configuration file
(:class:`~loopauth.models.GlobalConfig`): provider, listener address and
timeout, scopes, and where the client credentials come from.
"""

from __future__ import annotations

import typer

from loopauth.exceptions import ConfigurationError
from loopauth.output import error, format_response, info, print_data, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show current configuration.

    Example::

        loopauth config show
        loopauth --json config show
    """
    from loopauth.config import config_path, load_global_config

    config = load_global_config()
    info(f"Config file: {config_path()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("path")
def config_path_command() -> None:
    """Print the path of the configuration file."""
    from loopauth.config import config_path

    print_data(str(config_path()))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g. 'listener.port')."
    ),
    value: str = typer.Argument(help="Value to set ('none' clears optional values)."),
) -> None:
    """Set a configuration value.

    The updated config is validated against
    :class:`~loopauth.models.GlobalConfig` before saving.

    Raises:
        typer.Exit: With code 2 if the key is unknown or the value fails
            validation.

    Example::

        loopauth config set listener.port 9000
        loopauth config set listener.timeout 300
        loopauth config set scopes read:user,user:email
        loopauth config set client_secret_source file:~/.github-secret
    """
    from loopauth.config import load_global_config, save_global_config, set_config_value

    config = load_global_config()
    try:
        new_config = set_config_value(config, key, value)
    except ConfigurationError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    save_global_config(new_config)
    success(f"Set {key} = {value}")


@config_app.command("reset")
def config_reset(
    ctx: typer.Context,
) -> None:
    """Reset configuration to defaults.

    Asks for confirmation unless ``--force`` is active.

    Example::

        loopauth config reset
        loopauth --force config reset
    """
    from loopauth.config import save_global_config
    from loopauth.models import GlobalConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
