"""CLI entry point for regtags."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError, version

import click

from regtags.commands.tags import run_tags
from regtags.registry.client import RegistryError, create_registry_client
from regtags.registry.parser import parse_image_ref

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Global options shared by every subcommand."""

    auth: list[str] = field(default_factory=list)
    username: str | None = None
    password: str | None = None
    timeout: int = 30
    insecure: bool = False
    force_non_ssl: bool = False
    skip_ping: bool = False


@click.group()
@click.option(
    "-d",
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.option(
    "--auth",
    "auth",
    multiple=True,
    help="Credentials in registry.domain=user:pass format. Can be repeated.",
)
@click.option("-u", "--username", help="Username for the registry.")
@click.option("-p", "--password", help="Password for the registry.")
@click.option(
    "--timeout",
    type=int,
    default=30,
    show_default=True,
    envvar="REGTAGS_TIMEOUT",
    help="Timeout in seconds for each registry request.",
)
@click.option(
    "-k",
    "--insecure",
    is_flag=True,
    default=False,
    help="Do not verify the registry's TLS certificate.",
)
@click.option(
    "-f",
    "--force-non-ssl",
    is_flag=True,
    default=False,
    help="Talk to the registry over plain HTTP.",
)
@click.option(
    "--skip-ping",
    is_flag=True,
    default=False,
    help="Do not check that the registry answers before running the command.",
)
@click.pass_context
def main(
    ctx: click.Context,
    debug: bool,
    auth: tuple[str, ...],
    username: str | None,
    password: str | None,
    timeout: int,
    insecure: bool,
    force_non_ssl: bool,
    skip_ping: bool,
) -> None:
    """regtags — container registry inspection CLI."""
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.obj = Settings(
        auth=list(auth),
        username=username,
        password=password,
        timeout=timeout,
        insecure=insecure,
        force_non_ssl=force_non_ssl,
        skip_ping=skip_ping,
    )


@main.command(name="tags")
@click.argument("name", metavar="NAME[:TAG|@DIGEST]")
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    default=False,
    help="Show compressed size, last layer and creation date per tag.",
)
@click.pass_obj
def tags(settings: Settings, name: str, verbose: bool) -> None:
    """Get the tags for a repository."""
    try:
        ref = parse_image_ref(name)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    if ref.tag or ref.digest:
        logger.debug("Listing every tag of %s, not only %s", ref.name, ref)
    else:
        logger.debug("Listing tags of %s", ref.name)

    try:
        client = create_registry_client(
            ref.domain,
            cli_auths=settings.auth,
            username=settings.username,
            password=settings.password,
            timeout=settings.timeout,
            insecure=settings.insecure,
            plain_http=settings.force_non_ssl,
            skip_ping=settings.skip_ping,
        )
        output = run_tags(client, ref.path, verbose=verbose)
    except RegistryError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(output)


@main.command(name="version")
def show_version() -> None:
    """Show the regtags version."""
    try:
        current = version("regtags")
    except PackageNotFoundError:
        current = "unknown"
    click.echo(f"regtags version {current}")


if __name__ == "__main__":
    main()
