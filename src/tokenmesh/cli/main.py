"""
TokenMesh CLI

Commands:
- keygen: Write an Ed25519 signing key pair as PEM files
- issuer: Run the token issuing service
- consumer: Run a consuming service with the callback receiver
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from rich import box

from tokenmesh.config import ConsumerConfig, IssuerConfig
from tokenmesh.exceptions import ConfigurationError
from tokenmesh.identity.keys import KeyMaterial

console = Console()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _load(model, config_path: Optional[str]):
    try:
        if config_path:
            return model.from_yaml(config_path)
        return model.from_env()
    except ConfigurationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        sys.exit(2)


@click.group()
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Root logger level",
)
def cli(log_level: str):
    """TokenMesh - client-credentials token issuance and consumption."""
    _setup_logging(log_level)


@cli.command()
@click.option("--private-key", "private_key", default="signing-key.pem", show_default=True)
@click.option("--public-key", "public_key", default="signing-key.pub.pem", show_default=True)
@click.option("--force", is_flag=True, help="Overwrite existing files")
def keygen(private_key: str, public_key: str, force: bool):
    """Generate an Ed25519 signing key pair."""
    for path in (private_key, public_key):
        if Path(path).exists() and not force:
            console.print(f"[red]{path} already exists[/red] (use --force to overwrite)")
            sys.exit(1)

    material = KeyMaterial.generate()
    material.write_pem(private_key, public_key)

    table = Table(title="Signing Key", box=box.ROUNDED)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Algorithm", material.algorithm)
    table.add_row("Private key", private_key)
    table.add_row("Public key", public_key)
    table.add_row("Public key (b64)", material.public_key_b64())
    console.print(table)


@cli.command()
@click.option("--config", "config_path", type=click.Path(exists=True), help="YAML config file")
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", default=8081, show_default=True, type=int)
def issuer(config_path: Optional[str], host: str, port: int):
    """Run the token issuing service."""
    import uvicorn

    from tokenmesh.issuer.app import create_issuer_app
    from tokenmesh.issuer.coordinator import IssuanceCoordinator

    config = _load(IssuerConfig, config_path)
    try:
        coordinator = IssuanceCoordinator.from_config(config)
    except ConfigurationError as e:
        console.print(f"[red]Unable to start issuer:[/red] {e}")
        sys.exit(2)
    console.print(f"[bold green]Issuer[/bold green] listening on {host}:{port}")
    uvicorn.run(create_issuer_app(coordinator), host=host, port=port, log_config=None)


@cli.command()
@click.option("--config", "config_path", type=click.Path(exists=True), help="YAML config file")
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", default=8082, show_default=True, type=int)
def consumer(config_path: Optional[str], host: str, port: int):
    """Run a consuming service that receives pushed credentials."""
    import uvicorn

    from tokenmesh.consumer.app import create_consumer_app
    from tokenmesh.consumer.service import ConsumerService

    config = _load(ConsumerConfig, config_path)
    service = ConsumerService(config)
    console.print(
        f"[bold green]Consumer[/bold green] for client [cyan]{config.client_id}[/cyan] "
        f"({config.mode} mode) listening on {host}:{port}"
    )
    uvicorn.run(create_consumer_app(service), host=host, port=port, log_config=None)


if __name__ == "__main__":
    cli()
