"""
Command Line Interface for slot-swarm
"""
import asyncio
import json
import sys
from pathlib import Path

import click

from slot_swarm.core.config import KNOWN_PROVIDERS, SwarmConfig
from slot_swarm.core.errors import ConfigError, StateStoreError
from slot_swarm.core.models import ProbeStatus
from slot_swarm.core.state import StateStore
from slot_swarm.peer import SwarmPeer
from slot_swarm.utils.logger import setup_logging


DEFAULT_CONFIG_FILE = Path.home() / ".config" / "slot-swarm" / "config.json"

STATUS_LABELS = {
    ProbeStatus.OCCUPIED_SELF: "ours",
    ProbeStatus.OCCUPIED_OTHER: "occupied",
    ProbeStatus.OCCUPIED_STALE: "stale",
    ProbeStatus.FREE: "free",
    ProbeStatus.UNKNOWN: "unknown",
}


def load_config(config_file) -> SwarmConfig:
    """Config file (explicit, or the default location if present) overlaid with SWARM_* variables"""
    base = None
    if config_file:
        base = SwarmConfig.load_from_file(config_file)
    elif DEFAULT_CONFIG_FILE.exists():
        base = SwarmConfig.load_from_file(str(DEFAULT_CONFIG_FILE))
    return SwarmConfig.from_env(base)


def _fail(message: str):
    click.echo(message, err=True)
    sys.exit(1)


@click.group()
@click.option('--config', '-c', 'config_file', help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, config_file, verbose):
    """Sequential DNS slot discovery with self-healing compaction"""
    ctx.ensure_object(dict)
    try:
        config = load_config(config_file)
    except ConfigError as e:
        _fail(f"Configuration error: {e}")

    setup_logging('DEBUG' if verbose else config.log_level, config.log_file)
    ctx.obj['config'] = config


def _build_peer(config: SwarmConfig) -> SwarmPeer:
    try:
        return SwarmPeer(config)
    except ConfigError as e:
        _fail(f"Configuration error: {e}")


@cli.command()
@click.pass_context
def discover(ctx):
    """Find and claim the lowest available slot"""
    config = ctx.obj['config']

    async def run():
        peer = _build_peer(config)
        try:
            if peer.assignment is None:
                return await peer.tick()
            click.echo(f"Already registered as {peer.assignment.hostname}")
            return None
        finally:
            await peer.close()

    report = asyncio.run(run())
    if report is not None:
        if report.slot is None:
            _fail(f"Discovery failed ({report.action}): {report.error or 'no slot claimed'}")
        click.echo(f"✓ Registered as {config.hostname(report.slot)}")


@cli.command()
@click.pass_context
def monitor(ctx):
    """Run one self-heal cycle"""
    config = ctx.obj['config']

    async def run():
        peer = _build_peer(config)
        try:
            return await peer.tick()
        finally:
            await peer.close()

    report = asyncio.run(run())
    if report is None:
        _fail("Monitor cycle timed out")
    if report.error:
        click.echo(f"Monitor cycle finished with error: {report.error}", err=True)
    slot = f"{config.hostname(report.slot)}" if report.slot is not None else "unregistered"
    click.echo(f"Slot: {slot} (action: {report.action})")


@cli.command()
@click.option('--health/--no-health', default=True, help='Serve the peer health endpoint')
@click.pass_context
def daemon(ctx, health):
    """Run continuous monitoring and self-healing"""
    config = ctx.obj['config']
    click.echo(f"Starting slot-swarm daemon for {config.host_prefix}N.{config.domain}")

    async def run():
        peer = _build_peer(config)
        await peer.run(serve_health=health)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("\nShutting down daemon...")


@cli.command()
@click.pass_context
def status(ctx):
    """Show current slot registration"""
    config = ctx.obj['config']
    try:
        assignment = StateStore(config.state_file).load()
    except StateStoreError as e:
        _fail(str(e))

    if assignment is None:
        click.echo("No discovery state found. Run 'slot-swarm discover' first.")
        return
    click.echo(json.dumps(assignment.to_dict(), indent=4))


@cli.command()
@click.option('--limit', '-n', type=int, default=None, help='Number of slots to probe (default: max_slots)')
@click.pass_context
def scan(ctx, limit):
    """Probe slots and show who holds them"""
    config = ctx.obj['config']

    async def run():
        peer = _build_peer(config)
        try:
            async for index, hostname, probe_status in peer.scan(limit):
                click.echo(f"  {index:>4}  {hostname:<40} {STATUS_LABELS[probe_status]}")
        finally:
            await peer.close()

    click.echo(f"Slots for {config.host_prefix}N.{config.domain}:")
    asyncio.run(run())


@cli.command()
@click.option('--output', '-o', default=str(DEFAULT_CONFIG_FILE), help='Output configuration file')
@click.option('--domain', required=True, help='Zone the slots live in')
@click.option('--prefix', default='peer', help='Host prefix')
@click.option('--provider', type=click.Choice(KNOWN_PROVIDERS),
              default='memory', help='DNS provider')
@click.option('--key', default='', help='Provider API key or token')
@click.option('--secret', default='', help='Provider API secret')
@click.option('--zone-id', default='', help='Cloudflare zone ID')
@click.option('--email', default='', help='Cloudflare account email')
def init_config(output, domain, prefix, provider, key, secret, zone_id, email):
    """Initialize a configuration file"""
    try:
        config = SwarmConfig.parse({
            "domain": domain,
            "host_prefix": prefix,
            "provider": {"name": provider, "key": key, "secret": secret, "zone_id": zone_id, "email": email},
        })
    except ConfigError as e:
        _fail(str(e))

    config.save_to_file(output)
    click.echo(f"Configuration file created: {output}")
    click.echo("Then use:")
    click.echo(f"  slot-swarm --config {output} discover")
    click.echo(f"  slot-swarm --config {output} daemon")


def main():
    """Main entry point"""
    cli()


if __name__ == '__main__':
    main()
