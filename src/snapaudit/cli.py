"""Command-line interface for SnapAudit."""

import json
import sys
import click
from pathlib import Path
from typing import Optional

from .audit_engine import AuditEngine
from .classifier import ClassificationPolicy, classify
from .config import Config
from .exceptions import (
    ConfigurationError,
    MalformedRecordError,
    RenderError,
    SnapAuditError,
    SourceUnavailableError,
)
from .models import Disposition, RawSnapshotRecord, Report, parse_timestamp
from .report_renderer import HtmlReportRenderer
from .sources import InventoryFileSource, build_sources
from .utils import NotificationManager, format_size_mb, utc_now

EXIT_SOURCE_FAILURES = 2


def initialize_config(config_file: Optional[str] = None, verbose: bool = False) -> tuple:
    """Initialize configuration and notification manager."""
    try:
        config = Config(config_file)
        if verbose:
            config.set('notifications.level', 'DEBUG')
        notifier = NotificationManager(config)
        return config, notifier
    except SnapAuditError as e:
        click.echo(f"Error: Failed to initialize configuration: {e}", err=True)
        sys.exit(1)


def parse_evaluation_time(value: Optional[str]):
    if not value:
        return utc_now()
    try:
        return parse_timestamp(value)
    except ValueError:
        raise click.BadParameter(f"not an ISO-8601 timestamp: {value}", param_hint="--now")


def print_summary(report: Report) -> None:
    """Print a short summary of an audit report."""
    click.echo("\n📸 Snapshot Audit Summary")
    click.echo("=" * 50)
    click.echo(f"Evaluated at: {report.evaluated_at.isoformat()}")
    click.echo(f"Retention threshold: {report.retention_days} days")
    click.echo(f"To remove: {len(report.to_remove)} "
               f"({format_size_mb(Report.total_size_mb(report.to_remove))})")
    click.echo(f"Protected: {len(report.protected)} "
               f"({format_size_mb(Report.total_size_mb(report.protected))})")
    if report.skipped_records:
        click.echo(f"Skipped malformed records: {report.skipped_records}")

    if report.failures:
        click.echo(f"\n⚠️  Failed sources ({len(report.failures)}):")
        for failure in report.failures:
            click.echo(f"  - {failure.source_id}: {failure.reason}")


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True),
              help='Path to configuration file')
@click.option('--verbose', '-v', is_flag=True,
              help='Enable verbose output')
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """SnapAudit - snapshot retention audit for virtualization endpoints.

    Collects snapshots from every configured endpoint, flags the ones older
    than the retention threshold and reports them alongside protected ones.
    """
    ctx.ensure_object(dict)

    global_config, global_notifier = initialize_config(config, verbose)

    ctx.obj['config'] = global_config
    ctx.obj['notifier'] = global_notifier


@cli.command()
@click.option('--output', '-o', default='snapaudit.yaml', type=click.Path(),
              help='Where to write the configuration file')
@click.option('--force', is_flag=True, help='Overwrite an existing file')
@click.pass_context
def init(ctx, output: str, force: bool):
    """Write the effective configuration to a YAML file."""
    config_obj = ctx.obj['config']
    notifier_obj = ctx.obj['notifier']

    if Path(output).exists() and not force:
        click.echo(f"❌ {output} already exists. Use --force to overwrite.")
        sys.exit(1)

    try:
        config_obj.save(output)
    except OSError as e:
        notifier_obj.error(f"Initialization failed: {e}")
        sys.exit(1)

    click.echo(f"Configuration saved to: {output}")
    click.echo("Add your endpoints under 'sources' and run: snapaudit -c "
               f"{output} audit")


@cli.command('sources')
@click.pass_context
def list_sources(ctx):
    """List configured sources."""
    config_obj = ctx.obj['config']
    notifier_obj = ctx.obj['notifier']

    try:
        sources = build_sources(config_obj, notifier_obj)
    except ConfigurationError as e:
        notifier_obj.error(str(e))
        sys.exit(1)

    if not sources:
        click.echo("No sources configured.")
        return

    click.echo("\n🖥️  Configured Sources:")
    click.echo("-" * 70)
    click.echo(f"{'ID':<25} {'Type':<12} {'Endpoint':<30}")
    click.echo("-" * 70)
    for source in sources:
        click.echo(f"{source.source_id:<25} {source.source_type:<12} {source.endpoint:<30}")


@cli.command()
@click.option('--output', '-o', type=click.Path(), help='HTML report path')
@click.option('--json', 'json_path', type=click.Path(), help='Also write the report data as JSON')
@click.option('--now', help='Evaluation time as ISO-8601 (defaults to the current time)')
@click.option('--retention-days', '-r', type=click.IntRange(min=0),
              help='Override the retention threshold in days')
@click.option('--parallel/--sequential', default=None,
              help='Collect sources concurrently')
@click.option('--fail-on-source-error', is_flag=True,
              help=f'Exit with status {EXIT_SOURCE_FAILURES} when any source fails')
@click.pass_context
def audit(ctx, output: Optional[str], json_path: Optional[str], now: Optional[str],
          retention_days: Optional[int], parallel: Optional[bool], fail_on_source_error: bool):
    """Audit snapshots on all sources and write the HTML report."""
    config_obj = ctx.obj['config']
    notifier_obj = ctx.obj['notifier']

    evaluated_at = parse_evaluation_time(now)
    if retention_days is not None:
        config_obj.set('policy.retention_days', retention_days)

    try:
        engine = AuditEngine(config_obj, notifier_obj)
    except ConfigurationError as e:
        notifier_obj.error(str(e))
        sys.exit(1)

    report = engine.run(evaluated_at, parallel=parallel)
    print_summary(report)

    renderer = HtmlReportRenderer(config_obj, notifier_obj)
    output_path = output or config_obj.report_output
    try:
        renderer.write(report, output_path)
        if json_path:
            renderer.write_json(report, json_path)
    except RenderError as e:
        notifier_obj.failure(str(e))
        if config_obj.dump_on_failure:
            click.echo(json.dumps(report.to_dict(), indent=2), err=True)
        sys.exit(1)

    click.echo(f"\n✅ Report: {output_path}")

    if report.failures and fail_on_source_error:
        sys.exit(EXIT_SOURCE_FAILURES)


@cli.command('classify')
@click.argument('inventory_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--now', help='Evaluation time as ISO-8601 (defaults to the current time)')
@click.pass_context
def classify_inventory(ctx, inventory_file: str, now: Optional[str]):
    """Show the disposition of every snapshot in an inventory file."""
    config_obj = ctx.obj['config']
    notifier_obj = ctx.obj['notifier']

    evaluated_at = parse_evaluation_time(now)
    source = InventoryFileSource(Path(inventory_file).stem, {'path': inventory_file}, notifier_obj)

    try:
        policy = ClassificationPolicy.from_config(config_obj)
        raw_records = source.list_snapshots()
    except (ConfigurationError, SourceUnavailableError) as e:
        notifier_obj.error(str(e))
        sys.exit(1)

    click.echo(f"{'VM':<25} {'Snapshot':<25} {'Age':>5} {'Size (MB)':>12}  Disposition")
    click.echo("-" * 85)
    counts = {disposition: 0 for disposition in Disposition}
    for raw in raw_records:
        try:
            record = RawSnapshotRecord.from_mapping(raw, source.source_id)
        except MalformedRecordError as e:
            click.echo(f"  skipped: {e.reason}")
            continue
        snapshot = classify(record, evaluated_at, policy)
        counts[snapshot.disposition] += 1
        click.echo(f"{snapshot.vm_name[:24]:<25} {snapshot.snapshot_name[:24]:<25} "
                   f"{snapshot.age_days:>5} {snapshot.size_mb:>12.2f}  {snapshot.disposition.value}")

    click.echo("-" * 85)
    click.echo(", ".join(f"{d.value}: {count}" for d, count in counts.items()))


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == '__main__':
    main()
