"""
ABLedger CLI Tool

This module provides a command-line interface for inspecting a differential
testing store: registering environments, ingesting recorded blocks, listing
what an environment has recorded and comparing environments at a height.

Exit codes: 0 on success or agreement, 1 when a comparison finds a divergence,
2 for fatal store errors and 3 for recoverable ones (for example comparing a
height that not every environment has reached yet).
"""

import json
import logging
import sys

import click
from pydantic import ValidationError as PayloadValidationError

from abledger import __version__
from abledger.config.settings import settings
from abledger.core.types import RuntimeKind
from abledger.error_mitigation.error_classifier import classify_error
from abledger.error_mitigation.errors import LedgerError
from abledger.store import DifferentialStore

logger = logging.getLogger(__name__)

EXIT_DIVERGENCE = 1
EXIT_FATAL = 2
EXIT_RECOVERABLE = 3


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=settings.LOG_FORMAT)


def _store(ctx: click.Context) -> DifferentialStore:
    if ctx.obj.get('store') is None:
        ctx.obj['store'] = DifferentialStore(ctx.obj['database'])
        ctx.call_on_close(ctx.obj['store'].close)
    return ctx.obj['store']


def _fail(error: LedgerError) -> None:
    info = classify_error(error)
    click.echo(f"Error ({info.category.value}): {info.description}", err=True)
    click.echo(f"Hint: {info.mitigation_strategy}", err=True)
    sys.exit(EXIT_RECOVERABLE if info.recoverable else EXIT_FATAL)


def _env_ref(value: str):
    return int(value) if value.isdigit() else value


@click.group()
@click.option('--database', default=None, help='Database URL (defaults to ABL_DATABASE_URL)')
@click.option('--log-level', default=None, help='Logging level (defaults to LOG_LEVEL)')
@click.version_option(__version__, prog_name='abl')
@click.pass_context
def abl(ctx, database, log_level):
    """ABLedger - differential-testing state store"""
    ctx.ensure_object(dict)
    ctx.obj['database'] = database or settings.DATABASE_URL
    ctx.obj.setdefault('store', None)
    _configure_logging(log_level or settings.LOG_LEVEL)


@abl.command()
@click.pass_context
def init(ctx):
    """Create the database schema"""
    _store(ctx)
    click.echo(f"Database ready: {ctx.obj['database']}")


@abl.group()
def env():
    """Manage environments"""
    pass


@env.command('create')
@click.argument('name')
@click.option('--runtime', 'runtime', required=True,
              type=click.Choice([kind.name.lower() for kind in RuntimeKind]), help='Execution runtime')
@click.option('--path', 'storage_path', required=True, help='Chainstate directory of the environment')
@click.pass_context
def env_create(ctx, name, runtime, storage_path):
    """Register a new environment"""
    try:
        environment_id = _store(ctx).create_environment(name, runtime, storage_path)
    except LedgerError as e:
        _fail(e)
    click.echo(f"Created environment '{name}' with id {environment_id}")


@env.command('list')
@click.pass_context
def env_list(ctx):
    """List environments"""
    environments = _store(ctx).list_environments()
    if not environments:
        click.echo("No environments")
        return
    for environment in environments:
        height = "-" if environment.max_height is None else environment.max_height
        click.echo(f"{environment.id:>4}  {environment.name:<16} {environment.runtime.label:<18} "
                   f"height={height}  {environment.path}")


@env.command('show')
@click.argument('ref')
@click.pass_context
def env_show(ctx, ref):
    """Show one environment as JSON"""
    try:
        environment = _store(ctx).environments.resolve(_env_ref(ref))
    except LedgerError as e:
        _fail(e)
    click.echo(json.dumps(environment.to_dict(), indent=2))


@env.command('drop')
@click.argument('ref')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def env_drop(ctx, ref, yes):
    """Drop an environment and everything it recorded"""
    store = _store(ctx)
    try:
        environment = store.environments.resolve(_env_ref(ref))
        if not yes:
            click.confirm(f"Drop environment '{environment.name}' and all its data?", abort=True)
        removed = store.drop_environment(environment.id)
    except LedgerError as e:
        _fail(e)
    click.echo(f"Dropped environment '{environment.name}' ({sum(removed.values())} rows)")


@abl.command()
@click.argument('ref')
@click.option('--start', type=int, default=None, help='Lowest height to list')
@click.option('--end', type=int, default=None, help='Highest height to list')
@click.pass_context
def blocks(ctx, ref, start, end):
    """List the blocks an environment recorded"""
    store = _store(ctx)
    try:
        environment = store.environments.resolve(_env_ref(ref))
    except LedgerError as e:
        _fail(e)
    for block in store.blocks.list_blocks(environment.id, start, end):
        click.echo(f"{block.height:>10}  {block.index_hash.hex()}  root={block.trie_root_hash.hex()}")


@abl.command()
@click.argument('refs', nargs=-1, required=True)
@click.option('--height', type=int, required=True, help='Block height to compare')
@click.option('--json', 'as_json', is_flag=True, help='Print the full report as JSON')
@click.pass_context
def compare(ctx, refs, height, as_json):
    """Compare environments at a block height"""
    try:
        report = _store(ctx).compare_heights([_env_ref(ref) for ref in refs], height)
    except LedgerError as e:
        _fail(e)
    except ValueError as e:
        raise click.UsageError(str(e))

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        names = {environment.id: environment.name for environment in report.environments}
        click.echo(f"Height {report.height}: {report.verdict.value.upper()}")
        for environment_id, root in report.trie_roots.items():
            click.echo(f"  {names[environment_id]:<16} root={root.hex()}")
        for divergence in report.entry_divergences:
            value = "<absent>" if divergence.value is None else divergence.value.hex()
            click.echo(f"  key {divergence.key_hash.hex()}  {names[divergence.environment_id]}: {value}")
        for divergence in report.contract_divergences:
            click.echo(f"  {divergence.kind.value} {divergence.qualified_id}::{divergence.name}")

    if not report.is_agreement:
        sys.exit(EXIT_DIVERGENCE)


@abl.command()
@click.argument('payload_file', type=click.File('r'))
@click.pass_context
def ingest(ctx, payload_file):
    """Ingest recorded blocks, one JSON payload per line"""
    store = _store(ctx)
    count = 0
    for line_number, line in enumerate(payload_file, start=1):
        if not line.strip():
            continue
        try:
            store.apply_block(json.loads(line))
        except (json.JSONDecodeError, PayloadValidationError) as e:
            raise click.ClickException(f"Line {line_number}: invalid block payload: {e}")
        except LedgerError as e:
            click.echo(f"Line {line_number} rejected", err=True)
            _fail(e)
        count += 1
    click.echo(f"Ingested {count} block(s)")


if __name__ == '__main__':
    abl()
