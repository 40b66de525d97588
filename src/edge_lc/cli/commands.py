"""CLI命令"""
import json

import click
from tabulate import tabulate

from ..config import configure
from ..db import init_db, list_resources, get_resource


@click.group()
@click.option('--config', 'config_path', envvar='EDGE_LC_CONFIG', default=None, help='配置文件路径')
@click.pass_context
def cli(ctx, config_path):
    """边缘侧增量学习任务控制器"""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path


@cli.command()
@click.pass_context
def run(ctx):
    """启动控制器"""
    from ..__main__ import main
    main(ctx.obj['config_path'])


def _init_db(ctx):
    settings = configure(ctx.obj['config_path'])
    init_db(settings.DATABASE_FILENAME)


@cli.command()
@click.option('--namespace', '-n', help='筛选指定命名空间的任务')
@click.pass_context
def jobs(ctx, namespace=None):
    """列出已保存的任务定义"""
    _init_db(ctx)
    resources = list_resources(namespace=namespace)

    headers = ['ID', 'Namespace', 'Name', 'Kind', 'Updated']
    rows = [
        [r.id, r.namespace, r.name, r.kind, r.updated_at.strftime('%Y-%m-%d %H:%M:%S')]
        for r in resources
    ]

    if rows:
        click.echo(tabulate(rows, headers=headers, tablefmt='grid'))
    else:
        click.echo("No jobs found")


@cli.command()
@click.argument('job_id')
@click.pass_context
def show(ctx, job_id):
    """查看任务定义，JOB_ID格式为 namespace/kind/name"""
    _init_db(ctx)
    resource = get_resource(job_id)
    if resource is None:
        raise click.ClickException(f"Job not found: {job_id}")

    click.echo(tabulate([
        ['ID', resource.id],
        ['Namespace', resource.namespace],
        ['Name', resource.name],
        ['Kind', resource.kind],
        ['Created', resource.created_at.strftime('%Y-%m-%d %H:%M:%S')],
        ['Updated', resource.updated_at.strftime('%Y-%m-%d %H:%M:%S')],
    ], tablefmt='plain'))
    click.echo("\nSpec:")
    click.echo(json.dumps(resource.spec, indent=2, sort_keys=True))
