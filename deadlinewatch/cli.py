#!/usr/bin/env python3
"""
Command-line interface for Deadlinewatch.
"""

import json
import sys
import time

import click
from rich.console import Console
from rich.table import Table

from .config import Config
from .engine import DeadlineEngine
from .utils import logger

console = Console()

LEVEL_COLORS = {
    'low': 'green',
    'medium': 'yellow',
    'high': 'red',
    'critical': 'red on white',
}


def load_engine(ctx, data_file: str) -> DeadlineEngine:
    """Build an engine over a data file using the group's configuration."""
    return DeadlineEngine.from_data_file(data_file, config=ctx.obj['config'])


def find_task(engine: DeadlineEngine, task_id: str):
    task = engine.data_source.get_task(task_id)
    if task is None:
        raise click.BadParameter(f"Task not found in data file: {task_id}", param_hint='TASK_ID')
    return task


def colored(level: str) -> str:
    color = LEVEL_COLORS.get(level, 'white')
    return f"[{color}]{level}[/{color}]"


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True), help='Config file path')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.option('--quiet', '-q', is_flag=True, help='Quiet output')
@click.pass_context
def cli(ctx, config, verbose, quiet):
    """Deadlinewatch - deadline prediction and risk monitoring"""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet

    if verbose:
        logger.setLevel('DEBUG')
    elif quiet:
        logger.setLevel('ERROR')

    ctx.obj['config'] = Config(config)
    if not verbose and not quiet:
        logger.setLevel(ctx.obj['config'].config.logging.level.upper())


@cli.command()
@click.argument('data_file', type=click.Path(exists=True))
@click.argument('task_id')
@click.option('--developer', '-d', help='Developer to predict for (defaults to the assignee)')
@click.option('--method', '-m', type=click.Choice(
    ['ensemble', 'linear', 'time-series', 'neural-stub', 'linear-regression', 'neural-network']),
    help='Prediction method')
@click.option('--with-risk', is_flag=True, help='Adjust the prediction by live task risk')
@click.option('--format', '-f', 'output_format', type=click.Choice(['table', 'json']), default='table',
              help='Output format')
@click.pass_context
def predict(ctx, data_file, task_id, developer, method, with_risk, output_format):
    """Predict effort and deadline date for a task in DATA_FILE."""
    engine = load_engine(ctx, data_file)
    task = find_task(engine, task_id)
    prediction = engine.predict_deadline(task, developer, method, with_risk=with_risk)

    if output_format == 'json':
        click.echo(json.dumps(prediction.to_dict(), indent=2, default=str))
        return

    table = Table(title=f"Prediction for {task.id}: {task.title}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="yellow")

    table.add_row("Method", prediction.method)
    table.add_row("Estimated hours", f"{prediction.estimated_hours:.1f}")
    table.add_row("Confidence", f"{prediction.confidence:.0%}")
    if prediction.confidence_interval:
        interval = prediction.confidence_interval
        table.add_row("Interval", f"{interval.lower:.1f} - {interval.upper:.1f} h")
    if prediction.deadline_date:
        table.add_row("Deadline date", prediction.deadline_date.isoformat())
    if prediction.risk_assessment:
        table.add_row("Risk", colored(prediction.risk_assessment.level.value))
    if prediction.live_risk:
        table.add_row("Live risk", colored(prediction.live_risk.overall.level.value))

    console.print(table)

    if prediction.alternatives:
        alternatives = Table(title="Alternatives")
        alternatives.add_column("Estimate", style="cyan")
        alternatives.add_column("Hours", justify="right")
        alternatives.add_column("Confidence", justify="right")
        for alternative in prediction.alternatives:
            alternatives.add_row(alternative.kind, f"{alternative.estimated_hours:.1f}",
                                 f"{alternative.confidence:.0%}")
        console.print(alternatives)

    if prediction.timeline:
        timeline = Table(title="Timeline")
        timeline.add_column("Phase", style="cyan")
        timeline.add_column("Hours", justify="right")
        timeline.add_column("Ends")
        for phase in prediction.timeline:
            timeline.add_row(phase.phase, f"{phase.estimated_hours:.1f}", phase.end.strftime('%Y-%m-%d %H:%M'))
        console.print(timeline)

    if prediction.recommendations:
        console.print("\n[bold]Recommendations:[/bold]")
        for recommendation in prediction.recommendations:
            console.print(f"  • {recommendation}")


@cli.command()
@click.argument('data_file', type=click.Path(exists=True))
@click.pass_context
def analytics(ctx, data_file):
    """Show learning and prediction analytics for DATA_FILE."""
    engine = load_engine(ctx, data_file)

    for task in engine.data_source.get_active_tasks():
        engine.predict_deadline(task)

    stats = engine.get_analytics()
    accuracy = stats['prediction_accuracy']

    table = Table(title="Analytics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="yellow")

    table.add_row("Historical records", str(stats['total_records']))
    table.add_row("Developers", str(stats['developer_count']))
    table.add_row("Task patterns", str(stats['task_pattern_count']))
    table.add_row("Predictions issued", str(stats['total_predictions']))
    table.add_row("Average confidence", f"{stats['average_confidence']:.0%}")
    table.add_row("Estimate accuracy", f"{accuracy['accuracy']:.0%} (n={accuracy['sample_size']})")

    console.print(table)

    if stats['model_performance']:
        methods = Table(title="Method performance")
        methods.add_column("Method", style="cyan")
        methods.add_column("Predictions", justify="right")
        methods.add_column("Avg confidence", justify="right")
        for method, performance in sorted(stats['model_performance'].items()):
            methods.add_row(method, str(performance['predictions']), f"{performance['average_confidence']:.0%}")
        console.print(methods)


@cli.group()
def monitor():
    """Risk monitoring commands."""
    pass


@monitor.command('sweep')
@click.argument('data_file', type=click.Path(exists=True))
@click.option('--format', '-f', 'output_format', type=click.Choice(['table', 'json']), default='table',
              help='Output format')
@click.pass_context
def monitor_sweep(ctx, data_file, output_format):
    """Assess every active task in DATA_FILE once."""
    engine = load_engine(ctx, data_file)
    result = engine.run_sweep_once()

    if output_format == 'json':
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
        return

    table = Table(title="Risk assessment")
    table.add_column("Task", style="cyan")
    table.add_column("Overall")
    table.add_column("Score", justify="right")
    for axis in ('deadline', 'complexity', 'resource', 'dependency', 'external'):
        table.add_column(axis.capitalize())

    for assessment in sorted(result.assessments, key=lambda a: a.overall.score, reverse=True):
        row = [assessment.task_id, colored(assessment.overall.level.value), f"{assessment.overall.score:.2f}"]
        for axis in ('deadline', 'complexity', 'resource', 'dependency', 'external'):
            component = assessment.components.get(axis)
            row.append(colored(component.level.value) if component else '-')
        table.add_row(*row)

    console.print(table)

    for task_id, error in result.errors.items():
        console.print(f"[red]Error:[/red] {task_id}: {error}")

    if result.alerts:
        console.print(f"\n[bold]{len(result.alerts)} alerts raised[/bold]")
        for alert in result.alerts:
            console.print(f"  [{LEVEL_COLORS[alert.level.value]}]{alert.level.value.upper()}"
                          f"[/{LEVEL_COLORS[alert.level.value]}] {alert.task_id} {alert.type}: {alert.message}")
    else:
        console.print("\n[green]✓[/green] No alerts raised")


@monitor.command('start')
@click.argument('data_file', type=click.Path(exists=True))
@click.option('--interval', '-i', type=float, help='Seconds between sweeps')
@click.pass_context
def monitor_start(ctx, data_file, interval):
    """Sweep DATA_FILE periodically until interrupted."""
    engine = load_engine(ctx, data_file)
    if interval:
        engine.monitor.interval = interval

    console.print("[blue]Starting risk monitoring...[/blue]")
    console.print(f"Data file: {data_file}")
    console.print(f"Interval: {engine.monitor.interval}s")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    try:
        engine.start_monitoring()
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping monitor...[/yellow]")
        engine.stop_monitoring()
        status = engine.monitor.get_status()
        console.print(f"[green]✓[/green] Monitor stopped after {status['metrics']['sweeps_completed']} sweeps")


@monitor.command('dashboard')
@click.argument('data_file', type=click.Path(exists=True))
@click.option('--limit', '-l', type=int, default=10, help='Number of recent alerts to show')
@click.option('--format', '-f', 'output_format', type=click.Choice(['table', 'json']), default='table',
              help='Output format')
@click.pass_context
def monitor_dashboard(ctx, data_file, limit, output_format):
    """Run one sweep over DATA_FILE and show the risk dashboard."""
    engine = load_engine(ctx, data_file)
    engine.run_sweep_once()
    dashboard = engine.get_risk_dashboard(alert_limit=limit)

    if output_format == 'json':
        click.echo(json.dumps(dashboard, indent=2, default=str))
        return

    table = Table(title="Risk dashboard (last 24 hours)")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="yellow")

    table.add_row("Tasks assessed", str(dashboard['total_tasks']))
    table.add_row("Critical", str(dashboard['critical_tasks']))
    table.add_row("High", str(dashboard['high_risk_tasks']))
    for level, count in dashboard['risk_distribution'].items():
        table.add_row(f"Distribution: {level}", str(count))
    for window, trend in dashboard['trends'].items():
        table.add_row(f"Trend: {window}", trend)

    console.print(table)

    if dashboard['recent_alerts']:
        alerts = Table(title="Recent alerts")
        alerts.add_column("Time", style="cyan")
        alerts.add_column("Task")
        alerts.add_column("Type")
        alerts.add_column("Level")
        for alert in dashboard['recent_alerts']:
            alerts.add_row(alert['timestamp'], alert['task_id'], alert['type'], colored(alert['level']))
        console.print(alerts)

    for recommendation in dashboard['recommendations']:
        console.print(f"[bold red]{recommendation['message']}[/bold red]: {recommendation['action']}")


def main():
    """Main entry point."""
    try:
        cli(obj={})
    except Exception as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
