#!/usr/bin/env python3
"""Proactive Monitor - CLI Entry Point."""
import sys
import json
import signal
import logging
import threading
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()
logger = logging.getLogger("pmonitor.cli")

PROJECT_ROOT = Path(__file__).parent


def _database_health(db):
    from models.enums import HealthStatus
    if db.conn is None:
        return HealthStatus.CRITICAL
    db.conn.execute("SELECT 1")
    return HealthStatus.HEALTHY


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging, attach_database_handler
    from config import load_config
    from models.database import Database
    from alerts.governor import FrequencyGovernor
    from alerts.retry import RetryCoordinator
    from alerts.channels import build_channels
    from models.alerts import AlertThreshold
    from alerts.dispatcher import AlertDispatcher
    from alerts.correlator import AlertCorrelator
    from monitor.sources import DatabaseMetricAggregator, DatabaseLogSearcher, HealthRegistry
    from monitor.conditions import ConditionEvaluator
    from monitor.recovery import RecoveryRegistry, register_builtin_actions
    from monitor.actions import ActionExecutor
    from monitor.history import ExecutionHistory
    from monitor.engine import ProactiveMonitor
    from monitor.rules_manager import RulesManager

    config = load_config(config_path)
    log_cfg = config["logging"]
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))

    db = Database(config["database"]["path"])
    db.connect()
    if log_cfg.get("capture_to_db", True):
        attach_database_handler(db)

    alerts_cfg = config["alerts"]
    governor = FrequencyGovernor(
        window_minutes=alerts_cfg.get("throttle_window_minutes", 15),
        suppression_minutes=alerts_cfg.get("suppression_minutes", 60),
        caps=alerts_cfg.get("max_alerts_per_window"),
    )
    dispatcher = AlertDispatcher(
        db, governor, build_channels(config),
        default_channels=alerts_cfg.get("default_channels"),
        dedup_window_minutes=alerts_cfg.get("dedup_window_minutes", 60),
        thresholds=[AlertThreshold(**t) for t in alerts_cfg.get("thresholds", [])],
    )
    retry_cfg = alerts_cfg.get("retry", {})
    dispatcher.retry = RetryCoordinator(
        dispatcher.redeliver,
        max_retries=retry_cfg.get("max_retries", 3),
        base_delay=retry_cfg.get("base_delay_seconds", 1),
        max_delay=retry_cfg.get("max_delay_seconds", 300),
    )

    metrics = DatabaseMetricAggregator(db)
    health = HealthRegistry()
    health.register("database", lambda: _database_health(db))
    evaluator = ConditionEvaluator(metrics=metrics, health=health, logs=DatabaseLogSearcher(db))

    recovery = register_builtin_actions(RecoveryRegistry())
    executor = ActionExecutor(dispatcher, recovery)

    mon_cfg = config["monitoring"]
    rules_path = Path(mon_cfg.get("rules_path", "config/monitoring_rules.yaml"))
    if not rules_path.is_absolute():
        rules_path = PROJECT_ROOT / rules_path
    rules = RulesManager(rules_path)

    correlator = AlertCorrelator(db, dispatcher, governor, rules.get_correlations())
    engine = ProactiveMonitor(
        evaluator, executor,
        history=ExecutionHistory(mon_cfg.get("history_size", 1000)),
        correlator=correlator,
        correlation_interval=mon_cfg.get("correlation_interval", 60),
        metric_sink=metrics,
        max_condition_workers=mon_cfg.get("max_condition_workers", 8),
    )
    for rule in rules.get_all_rules():
        engine.register_rule(rule)

    return {
        "config": config, "db": db, "governor": governor, "dispatcher": dispatcher,
        "metrics": metrics, "health": health, "recovery": recovery, "rules": rules,
        "correlator": correlator, "engine": engine,
    }


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="pmonitor")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Proactive Monitor - scheduled rules, alert dispatch & correlation."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


def _severity_markup(severity):
    from utils.formatters import format_severity
    return format_severity(severity, with_color=True)


# ──────────────────────────────────────────────────────
# RUN
# ──────────────────────────────────────────────────────
@cli.command()
@click.pass_context
def run(ctx):
    """Start monitoring and block until SIGINT/SIGTERM."""
    c = _get_components(ctx)
    engine = c["engine"]
    stop_event = threading.Event()

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    engine.start()
    console.print(f"[green]Monitoring {len(engine.armed_rule_ids())} rule(s). Ctrl+C to stop.[/green]")
    try:
        while not stop_event.wait(1):
            pass
    finally:
        engine.stop()
        c["dispatcher"].retry.cancel_all()
        c["db"].close()
    console.print("[dim]Monitoring stopped[/dim]")


# ──────────────────────────────────────────────────────
# RULES
# ──────────────────────────────────────────────────────
@cli.group()
def rules():
    """Monitoring rules."""
    pass


@rules.command("list")
@click.pass_context
def rules_list(ctx):
    """List all configured monitoring rules."""
    c = _get_components(ctx)
    table = Table(title="Monitoring Rules", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Every")
    table.add_column("Conditions")
    table.add_column("Actions")
    table.add_column("Enabled")
    for r in c["engine"].get_rules():
        conds = " AND ".join(
            f"{cond.metric or cond.type.value} {cond.operator.value} {cond.value}" for cond in r.conditions
        ) or "-"
        table.add_row(
            r.id, r.name, r.category.value, f"{r.schedule.interval_seconds:g}s", conds,
            ", ".join(a.label for a in r.actions) or "-",
            "[green]✓[/green]" if r.enabled else "[red]✗[/red]",
        )
    console.print(table)

    patterns = c["rules"].get_correlations()
    if patterns:
        console.print("\n[bold]Correlation Patterns:[/bold]")
        for p in patterns:
            types = ", ".join(t.value for t in p.alert_types)
            console.print(
                f"  {p.pattern}: >= {p.minimum_occurrences} of [{types}] "
                f"in {p.time_window_minutes}m → {p.action.value}"
            )


@rules.command("run")
@click.argument("rule_id")
@click.pass_context
def rules_run(ctx, rule_id):
    """Execute one rule immediately, ignoring its timer."""
    from monitor.engine import RuleNotFoundError
    from utils.formatters import format_duration
    c = _get_components(ctx)
    try:
        execution = c["engine"].execute_rule(rule_id)
    except RuleNotFoundError:
        console.print(f"[red]Unknown rule: {rule_id}[/red]")
        sys.exit(1)

    if execution.skipped:
        console.print(f"[yellow]Skipped: {execution.details['skipped']}[/yellow]")
    elif execution.conditions_met:
        console.print(
            f"[bold yellow]Conditions met[/bold yellow] - "
            f"{execution.actions_executed} action(s) executed"
        )
    else:
        console.print("[green]Conditions not met[/green]")
    for result in execution.details.get("condition_results", []):
        console.print(f"  met={result['met']} value={result['value']} {json.dumps(result['details'], default=str)}")
    if execution.error:
        console.print(f"[red]Error: {execution.error}[/red]")
    console.print(f"[dim]Took {format_duration(execution.duration_ms)}[/dim]")


def _set_enabled(ctx, rule_id, enabled):
    c = _get_components(ctx)
    if not c["engine"].set_rule_enabled(rule_id, enabled):
        console.print(f"[red]Unknown rule: {rule_id}[/red]")
        sys.exit(1)
    c["rules"].set_enabled(rule_id, enabled)
    console.print(f"[green]✓[/green] Rule {rule_id} {'enabled' if enabled else 'disabled'}")


@rules.command("enable")
@click.argument("rule_id")
@click.pass_context
def rules_enable(ctx, rule_id):
    """Enable a rule."""
    _set_enabled(ctx, rule_id, True)


@rules.command("disable")
@click.argument("rule_id")
@click.pass_context
def rules_disable(ctx, rule_id):
    """Disable a rule."""
    _set_enabled(ctx, rule_id, False)


# ──────────────────────────────────────────────────────
# ALERTS
# ──────────────────────────────────────────────────────
@cli.group()
def alerts():
    """Alert history and management."""
    pass


@alerts.command("history")
@click.option("--severity", default=None, type=click.Choice(["low", "medium", "high", "critical"]))
@click.option("--type", "alert_type", default=None, help="Alert type filter")
@click.option("--limit", default=50, type=int, help="Max alerts to show")
@click.pass_context
def alerts_history(ctx, severity, alert_type, limit):
    """Show past alerts."""
    from utils.formatters import format_timestamp
    c = _get_components(ctx)
    history = c["dispatcher"].get_alert_history(limit=limit, severity=severity, alert_type=alert_type)
    if not history["alerts"]:
        console.print("[dim]No alerts in history[/dim]")
        return
    table = Table(title=f"Alert History ({history['total']} total)", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Time", style="dim")
    table.add_column("Severity")
    table.add_column("Type")
    table.add_column("Title")
    table.add_column("Status")
    for a in history["alerts"]:
        if a.is_resolved:
            status = "[green]resolved[/green]"
        elif a.acknowledged:
            status = f"ack ({a.acknowledged_by})"
        else:
            status = "[yellow]open[/yellow]"
        table.add_row(str(a.id), format_timestamp(a.created_at), _severity_markup(a.severity),
                      a.type.value, a.title[:60], status)
    console.print(table)
    console.print(
        f"[dim]{history['unresolved_count']} unresolved, {history['resolved_count']} resolved on this page[/dim]"
    )


@alerts.command("ack")
@click.argument("alert_id", type=int)
@click.option("--by", "by", required=True, help="Who is acknowledging")
@click.pass_context
def alerts_ack(ctx, alert_id, by):
    """Acknowledge an alert."""
    c = _get_components(ctx)
    if not c["dispatcher"].acknowledge_alert(alert_id, by):
        console.print(f"[red]Alert {alert_id} not found[/red]")
        sys.exit(1)
    console.print(f"[green]✓[/green] Alert {alert_id} acknowledged by {by}")


@alerts.command("resolve")
@click.argument("alert_id", type=int)
@click.option("--by", "by", required=True, help="Who resolved it")
@click.pass_context
def alerts_resolve(ctx, alert_id, by):
    """Resolve an alert."""
    c = _get_components(ctx)
    if not c["dispatcher"].resolve_alert(alert_id, by):
        console.print(f"[red]Alert {alert_id} not found[/red]")
        sys.exit(1)
    console.print(f"[green]✓[/green] Alert {alert_id} resolved by {by}")


@alerts.command("test")
@click.pass_context
def alerts_test(ctx):
    """Send a test alert through the default channels."""
    c = _get_components(ctx)
    alert_id = c["dispatcher"].test_alert_system()
    if alert_id is None:
        console.print("[yellow]Test alert was throttled, suppressed or deduplicated[/yellow]")
    else:
        console.print(f"[green]✓[/green] Test alert {alert_id} sent")


@alerts.command("test-email")
@click.pass_context
def alerts_test_email(ctx):
    """Check SMTP settings by logging in without sending mail."""
    from notifications.email_sender import EmailSender
    c = _get_components(ctx)
    sender = EmailSender(c["config"])
    if not sender.is_configured():
        console.print(f"[red]Email not configured. Missing: {', '.join(sender.missing_fields())}[/red]")
        sys.exit(1)
    result = sender.test_connection()
    if result["status"] != "ok":
        console.print(f"[red]✗ {result['message']}[/red]")
        sys.exit(1)
    console.print(f"[green]✓[/green] {result['message']}")


# ──────────────────────────────────────────────────────
# METRICS & STATS
# ──────────────────────────────────────────────────────
@cli.group()
def metrics():
    """Recorded metrics."""
    pass


@metrics.command("record")
@click.argument("name")
@click.argument("value", type=float)
@click.pass_context
def metrics_record(ctx, name, value):
    """Record a metric sample for threshold conditions."""
    c = _get_components(ctx)
    c["metrics"].record(name, value)
    console.print(f"[green]✓[/green] {name} = {value:g}")


@metrics.command("check")
@click.pass_context
def metrics_check(ctx):
    """Compare recent metric averages against the alert thresholds."""
    from datetime import datetime, timedelta, timezone
    c = _get_components(ctx)
    dispatcher = c["dispatcher"]
    now = datetime.now(timezone.utc)
    current = {}
    for t in dispatcher.thresholds:
        value = c["metrics"].query([t.metric], now - timedelta(minutes=t.check_interval_minutes), now)
        if value is None:
            console.print(f"  [dim]{t.metric}: no samples in {t.check_interval_minutes}m[/dim]")
            continue
        current[t.metric] = value
        if value >= t.critical:
            level = "[red]critical[/red]"
        elif value >= t.warning:
            level = "[yellow]warning[/yellow]"
        else:
            level = "[green]ok[/green]"
        console.print(f"  {t.metric}: {value:g} {t.unit} ({level})")

    sent = dispatcher.check_alert_thresholds(current)
    console.print(f"[bold]{len(sent)} alert(s) sent[/bold]")


@cli.command()
@click.option("--alert", "send_alerts", is_flag=True, help="Send alerts for warning/critical components")
@click.pass_context
def health(ctx, send_alerts):
    """Show component health."""
    c = _get_components(ctx)
    report = c["health"].current_report()
    colors = {"healthy": "green", "warning": "yellow", "critical": "red", "unknown": "dim"}
    table = Table(title=f"System Health: {report.overall_status.value.upper()}", show_header=True)
    table.add_column("Component")
    table.add_column("Status")
    for name, status in sorted(report.components.items()):
        color = colors.get(status.value, "white")
        table.add_row(name, f"[{color}]{status.value}[/{color}]")
    console.print(table)

    if send_alerts:
        sent = c["dispatcher"].monitor_system_health(report)
        console.print(f"[bold]{len(sent)} alert(s) sent[/bold]")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def stats(ctx, as_json):
    """Show monitoring statistics."""
    from utils.formatters import format_duration, time_ago
    c = _get_components(ctx)
    s = c["engine"].get_statistics()
    if as_json:
        s = dict(s)
        s["recent_triggers"] = [
            {"rule_id": e.rule_id, "executed_at": e.executed_at.isoformat()} for e in s["recent_triggers"]
        ]
        s["governor"] = c["governor"].snapshot()
        click.echo(json.dumps(s, indent=2))
        return

    table = Table(title="Monitoring Statistics", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Rules", f"{s['active_rules']}/{s['total_rules']} enabled, {s['armed_rules']} armed")
    table.add_row("Executions (24h)", str(s["total_executions"]))
    table.add_row("Successful", str(s["successful_executions"]))
    table.add_row("Triggered", str(s["triggered_executions"]))
    table.add_row("Skipped", str(s["skipped_executions"]))
    table.add_row("Avg execution", format_duration(s["average_execution_ms"]))
    console.print(table)
    for e in s["recent_triggers"]:
        console.print(f"  {e.rule_id} triggered {time_ago(e.executed_at)}")


if __name__ == "__main__":
    cli()
