"""
Flask CLI commands for administrative tasks.

Usage:
    flask reset-monthly-usage              # Dry run (count due subscriptions)
    flask reset-monthly-usage --confirm    # Reset counters past their reset date
    flask validate-bundles                 # Check bundle layer ratios
"""

from __future__ import annotations

import click
from flask.cli import with_appcontext


@click.command("reset-monthly-usage")
@click.option("--confirm", is_flag=True, default=False,
              help="Actually reset counters. Without this flag, only counts due rows (dry run).")
@with_appcontext
def reset_monthly_usage_command(confirm: bool) -> None:
    """Reset monthly project/render/export counters for basic and pro plans."""
    from gardenstudio.services import supabase_client
    from gardenstudio.services.entitlements import reset_due_subscriptions

    if not supabase_client.get_admin_client():
        click.echo("Error: Supabase admin client not configured (SUPABASE_SERVICE_ROLE_KEY missing).")
        raise SystemExit(1)

    summary = reset_due_subscriptions(dry_run=not confirm)
    click.echo(f"Found {summary['due']} subscription(s) due for reset.")

    if not confirm:
        click.echo("\nDry run - nothing changed. Use --confirm to reset.")
        return

    click.echo(f"Reset: {summary['reset']}  Failed: {summary['failed']}")
    if summary["failed"]:
        raise SystemExit(1)


@click.command("validate-bundles")
@with_appcontext
def validate_bundles_command() -> None:
    """Report bundles whose tall/medium/low split breaks the layer ratios."""
    from gardenstudio.services import bundles

    failing = 0
    for bundle in bundles.all_bundles():
        report = bundles.validate_ratios(bundle)
        ratios = report["ratios"]
        line = (f"{bundle['id']}: tall {ratios['tall']}%  medium {ratios['medium']}%  "
                f"low {ratios['low']}%  ({report['counts']['total']} plants)")
        if report["valid"]:
            click.echo(f"[OK]   {line}")
        else:
            failing += 1
            click.echo(f"[FAIL] {line}")
            for issue in report["issues"]:
                click.echo(f"         - {issue}")

    if failing:
        click.echo(f"\n{failing} bundle(s) failed validation.")
        raise SystemExit(1)
    click.echo("\nAll bundles passed.")
