"""finsight overview: net worth and cash flow for a fixture."""

from __future__ import annotations

from datetime import date

import click


@click.command()
@click.argument("fixture", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False), help="YAML/JSON config file.")
@click.option("--as-of", type=click.DateTime(formats=["%Y-%m-%d"]), help="Reference date for cash flow.")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON.")
def overview(fixture: str, config_file: str | None, as_of, as_json: bool) -> None:
    """Compute the financial overview for the user in FIXTURE."""
    from finsight.core.cli.common import build_service, echo_json, load_fixture

    service, user_id = build_service(load_fixture(fixture), config_file)
    reference: date | None = as_of.date() if as_of else None
    result = service.compute_overview_sync(user_id, as_of=reference)

    if as_json:
        echo_json(result.to_dict())
        return

    m = result.metrics
    click.echo(f"Status: {result.status} ({result.data_source} data)")
    click.echo(f"Net worth:         {m.net_worth:>14,.2f}")
    click.echo(f"Total assets:      {m.total_assets:>14,.2f}")
    click.echo(f"Total liabilities: {m.total_liabilities:>14,.2f}")
    click.echo(f"Monthly cash flow: {m.monthly_cash_flow:>14,.2f}")
    if result.failed_sources:
        click.echo(f"Skipped sources: {', '.join(result.failed_sources)}")
    for flag in m.flags:
        click.echo(f"! {flag}")
    for insight in result.insights:
        click.echo(f"- {insight}")
