"""finsight trends: spending trends for a fixture."""

from __future__ import annotations

import click

from finsight.core.config_schema import TIMEFRAMES
from finsight.financial.models import AnalysisType


@click.command()
@click.argument("fixture", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--type",
    "analysis_type",
    type=click.Choice([t.value for t in AnalysisType]),
    default=AnalysisType.MONTHLY.value,
    show_default=True,
)
@click.option("--timeframe", type=click.Choice(list(TIMEFRAMES)), help="Defaults to trends.default_timeframe.")
@click.option("--category", "categories", multiple=True, help="Only analyze these categories (repeatable).")
@click.option("--today", type=click.DateTime(formats=["%Y-%m-%d"]), help="End of the analysis range.")
@click.option("--project/--no-project", default=False, help="Include a next-period projection.")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False), help="YAML/JSON config file.")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON.")
def trends(
    fixture: str,
    analysis_type: str,
    timeframe: str | None,
    categories: tuple[str, ...],
    today,
    project: bool,
    config_file: str | None,
    as_json: bool,
) -> None:
    """Analyze spending trends for the user in FIXTURE."""
    from finsight.core.cli.common import build_service, echo_json, load_fixture
    from finsight.financial.service import run_sync

    service, user_id = build_service(load_fixture(fixture), config_file)
    result = run_sync(
        service.spending_trends(
            user_id,
            timeframe=timeframe,
            analysis_type=analysis_type,
            categories=list(categories) or None,
            include_projections=project,
            today=today.date() if today else None,
        )
    )

    if as_json:
        echo_json(result.to_dict())
        return

    report = result.report
    click.echo(f"{analysis_type.title()} spending, {report.date_range.start} to {report.date_range.end}")
    for point in report.trends:
        label = point.category or point.period
        change = f"  ({point.percent_change:+.1f}%)" if point.percent_change is not None else ""
        click.echo(f"  {label:<24} {point.amount:>12,.2f}{change}")
    click.echo(f"Total spent: {report.total_spent:,.2f}")
    if report.projection:
        projection = report.projection
        click.echo(f"Projected next period: {projection.next_period:,.2f} ({projection.confidence}% confidence)")
    for insight in report.insights:
        click.echo(f"- {insight}")
