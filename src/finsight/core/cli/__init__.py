"""Finsight CLI: run the aggregation engine over a fixture file."""

import click

from finsight import __version__


@click.group()
@click.version_option(version=__version__, package_name="finsight")
def main() -> None:
    """Finsight: net worth, cash flow and spending trends."""


from .overview_cmd import overview
from .trends_cmd import trends

main.add_command(overview)
main.add_command(trends)
