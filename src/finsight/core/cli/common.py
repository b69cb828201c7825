"""Shared setup logic for CLI commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click
import yaml


def load_fixture(path: str) -> dict[str, Any]:
    """Read a YAML or JSON fixture of one user's document-store collections.

    Expected shape::

        user_id: alice
        profile: {useDemoData: false}
        manual_assets: [...]
        manual_transactions: [...]
    """
    fixture_path = Path(path)
    with open(fixture_path) as f:
        if fixture_path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise click.ClickException(f"Fixture {path} must contain a mapping")
    return data


def build_service(fixture: dict[str, Any], config_file: str | None = None):
    """Service backed by an in-memory store loaded from *fixture*.  Returns (service, user_id)."""
    from finsight.core.config import Config
    from finsight.core.exceptions import ConfigurationError
    from finsight.core.utils.logging import setup_logging_from_config
    from finsight.financial import AggregationService, InMemoryDocumentStore
    from finsight.financial.sources import COLLECTIONS

    try:
        config = Config(config_file=config_file)
        settings = config.validated()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    setup_logging_from_config(config)

    user_id = str(fixture.get("user_id") or "local")
    store = InMemoryDocumentStore()
    store.set_profile(user_id, **(fixture.get("profile") or {}))
    for collection in COLLECTIONS:
        records = fixture.get(collection) or []
        if records:
            store.add(user_id, collection, *records)
    return AggregationService(store, settings=settings), user_id


def echo_json(data: dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=2, default=str))
