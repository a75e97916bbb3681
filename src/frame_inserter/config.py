"""Module for loading table settings from a TOML file."""

from pathlib import Path
from tomllib import load
from typing import NotRequired, TypedDict

from frame_inserter.clickhouse import ClickhouseInserter


class TableSettings(TypedDict):
    """Settings of the ``[table]`` section."""

    name: NotRequired[str]
    database: NotRequired[str]
    engine: NotRequired[str]
    order_by: NotRequired[list[str]]
    primary_key: NotRequired[list[str]]
    not_null: NotRequired[list[str]]
    create_method: NotRequired[str]
    fields: NotRequired[dict[str, str]]


SETTING_KEYS = TableSettings.__required_keys__ | TableSettings.__optional_keys__


def load_settings(settings_file: Path) -> TableSettings:
    """Load the ``[table]`` section of a settings file."""
    with settings_file.open("rb") as f:
        document = load(f)
    try:
        settings: TableSettings = document["table"]
    except KeyError as err:
        msg = f"Missing [table] section in {settings_file}"
        raise ValueError(msg) from err
    if unknown := set(settings) - SETTING_KEYS:
        msg = f"Unknown table settings: {', '.join(sorted(unknown))}"
        raise ValueError(msg)
    return settings


def inserter_from_settings(settings: TableSettings, default_name: str) -> ClickhouseInserter:
    """Apply table settings to a fresh inserter."""
    inserter = ClickhouseInserter.default(settings.get("name", default_name))
    if database := settings.get("database"):
        inserter = inserter.with_dbname(database)
    if engine := settings.get("engine"):
        inserter = inserter.with_engine(engine)
    if create_method := settings.get("create_method"):
        inserter = inserter.with_create_method(create_method)
    inserter = (
        inserter.with_order_by(settings.get("order_by", []))
        .with_primary_key(settings.get("primary_key", []))
        .with_not_null(settings.get("not_null", []))
    )
    for column, constraint in settings.get("fields", {}).items():
        inserter = inserter.with_field(column, constraint)
    return inserter
