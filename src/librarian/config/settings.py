"""Unified settings: CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs: CLI flags passed by Click
  2. Env vars: ``LIBRARIAN_*`` prefix
  3. TOML file: ``librarian.toml`` of the located workspace
  4. Code defaults: baked into the section models

Uses Pydantic Settings v2 with a custom :class:`TomlSettingsSource` that
reads the file found by workspace discovery in :mod:`librarian.config.discovery`.
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from librarian.config.discovery import DATA_DIRNAME, locate_workspace
from librarian.config.models import DatabaseConfig, LendingConfig


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from the workspace's ``librarian.toml``."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                self._data = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                import click

                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise click.ClickException(msg) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        """Return the full TOML data dict for Pydantic to merge."""
        return self._data


# Thread-local storage for TOML path during construction.
_tls = threading.local()


class LibrarianSettings(BaseSettings):
    """Unified settings for the librarian CLI and services.

    Attributes:
        data_dir: Directory holding ``.librarian/``: the located workspace
            root unless overridden.
        config_path: Resolved config file, or None when running on defaults.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "LIBRARIAN_",
        "env_nested_delimiter": "__",
    }

    # --- Resolved path (derived from the config location, not read from TOML) ---
    data_dir: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False

    # --- TOML sections ---
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    lending: LendingConfig = Field(default_factory=LendingConfig)

    @property
    def db_path(self) -> Path:
        """Location of the SQLite database file."""
        return self.data_dir / DATA_DIRNAME / self.database.filename

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        data_dir: Path | None = None,
        **cli_flags: Any,
    ) -> LibrarianSettings:
        """Construct settings from CLI invocation.

        The workspace is located by walk-up from *data_dir* (default: cwd).
        An explicit *data_dir* always wins as the data location; otherwise
        the directory of the explicit *config_path*, then the discovered
        workspace root, is used. CLI flags are highest-priority overrides.
        """
        workspace = locate_workspace(data_dir)
        toml_path = workspace.config_path
        resolved_dir = data_dir if data_dir is not None else workspace.root
        if config_path:
            explicit = Path(config_path)
            toml_path = explicit if explicit.is_file() else None
            if toml_path is not None and data_dir is None:
                resolved_dir = toml_path.parent

        _tls.toml_path = toml_path
        try:
            return cls(
                data_dir=resolved_dir,
                config_path=toml_path,
                **cli_flags,
            )
        finally:
            _tls.toml_path = None
