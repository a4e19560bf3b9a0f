"""Configuration system for sourcetrace using pydantic-settings."""

from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

try:
    import tomllib  # Python 3.11+  # pyright: ignore[reportMissingImports]
except ImportError:
    import tomli as tomllib  # Fallback for Python 3.10

from pydantic import Field as PydanticField
from pydantic import field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from sourcetrace.models.constants import (
    DEFAULT_BF_HASHES,
    DEFAULT_BF_WIDTH,
    DEFAULT_TRACING_FIELD,
    MAX_BF_WIDTH,
)

CONFIG_FILE_NAME = "sourcetrace.toml"
PYPROJECT_FILE_NAME = "pyproject.toml"

# Files holding tracing settings, by precedence within one directory
CONFIG_CANDIDATES = (CONFIG_FILE_NAME, PYPROJECT_FILE_NAME)


def read_tracing_table(path: Path) -> dict[str, Any]:
    """Tracing settings stored in `path`.

    A `sourcetrace.toml` holds them at its top level, a `pyproject.toml`
    under `[tool.sourcetrace]`.
    """
    with open(path, "rb") as f:
        data = tomllib.load(f)
    if path.name == PYPROJECT_FILE_NAME:
        return data.get("tool", {}).get("sourcetrace", {})
    return data


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """Tracing settings read from a TOML file.

    Without an explicit `toml_file`, the first of `CONFIG_CANDIDATES` found in
    the working directory is used. A missing file contributes no settings.
    """

    def __init__(self, settings_cls: type[BaseSettings], toml_file: Path | None = None):
        super().__init__(settings_cls)
        if toml_file is None:
            toml_file = next(
                (Path(name) for name in CONFIG_CANDIDATES if Path(name).exists()), None
            )
        self.toml_file = toml_file
        self.toml_data = {} if toml_file is None else read_tracing_table(toml_file)

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        return self.toml_data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return self.toml_data


class TracingStrategy(str, Enum):
    """How provenance tags are represented while a flow is being traced."""

    EXACT = "exact"  # explicit per-source lists of contributing records
    BLOOM = "bloom"  # per-source Bloom filters, resolved by re-scanning sources


class TracingConfig(BaseSettings):
    """Source tracing configuration.

    Loads from:
    1. TOML file (sourcetrace.toml or pyproject.toml [tool.sourcetrace])
    2. Environment variables (SOURCETRACE_*)
    3. Init arguments

    Priority: init > env vars > TOML

    Example:
        ```py
        config = TracingConfig(enabled=True, strategy="bloom", bf_hashes=3)
        assert config.strategy is TracingStrategy.BLOOM
        ```
    """

    model_config = SettingsConfigDict(
        env_prefix="SOURCETRACE_",
        frozen=True,
    )

    enabled: bool = PydanticField(
        default=False,
        description="Whether consumed source records are traced and written out.",
    )

    strategy: TracingStrategy = PydanticField(
        default=TracingStrategy.EXACT,
        description="Provenance representation: exact record lists or Bloom filters.",
    )

    bf_hashes: int = PydanticField(
        default=DEFAULT_BF_HASHES,
        description="Number of hash functions of each Bloom filter.",
    )

    bf_width: int = PydanticField(
        default=DEFAULT_BF_WIDTH,
        description="Width in bits of each Bloom filter. Must be a multiple of 64.",
    )

    field_name: str = PydanticField(
        default=DEFAULT_TRACING_FIELD,
        description="Name of the column that carries the provenance tag.",
    )

    @field_validator("bf_hashes")
    @classmethod
    def validate_bf_hashes(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"bf_hashes must be at least 1, got {v}")
        return v

    @field_validator("bf_width")
    @classmethod
    def validate_bf_width(cls, v: int) -> int:
        """Validate the Bloom filter width packs into whole 64-bit words."""
        if v <= 0 or v % 64 != 0:
            raise ValueError(f"bf_width must be a positive multiple of 64, got {v}")
        if v > MAX_BF_WIDTH:
            raise ValueError(f"bf_width must be at most {MAX_BF_WIDTH}, got {v}")
        return v

    @field_validator("field_name")
    @classmethod
    def validate_field_name(cls, v: str) -> str:
        if not v:
            raise ValueError("field_name must not be empty")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources: init → env → TOML.

        Priority (first wins):
        1. Init arguments
        2. Environment variables
        3. TOML file
        """
        toml_settings = TomlConfigSettingsSource(settings_cls)
        return (init_settings, env_settings, toml_settings)

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "TracingConfig":
        """Build a config from job arguments.

        Understands the job argument names `write_sources`, `bf`, `bf_hashes`,
        `bf_width` and `tracing_field`. Boolean flags are enabled by presence
        unless explicitly set to a false-ish string such as `"false"` or `"0"`.

        Example:
            ```py
            config = TracingConfig.from_args({"write_sources": True, "bf": True})
            assert config.enabled and config.strategy is TracingStrategy.BLOOM
            ```
        """
        kwargs: dict[str, Any] = {
            "enabled": _flag(args.get("write_sources")),
            "strategy": TracingStrategy.BLOOM
            if _flag(args.get("bf"))
            else TracingStrategy.EXACT,
        }
        if args.get("bf_hashes") is not None:
            kwargs["bf_hashes"] = int(args["bf_hashes"])
        if args.get("bf_width") is not None:
            kwargs["bf_width"] = int(args["bf_width"])
        if args.get("tracing_field") is not None:
            kwargs["field_name"] = str(args["tracing_field"])
        return cls(**kwargs)

    @classmethod
    def load(
        cls, config_file: str | Path | None = None, *, search_parents: bool = True
    ) -> "TracingConfig":
        """Load config with auto-discovery and parent directory search.

        Args:
            config_file: Optional config file path (overrides auto-discovery)
            search_parents: Search parent directories for config file (default: True)

        Returns:
            Loaded config (TOML + env vars merged)
        """
        if config_file is None and search_parents:
            config_file = cls._discover_config_with_parents()

        if config_file is None:
            return cls()

        toml_path = Path(config_file)

        class ExplicitTomlConfig(cls):  # type: ignore[valid-type,misc]
            @classmethod
            def settings_customise_sources(
                cls_inner,
                settings_cls,
                init_settings,
                env_settings,
                dotenv_settings,
                file_secret_settings,
            ):
                toml_settings = TomlConfigSettingsSource(settings_cls, toml_path)
                return (init_settings, env_settings, toml_settings)

        # Re-validate as the public class so callers never see the subclass
        return cls.model_validate(ExplicitTomlConfig().model_dump())

    @staticmethod
    def _discover_config_with_parents() -> Path | None:
        """Closest config file, from the working directory up to the filesystem root."""
        cwd = Path.cwd()
        for directory in (cwd, *cwd.parents):
            for name in CONFIG_CANDIDATES:
                if (directory / name).exists():
                    return directory / name
        return None


def _flag(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        # A bare flag (`--write_sources`) arrives as an empty string
        return value.strip().lower() not in {"0", "false", "no", "off"}
    return bool(value)
