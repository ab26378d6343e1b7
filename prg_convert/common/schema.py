"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from prg_convert.common.constants import OUTPUT_FORMATS, SUPPORTED_EPSG
from prg_convert.common.errors import ConfigError

PARQUET_COMPRESSIONS = ("zstd", "snappy", "brotli", "none")
PARQUET_VERSIONS = ("v1", "v2")
LOG_LEVELS = ("DEBUG", "INFO", "WARN", "WARNING", "ERROR")


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_choice(value, choices, ctx: str) -> None:
    if value not in choices:
        allowed = ", ".join(str(choice) for choice in choices)
        raise ConfigError(f"Unsupported value `{value}` for {ctx}, expected one of: {allowed}")


def _assert_optional_positive_int(value, ctx: str) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{ctx} must be a positive integer")


def validate_converter_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    if not isinstance(cfg, dict):
        raise ConfigError("converter config must be a mapping")

    top_required = {"batch_size", "output", "parquet", "teryt", "strict_references", "logging"}
    _assert_required_keys(cfg, top_required, "converter config")
    _assert_no_unknown_keys(cfg, top_required, "converter config", allow_unknown)

    _assert_optional_positive_int(cfg["batch_size"], "batch_size")
    if cfg["batch_size"] is None:
        raise ConfigError("batch_size must be a positive integer")

    _assert_required_keys(cfg["output"], {"format", "crs_epsg"}, "output")
    _assert_no_unknown_keys(cfg["output"], {"format", "crs_epsg"}, "output", allow_unknown)
    _assert_choice(cfg["output"]["format"], OUTPUT_FORMATS, "output.format")
    _assert_choice(cfg["output"]["crs_epsg"], SUPPORTED_EPSG, "output.crs_epsg")

    parquet_keys = {"compression", "compression_level", "row_group_size", "version"}
    _assert_required_keys(cfg["parquet"], parquet_keys, "parquet")
    _assert_no_unknown_keys(cfg["parquet"], parquet_keys, "parquet", allow_unknown)
    _assert_choice(cfg["parquet"]["compression"], PARQUET_COMPRESSIONS, "parquet.compression")
    _assert_choice(cfg["parquet"]["version"], PARQUET_VERSIONS, "parquet.version")
    _assert_optional_positive_int(cfg["parquet"]["row_group_size"], "parquet.row_group_size")
    level = cfg["parquet"]["compression_level"]
    if level is not None and (isinstance(level, bool) or not isinstance(level, int)):
        raise ConfigError("parquet.compression_level must be an integer or null")

    _assert_required_keys(cfg["teryt"], {"path", "download_url"}, "teryt")
    _assert_no_unknown_keys(cfg["teryt"], {"path", "download_url"}, "teryt", allow_unknown)

    if not isinstance(cfg["strict_references"], bool):
        raise ConfigError("strict_references must be a boolean")

    _assert_required_keys(cfg["logging"], {"level", "log_dir"}, "logging")
    _assert_no_unknown_keys(cfg["logging"], {"level", "log_dir"}, "logging", allow_unknown)
    _assert_choice(str(cfg["logging"]["level"]).upper(), LOG_LEVELS, "logging.level")

    return cfg
