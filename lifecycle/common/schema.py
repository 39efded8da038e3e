"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from croniter import croniter

from lifecycle.common.errors import ConfigError

TOP_LEVEL_SECTIONS = {"verification", "geocoding", "notifications", "storage", "reports"}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
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


def _assert_positive_int(value, ctx: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"{ctx} must be a positive integer")


def validate_verification_config(cfg: dict) -> dict:
    _assert_required_keys(
        cfg,
        {"reminder_days", "expiry_days", "max_workers", "cascade_to_services", "schedule"},
        "verification",
    )
    _assert_positive_int(cfg["reminder_days"], "verification.reminder_days")
    _assert_positive_int(cfg["expiry_days"], "verification.expiry_days")
    _assert_positive_int(cfg["max_workers"], "verification.max_workers")
    if cfg["expiry_days"] <= cfg["reminder_days"]:
        raise ConfigError("verification.expiry_days must be greater than verification.reminder_days")

    _assert_required_keys(cfg["schedule"], {"cron"}, "verification.schedule")
    if not croniter.is_valid(str(cfg["schedule"]["cron"])):
        raise ConfigError(f"Invalid cron expression: {cfg['schedule']['cron']}")
    return cfg


def validate_geocoding_config(cfg: dict) -> dict:
    _assert_required_keys(cfg, {"endpoint", "timeout", "retry", "cache_size"}, "geocoding")
    _assert_required_keys(cfg["timeout"], {"connect", "read"}, "geocoding.timeout")
    _assert_positive_int(cfg["cache_size"], "geocoding.cache_size")
    return cfg


def validate_notifications_config(cfg: dict) -> dict:
    _assert_required_keys(
        cfg,
        {"endpoint", "api_key_env", "from_email", "templates", "timeout", "retry"},
        "notifications",
    )
    _assert_required_keys(cfg["templates"], {"reminder", "expiry"}, "notifications.templates")
    _assert_required_keys(cfg["timeout"], {"connect", "read"}, "notifications.timeout")
    return cfg


def validate_lifecycle_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_required_keys(cfg, TOP_LEVEL_SECTIONS, "lifecycle config")
    _assert_no_unknown_keys(cfg, TOP_LEVEL_SECTIONS, "lifecycle config", allow_unknown)

    validate_verification_config(cfg["verification"])
    validate_geocoding_config(cfg["geocoding"])
    validate_notifications_config(cfg["notifications"])
    _assert_required_keys(cfg["storage"], {"path"}, "storage")
    _assert_required_keys(cfg["reports"], {"dir"}, "reports")
    return cfg
