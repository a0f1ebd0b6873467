"""Configuration validation utilities."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    value: Any


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_positive(params: dict[str, Any], section: str, name: str,
                    errors: list[ValidationError], integer: bool = False) -> None:
    if name not in params:
        return
    value = params[name]
    valid_type = isinstance(value, int) and not isinstance(value, bool) if integer else _is_number(value)
    if not valid_type or value <= 0:
        errors.append(ValidationError(
            field=f"{section}.{name}",
            message="Must be a positive integer" if integer else "Must be a positive number",
            value=value
        ))


def _check_non_negative(params: dict[str, Any], section: str, name: str,
                        errors: list[ValidationError]) -> None:
    if name not in params:
        return
    value = params[name]
    if not _is_number(value) or value < 0:
        errors.append(ValidationError(
            field=f"{section}.{name}",
            message="Must be a non-negative number",
            value=value
        ))


def _check_bool(params: dict[str, Any], section: str, name: str,
                errors: list[ValidationError]) -> None:
    if name in params and not isinstance(params[name], bool):
        errors.append(ValidationError(
            field=f"{section}.{name}",
            message="Must be a boolean",
            value=params[name]
        ))


class ConfigValidator:
    """Validates configuration parameters."""

    @staticmethod
    def validate_indicator_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate indicator periods."""
        errors: list[ValidationError] = []

        for name in ("rsi_period", "macd_fast", "macd_slow", "macd_signal"):
            _check_positive(params, "indicators", name, errors, integer=True)

        fast, slow = params.get("macd_fast"), params.get("macd_slow")
        if _is_number(fast) and _is_number(slow) and fast >= slow:
            errors.append(ValidationError(
                field="indicators.macd_fast",
                message="Must be smaller than macd_slow",
                value=fast
            ))

        return errors

    @staticmethod
    def validate_signal_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate RSI thresholds and window sizing."""
        errors: list[ValidationError] = []

        for name in ("oversold", "overbought"):
            if name in params:
                value = params[name]
                if not _is_number(value) or value < 0 or value > 100:
                    errors.append(ValidationError(
                        field=f"signals.{name}",
                        message="Must be a number between 0 and 100",
                        value=value
                    ))

        oversold, overbought = params.get("oversold"), params.get("overbought")
        if _is_number(oversold) and _is_number(overbought) and oversold >= overbought:
            errors.append(ValidationError(
                field="signals.oversold",
                message="Must be smaller than overbought",
                value=oversold
            ))

        _check_positive(params, "signals", "window_size", errors, integer=True)
        _check_non_negative(params, "signals", "warmup_samples", errors)
        _check_bool(params, "signals", "auto_watch_recommended", errors)

        for entry in params.get("watchlist") or ():
            if not isinstance(entry, dict) or not entry.get("venue") or not entry.get("symbol"):
                errors.append(ValidationError(
                    field="signals.watchlist",
                    message="Each entry needs a venue and a symbol",
                    value=entry
                ))

        return errors

    @staticmethod
    def validate_risk_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate scoring thresholds."""
        errors: list[ValidationError] = []

        for name in ("liquidity_threshold", "holders_threshold",
                     "market_cap_threshold", "age_window_seconds"):
            _check_positive(params, "risk", name, errors)
        _check_positive(params, "risk", "price_history_limit", errors, integer=True)

        for name in ("min_fundamental", "max_risk"):
            if name in params:
                value = params[name]
                if not _is_number(value) or value < 0 or value > 100:
                    errors.append(ValidationError(
                        field=f"risk.{name}",
                        message="Must be a number between 0 and 100",
                        value=value
                    ))

        if "min_buy_pressure" in params:
            value = params["min_buy_pressure"]
            if not _is_number(value) or value < 0 or value > 1:
                errors.append(ValidationError(
                    field="risk.min_buy_pressure",
                    message="Must be a number between 0 and 1",
                    value=value
                ))

        if "min_momentum" in params and not _is_number(params["min_momentum"]):
            errors.append(ValidationError(
                field="risk.min_momentum",
                message="Must be a number",
                value=params["min_momentum"]
            ))

        return errors

    @staticmethod
    def validate_trading_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate sizing and exit parameters."""
        errors: list[ValidationError] = []

        _check_positive(params, "trading", "position_size", errors)
        _check_positive(params, "trading", "take_profit_pct", errors)
        _check_positive(params, "trading", "max_open_positions", errors, integer=True)
        _check_positive(params, "trading", "stuck_after_attempts", errors, integer=True)
        _check_positive(params, "trading", "closed_trades_retention", errors, integer=True)
        _check_bool(params, "trading", "close_on_stop", errors)

        if "stop_loss_pct" in params:
            value = params["stop_loss_pct"]
            if not _is_number(value) or value <= 0 or value >= 100:
                errors.append(ValidationError(
                    field="trading.stop_loss_pct",
                    message="Must be a positive number below 100",
                    value=value
                ))

        if "quote_asset" in params and (not isinstance(params["quote_asset"], str)
                                        or not params["quote_asset"]):
            errors.append(ValidationError(
                field="trading.quote_asset",
                message="Must be a non-empty string",
                value=params["quote_asset"]
            ))

        return errors

    @staticmethod
    def validate_scanner_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate scanning parameters."""
        errors: list[ValidationError] = []

        _check_positive(params, "scanner", "progress_interval", errors, integer=True)
        _check_positive(params, "scanner", "max_pairs_per_cycle", errors, integer=True)
        _check_bool(params, "scanner", "skip_existing_pairs", errors)

        return errors

    @staticmethod
    def validate_scheduler_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate task intervals and timeouts."""
        errors: list[ValidationError] = []

        for name in ("scan_interval", "analysis_interval", "signal_interval",
                     "monitor_interval", "venue_timeout_seconds"):
            _check_positive(params, "scheduler", name, errors)
        _check_positive(params, "scheduler", "max_workers", errors, integer=True)

        return errors

    @staticmethod
    def validate_venues(venues: Any) -> list[ValidationError]:
        """Validate the venue list."""
        errors: list[ValidationError] = []

        if not isinstance(venues, (list, tuple)):
            return [ValidationError(field="venues", message="Must be a list", value=venues)]

        seen = set()
        for venue in venues:
            if not isinstance(venue, dict) or not venue.get("name"):
                errors.append(ValidationError(
                    field="venues",
                    message="Each venue needs a name",
                    value=venue
                ))
                continue

            name = venue["name"]
            if name in seen:
                errors.append(ValidationError(
                    field="venues.name",
                    message="Venue names must be unique",
                    value=name
                ))
            seen.add(name)

            if "kind" in venue and (not isinstance(venue["kind"], str) or not venue["kind"]):
                errors.append(ValidationError(
                    field=f"venues.{name}.kind",
                    message="Must be a non-empty string",
                    value=venue["kind"]
                ))
            for flag in ("enabled", "scan_enabled"):
                _check_bool(venue, f"venues.{name}", flag, errors)

        return errors

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ValidationError]:
        """Validate complete configuration."""
        errors = []

        if "venues" in config:
            errors.extend(ConfigValidator.validate_venues(config["venues"]))

        if "indicators" in config:
            errors.extend(ConfigValidator.validate_indicator_params(config["indicators"]))

        if "signals" in config:
            errors.extend(ConfigValidator.validate_signal_params(config["signals"]))

        if "risk" in config:
            errors.extend(ConfigValidator.validate_risk_params(config["risk"]))

        if "trading" in config:
            errors.extend(ConfigValidator.validate_trading_params(config["trading"]))

        if "scanner" in config:
            errors.extend(ConfigValidator.validate_scanner_params(config["scanner"]))

        if "scheduler" in config:
            errors.extend(ConfigValidator.validate_scheduler_params(config["scheduler"]))

        return errors
