# ar844/app/config.py
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ar844.core.errors import ConfigError


@dataclass(frozen=True)
class DeviceConfig:
    vendor_id: int = 0x1234
    product_id: int = 0x5678
    interface: int = 0
    configuration: int = 1
    endpoint_in: int = 0x81
    endpoint_out: int = 0x02
    frame_len_in: int = 8
    frame_len_out: int = 8
    transfer_timeout_ms: int = 1000


@dataclass(frozen=True)
class BrokerConfig:
    host: str = "server"
    port: int = 1883
    keepalive_s: int = 90
    client_id: str = ""
    topic: str = "tele/{hostname}/ar844/data"  # {hostname} filled in at startup
    attempts: int = 2


@dataclass(frozen=True)
class AcquisitionConfig:
    poll_interval_ms: int = 500
    period_s: int = 60
    wait_timeout_s: float = 1.0


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass(frozen=True)
class AppConfig:
    device: DeviceConfig = field(default_factory=DeviceConfig)
    broker: BrokerConfig = field(default_factory=BrokerConfig)
    acquisition: AcquisitionConfig = field(default_factory=AcquisitionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def topic_for(self, hostname: str) -> str:
        try:
            return self.broker.topic.format(hostname=hostname)
        except (KeyError, IndexError, ValueError) as e:
            raise ConfigError(
                f"Invalid topic template {self.broker.topic!r}.",
                hint="Use a single {hostname} placeholder.",
                details={"error": str(e)},
            ) from None


_SECTIONS = {
    "device": DeviceConfig,
    "broker": BrokerConfig,
    "acquisition": AcquisitionConfig,
    "logging": LoggingConfig,
}


def _cast(section: str, name: str, value: Any, default: Any) -> Any:
    if value is None:
        if default is None:
            return None
        raise ConfigError(
            f"Config value '{section}.{name}' must not be empty.",
            details={"section": section, "key": name},
        )

    expected = type(default) if default is not None else str

    if expected is bool:
        ok = isinstance(value, bool)
    elif expected is int:
        ok = isinstance(value, int) and not isinstance(value, bool)
    elif expected is float:
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        value = float(value) if ok else value
    else:
        ok = isinstance(value, expected)

    if not ok:
        raise ConfigError(
            f"Invalid value for '{section}.{name}'.",
            hint=f"Expected {expected.__name__}, got {type(value).__name__}.",
            details={"section": section, "key": name, "value": value},
        )
    return value


def _build_section(section: str, cls: type, raw: Mapping[str, Any]) -> Any:
    if not isinstance(raw, Mapping):
        raise ConfigError(
            f"Config section '{section}' must be a mapping.",
            details={"section": section},
        )

    defaults = cls()
    known = {f.name for f in fields(cls)}
    for key in raw:
        if key not in known:
            raise ConfigError(
                f"Unknown config key '{section}.{key}'.",
                hint=f"Valid keys: {sorted(known)}",
                details={"section": section, "key": key},
            )

    values = {
        name: _cast(section, name, value, getattr(defaults, name))
        for name, value in raw.items()
    }
    return replace(defaults, **values)


def _validate(cfg: AppConfig) -> None:
    acq = cfg.acquisition
    if acq.period_s <= 0:
        raise ConfigError("acquisition.period_s must be > 0.")
    if acq.poll_interval_ms <= 0:
        raise ConfigError("acquisition.poll_interval_ms must be > 0.")
    if acq.wait_timeout_s <= 0:
        raise ConfigError("acquisition.wait_timeout_s must be > 0.")
    if cfg.broker.attempts < 1:
        raise ConfigError("broker.attempts must be >= 1.")


def config_from_mapping(data: Optional[Mapping[str, Any]]) -> AppConfig:
    data = data or {}
    if not isinstance(data, Mapping):
        raise ConfigError("Config root must be a mapping of sections.")

    sections: Dict[str, Any] = {}
    for name, raw in data.items():
        cls = _SECTIONS.get(name)
        if cls is None:
            raise ConfigError(
                f"Unknown config section '{name}'.",
                hint=f"Valid sections: {sorted(_SECTIONS)}",
                details={"section": name},
            )
        sections[name] = _build_section(name, cls, raw or {})

    cfg = AppConfig(**sections)
    _validate(cfg)
    return cfg


def load_config(
    path: str | Path | None = None,
    overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> AppConfig:
    """
    Load config from an optional YAML file, then apply per-section overrides
    (e.g. from CLI flags). Missing keys keep their built-in defaults.
    """
    data: Dict[str, Any] = {}

    if path is not None:
        full_path = Path(path)
        if not full_path.exists():
            raise ConfigError(
                f"Missing config file: {full_path}",
                details={"path": str(full_path)},
            )
        try:
            with open(full_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Failed to parse config file: {full_path}",
                hint=str(e),
                details={"path": str(full_path)},
            ) from None
        if not isinstance(data, dict):
            raise ConfigError(f"Config root must be a mapping: {full_path}")

    for section, values in (overrides or {}).items():
        merged = dict(data.get(section) or {})
        merged.update({k: v for k, v in values.items() if v is not None})
        data[section] = merged

    return config_from_mapping(data)
