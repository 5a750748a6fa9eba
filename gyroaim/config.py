"""CLI config and defaults."""

from __future__ import annotations

import argparse
import math
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from .control.signal_pipeline import AimConfig, validate_aim_config
from .net.discovery import DISCOVERY_TOKEN
from .net.endpoint import PayloadError, parse_connection_payload, validate_port


@dataclass(frozen=True)
class AppConfig:
    role: str = "receiver"
    listen_host: str = "0.0.0.0"
    listen_port: int = 7777
    discovery_port: int = 7778
    discovery_token: str = DISCOVERY_TOKEN
    discovery_timeout_s: float = 2.0
    discovery_attempts: int = 3
    server: str = ""
    send_hz: float = 200.0
    legacy_wire: bool = False
    remote_calibrate: bool = False
    orientation_source: str = "toycv"
    bridge_host: str = "127.0.0.1"
    bridge_port: int = 24568
    timeout_s: float = 5.0
    poll_s: float = 0.5
    tick_hz: float = 60.0
    dead_zone_deg: float = 0.5
    max_tilt_deg: float = 30.0
    sensitivity: float = 1.5
    curve: bool = True
    curve_power: float = 2.0
    vertical_range: float = 0.85
    horizontal_range: float = 0.85
    smooth_rate: float = 15.0
    screen_width: int = 1920
    screen_height: int = 1080
    display_hz: float = 5.0
    cli_output: str = "live"
    log_every_n_packets: int = 60
    log_level: str = "info"

    def aim_config(self) -> AimConfig:
        return AimConfig(
            dead_zone_deg=self.dead_zone_deg,
            max_tilt_deg=self.max_tilt_deg,
            sensitivity=self.sensitivity,
            use_curve=self.curve,
            curve_power=self.curve_power,
            vertical_range=self.vertical_range,
            horizontal_range=self.horizontal_range,
        )


_APP_CONFIG_FIELDS = {f.name for f in fields(AppConfig)}
_BOOL_FIELDS = {
    "legacy_wire",
    "remote_calibrate",
    "curve",
}
_INT_FIELDS = {
    "listen_port",
    "discovery_port",
    "discovery_attempts",
    "bridge_port",
    "screen_width",
    "screen_height",
    "log_every_n_packets",
}
_FLOAT_FIELDS = {
    "discovery_timeout_s",
    "send_hz",
    "timeout_s",
    "poll_s",
    "tick_hz",
    "dead_zone_deg",
    "max_tilt_deg",
    "sensitivity",
    "curve_power",
    "vertical_range",
    "horizontal_range",
    "smooth_rate",
    "display_hz",
}
_STRING_FIELDS = {
    "role",
    "listen_host",
    "discovery_token",
    "server",
    "orientation_source",
    "bridge_host",
    "cli_output",
    "log_level",
}
_KEY_ALIASES = {
    "no_curve": "curve",
}

ROLES = ("receiver", "sender", "discover")
ORIENTATION_SOURCES = ("toycv", "bridge", "none")


def _parse_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        s = value.strip().lower()
        if s in {"1", "true", "yes", "on"}:
            return True
        if s in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"config key '{key}' expects a bool, got {value!r}")


def _coerce_config_value(key: str, value: Any) -> Any:
    try:
        if key in _BOOL_FIELDS:
            return _parse_bool(value, key)
        if key in _INT_FIELDS:
            return int(value)
        if key in _FLOAT_FIELDS:
            return float(value)
        if key in _STRING_FIELDS:
            return "" if value is None else str(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid value for config key '{key}': {value!r}") from exc
    raise ValueError(f"unsupported config key '{key}'")


def _normalize_config_key(raw_key: Any) -> str:
    if not isinstance(raw_key, str):
        raise ValueError(f"config key must be string, got {type(raw_key).__name__}")
    key = raw_key.strip().replace("-", "_")
    if not key:
        raise ValueError("config key cannot be empty")
    return key


def _load_yaml_config(path: str) -> dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ValueError(f"--config file not found: {p}")
    if not p.is_file():
        raise ValueError(f"--config must point to a file: {p}")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"failed to read --config file {p}: {exc}") from exc
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"failed to parse YAML config {p}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(f"--config root must be a mapping/object, got {type(loaded).__name__}")

    normalized: dict[str, Any] = {}
    for raw_key, raw_value in loaded.items():
        key = _normalize_config_key(raw_key)
        if key in _KEY_ALIASES:
            # no_curve: true -> curve: false
            target = _KEY_ALIASES[key]
            normalized[target] = not _coerce_config_value(target, raw_value)
            continue
        if key not in _APP_CONFIG_FIELDS:
            raise ValueError(f"unknown config key in {p}: {raw_key!r}")
        normalized[key] = _coerce_config_value(key, raw_value)
    return normalized


def _yaml_defaults_to_argparse_defaults(cfg: dict[str, Any]) -> dict[str, Any]:
    defaults: dict[str, Any] = {}
    for key, value in cfg.items():
        if key == "curve":
            defaults["no_curve"] = not bool(value)
        else:
            defaults[key] = value
    return defaults


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="gyroaim",
        description="Stream handheld-device orientation over UDP and turn it into a 2D aim point.",
    )
    ap.add_argument(
        "--config",
        type=str,
        default="",
        help="YAML config file path. CLI args override YAML values.",
    )
    ap.add_argument(
        "role",
        nargs="?",
        choices=list(ROLES),
        default="receiver",
        help="receiver: listen and aim; sender: stream orientation; discover: find a receiver.",
    )

    net = ap.add_argument_group("network")
    net.add_argument("--listen-host", type=str, default="0.0.0.0", help="Receiver bind host.")
    net.add_argument("--listen-port", type=int, default=7777, help="Orientation/command UDP port.")
    net.add_argument("--discovery-port", type=int, default=7778, help="Discovery UDP port.")
    net.add_argument(
        "--discovery-token",
        type=str,
        default=DISCOVERY_TOKEN,
        help="Token broadcast by clients and recognized by receivers.",
    )
    net.add_argument(
        "--discovery-timeout-s",
        type=float,
        default=2.0,
        help="Seconds to wait for a discovery reply per attempt.",
    )
    net.add_argument(
        "--discovery-attempts",
        type=int,
        default=3,
        help="Discovery broadcast attempts before giving up.",
    )
    net.add_argument(
        "--server",
        type=str,
        default="",
        help="Sender destination: ip:port, gyro://ip:port or JSON {\"ip\":..,\"port\":..}. "
        "Empty means discover on the LAN.",
    )
    net.add_argument(
        "--timeout-s",
        type=float,
        default=5.0,
        help="Seconds without packets before the receiver reports disconnected (0 disables).",
    )
    net.add_argument(
        "--poll-s",
        type=float,
        default=0.5,
        help="Connection liveness poll interval in seconds.",
    )
    net.add_argument(
        "--log-every-n-packets",
        type=int,
        default=60,
        help="Debug-log one decoded orientation every N packets (0 disables).",
    )

    send = ap.add_argument_group("sender")
    send.add_argument("--send-hz", type=float, default=200.0, help="Orientation send rate in Hz.")
    send.add_argument(
        "--legacy-wire",
        action="store_true",
        help="Send the untagged 16-byte orientation layout for older receivers.",
    )
    send.add_argument(
        "--remote-calibrate",
        action="store_true",
        help="Calibrate button asks the receiver to recalibrate instead of zeroing locally.",
    )
    send.add_argument(
        "--orientation-source",
        choices=list(ORIENTATION_SOURCES),
        default="toycv",
        help="Device attitude backend: Tk sliders, sensor bridge UDP stream, or none.",
    )
    send.add_argument(
        "--bridge-host",
        type=str,
        default="127.0.0.1",
        help="Host for the sensor bridge UDP attitude stream.",
    )
    send.add_argument(
        "--bridge-port",
        type=int,
        default=24568,
        help="Port for the sensor bridge UDP attitude stream.",
    )

    aim = ap.add_argument_group("aim")
    aim.add_argument("--tick-hz", type=float, default=60.0, help="Receiver consumer tick rate.")
    aim.add_argument(
        "--dead-zone-deg",
        type=float,
        default=0.5,
        help="Angles with magnitude at or below this are treated as zero.",
    )
    aim.add_argument(
        "--max-tilt-deg",
        type=float,
        default=30.0,
        help="Tilt that maps to the edge of the aim range.",
    )
    aim.add_argument("--sensitivity", type=float, default=1.5, help="Gain after normalization.")
    aim.add_argument(
        "--no-curve",
        action="store_true",
        help="Disable the power response curve (linear response).",
    )
    aim.add_argument("--curve-power", type=float, default=2.0, help="Response curve exponent.")
    aim.add_argument(
        "--vertical-range",
        type=float,
        default=0.85,
        help="Fraction of half screen height reachable by pitch.",
    )
    aim.add_argument(
        "--horizontal-range",
        type=float,
        default=0.85,
        help="Fraction of half screen width reachable by yaw.",
    )
    aim.add_argument(
        "--smooth-rate",
        type=float,
        default=15.0,
        help="Crosshair smoothing rate; the smoothing time is 1/rate seconds.",
    )
    aim.add_argument("--screen-width", type=int, default=1920, help="Consumer surface width (px).")
    aim.add_argument("--screen-height", type=int, default=1080, help="Consumer surface height (px).")

    ap.add_argument(
        "--display-hz",
        type=float,
        default=5.0,
        help="Display refresh rate in Hz (0 disables display updates).",
    )
    ap.add_argument(
        "--cli-output",
        choices=["live", "scroll"],
        default="live",
        help="TUI output mode: in-place live panel or scrolling logs.",
    )
    ap.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default="info",
        help="Global log level.",
    )

    return ap


def validate_config(cfg: AppConfig) -> None:
    if cfg.role not in ROLES:
        raise ValueError(f"role must be one of {'|'.join(ROLES)}, got {cfg.role}")
    if not cfg.listen_host.strip():
        raise ValueError("--listen-host must be non-empty")
    validate_port(cfg.listen_port, "--listen-port", allow_zero=True)
    validate_port(cfg.discovery_port, "--discovery-port")
    if not cfg.discovery_token:
        raise ValueError("--discovery-token must be non-empty")
    if cfg.discovery_timeout_s <= 0.0:
        raise ValueError(f"--discovery-timeout-s must be > 0, got {cfg.discovery_timeout_s}")
    if cfg.discovery_attempts <= 0:
        raise ValueError(f"--discovery-attempts must be > 0, got {cfg.discovery_attempts}")
    if cfg.server:
        try:
            parse_connection_payload(cfg.server)
        except PayloadError as exc:
            raise ValueError(f"--server is not a valid connection payload: {exc}") from exc
    if not math.isfinite(cfg.send_hz) or cfg.send_hz <= 0.0:
        raise ValueError(f"--send-hz must be > 0, got {cfg.send_hz}")
    if cfg.orientation_source not in ORIENTATION_SOURCES:
        raise ValueError(
            f"--orientation-source must be one of toycv|bridge|none, got {cfg.orientation_source}"
        )
    if not cfg.bridge_host.strip():
        raise ValueError("--bridge-host must be non-empty")
    validate_port(cfg.bridge_port, "--bridge-port")
    if math.isnan(cfg.timeout_s):
        raise ValueError("--timeout-s must be a number")
    if not math.isfinite(cfg.poll_s) or cfg.poll_s <= 0.0:
        raise ValueError(f"--poll-s must be > 0, got {cfg.poll_s}")
    if not math.isfinite(cfg.tick_hz) or cfg.tick_hz <= 0.0:
        raise ValueError(f"--tick-hz must be > 0, got {cfg.tick_hz}")
    validate_aim_config(cfg.aim_config())
    if not math.isfinite(cfg.smooth_rate) or cfg.smooth_rate <= 0.0:
        raise ValueError(f"--smooth-rate must be > 0, got {cfg.smooth_rate}")
    if cfg.screen_width <= 0:
        raise ValueError(f"--screen-width must be > 0, got {cfg.screen_width}")
    if cfg.screen_height <= 0:
        raise ValueError(f"--screen-height must be > 0, got {cfg.screen_height}")
    if cfg.display_hz < 0.0:
        raise ValueError(f"--display-hz must be >= 0, got {cfg.display_hz}")
    if cfg.cli_output not in {"live", "scroll"}:
        raise ValueError(f"--cli-output must be live|scroll, got {cfg.cli_output}")
    if cfg.log_every_n_packets < 0:
        raise ValueError(f"--log-every-n-packets must be >= 0, got {cfg.log_every_n_packets}")
    if cfg.log_level not in {"debug", "info", "warning", "error"}:
        raise ValueError(f"--log-level must be one of debug|info|warning|error, got {cfg.log_level}")


def parse_args(argv=None) -> AppConfig:
    bootstrap = argparse.ArgumentParser(add_help=False)
    bootstrap.add_argument("--config", type=str, default="")
    bootstrap_ns, _ = bootstrap.parse_known_args(argv)

    yaml_cfg: dict[str, Any] = {}
    yaml_error: Optional[str] = None
    if bootstrap_ns.config:
        try:
            yaml_cfg = _load_yaml_config(bootstrap_ns.config)
        except ValueError as exc:
            yaml_error = str(exc)

    ap = build_arg_parser()
    if yaml_error is not None:
        ap.error(yaml_error)
    if yaml_cfg:
        ap.set_defaults(**_yaml_defaults_to_argparse_defaults(yaml_cfg))
    args = ap.parse_args(argv)

    cfg = AppConfig(
        role=args.role,
        listen_host=args.listen_host,
        listen_port=args.listen_port,
        discovery_port=args.discovery_port,
        discovery_token=args.discovery_token,
        discovery_timeout_s=float(args.discovery_timeout_s),
        discovery_attempts=args.discovery_attempts,
        server=args.server,
        send_hz=float(args.send_hz),
        legacy_wire=bool(args.legacy_wire),
        remote_calibrate=bool(args.remote_calibrate),
        orientation_source=args.orientation_source,
        bridge_host=args.bridge_host,
        bridge_port=args.bridge_port,
        timeout_s=float(args.timeout_s),
        poll_s=float(args.poll_s),
        tick_hz=float(args.tick_hz),
        dead_zone_deg=float(args.dead_zone_deg),
        max_tilt_deg=float(args.max_tilt_deg),
        sensitivity=float(args.sensitivity),
        curve=not args.no_curve,
        curve_power=float(args.curve_power),
        vertical_range=float(args.vertical_range),
        horizontal_range=float(args.horizontal_range),
        smooth_rate=float(args.smooth_rate),
        screen_width=args.screen_width,
        screen_height=args.screen_height,
        display_hz=float(args.display_hz),
        cli_output=args.cli_output,
        log_every_n_packets=args.log_every_n_packets,
        log_level=args.log_level,
    )
    try:
        validate_config(cfg)
    except ValueError as exc:
        ap.error(str(exc))
    return cfg
