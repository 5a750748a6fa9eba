"""
Gyro aim demo:
- Sender streams a handheld device attitude (Tk sliders or a sensor bridge)
  to a receiver over UDP at a fixed rate, plus calibrate/shoot/restart commands
- Receiver decodes the newest orientation, tracks connection liveness, and
  maps pitch/yaw onto a smoothed 2D crosshair position
- LAN discovery lets a sender find a receiver without typing an address
- Display provider renders connection status and aim state in the terminal

Deps:
  pip install numpy pyyaml
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from .config import parse_args
from .control.connection import ConnectionTracker
from .control.controller import AimController
from .control.dispatcher import MainThreadDispatcher
from .control.display_provider import NullDisplayProvider, TuiDisplayProvider
from .control.orientation_source import UnavailableOrientationSource
from .control.signal_pipeline import SignalPipeline
from .control.sinks import LoggingAimSink
from .net.discovery import DiscoveryClient, DiscoveryServer
from .net.endpoint import ServiceAddress, build_connection_payload, guess_local_ip, parse_connection_payload
from .net.receiver import OrientationReceiver
from .net.sender import OrientationSender
from .net.wire import MessageKind

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_display_provider(cfg, set_status=None):
    if cfg.display_hz <= 0.0:
        return NullDisplayProvider()
    return TuiDisplayProvider(cli_output=cfg.cli_output, set_status=set_status)


def build_orientation_source(cfg):
    if cfg.orientation_source == "none":
        logger.warning("[SOURCE] orientation-source=none, orientation sends are disabled")
        return UnavailableOrientationSource()

    try:
        if cfg.orientation_source == "bridge":
            from .orientation_sources.sensor_bridge import SensorBridgeOrientationSource

            return SensorBridgeOrientationSource(
                bridge_host=cfg.bridge_host,
                bridge_port=cfg.bridge_port,
            )

        if cfg.orientation_source == "toycv":
            from .orientation_sources.toycv_tk import ToyCvTkOrientationSource

            return ToyCvTkOrientationSource(title="GyroAim - ToyCV Device Attitude")
        raise RuntimeError(f"Unsupported orientation source: {cfg.orientation_source}")
    except (ImportError, RuntimeError, OSError):
        logger.exception("[SOURCE] failed to init requested orientation source")
        logger.warning("[SOURCE] fallback to unavailable source (no gyroscope)")
        return UnavailableOrientationSource()


def resolve_server(cfg) -> Optional[ServiceAddress]:
    if cfg.server:
        address = parse_connection_payload(cfg.server)
        logger.info("[APP] using configured receiver %s", address)
        return address

    client = DiscoveryClient(discovery_port=cfg.discovery_port, token=cfg.discovery_token)
    return client.discover_with_retries(
        attempts=cfg.discovery_attempts, timeout_s=cfg.discovery_timeout_s
    )


def run_receiver(cfg) -> int:
    tracker = ConnectionTracker(timeout_s=cfg.timeout_s)
    receiver = OrientationReceiver(
        tracker=tracker,
        host=cfg.listen_host,
        log_every_n_packets=cfg.log_every_n_packets,
    )
    controller = AimController(
        receiver=receiver,
        tracker=tracker,
        pipeline=SignalPipeline(cfg.aim_config()),
        sink=LoggingAimSink(),
        dispatcher=MainThreadDispatcher(),
        display_provider=build_display_provider(cfg),
        screen_width=cfg.screen_width,
        screen_height=cfg.screen_height,
        smooth_rate=cfg.smooth_rate,
        poll_s=cfg.poll_s,
        display_hz=cfg.display_hz,
    )

    port = receiver.listen(cfg.listen_port)
    discovery: Optional[DiscoveryServer] = DiscoveryServer(
        discovery_port=cfg.discovery_port,
        service_port=port,
        host=cfg.listen_host,
        token=cfg.discovery_token,
    )
    try:
        discovery.start()
    except OSError:
        logger.warning("[APP] discovery disabled; senders need --server")
        discovery = None

    logger.info("[APP] connection payload: %s", build_connection_payload(guess_local_ip(), port))

    interval = 1.0 / cfg.tick_hz
    try:
        while True:
            controller.tick()
            time.sleep(interval)
    except KeyboardInterrupt:
        logger.info("[APP] interrupted")
    finally:
        if discovery is not None:
            discovery.stop()
        controller.disconnect()
        controller.close()
    return 0


def run_sender(cfg) -> int:
    address = resolve_server(cfg)
    if address is None:
        logger.error("[APP] no receiver found; pass --server ip:port")
        return 1

    source = build_orientation_source(cfg)
    sender = OrientationSender(source, send_hz=cfg.send_hz, legacy_wire=cfg.legacy_wire)
    sender.set_destination(address.host, address.port)

    def handle_command(kind: MessageKind) -> None:
        if kind == MessageKind.CALIBRATE and not cfg.remote_calibrate:
            sender.calibrate()
            return
        sender.send_command(kind)

    source.set_command_handler(handle_command)

    last_status_t = 0.0

    def on_tick() -> None:
        nonlocal last_status_t
        now = time.monotonic()
        if now - last_status_t < 0.5:
            return
        last_status_t = now
        stats = sender.stats
        source.set_status(
            f"receiver      = {address}\n"
            f"sent          = {stats['sent']}\n"
            f"send errors   = {stats['send_errors']}\n"
            f"wire          = {'legacy 16-byte' if cfg.legacy_wire else 'tagged 17-byte'}"
        )

    sender.start()
    try:
        source.run(on_tick)
    except KeyboardInterrupt:
        logger.info("[APP] interrupted")
    finally:
        try:
            sender.stop()
        finally:
            source.close()
    return 0


def run_discover(cfg) -> int:
    client = DiscoveryClient(discovery_port=cfg.discovery_port, token=cfg.discovery_token)
    found = client.discover_with_retries(
        attempts=cfg.discovery_attempts, timeout_s=cfg.discovery_timeout_s
    )
    if found is None:
        print("no receiver found")
        return 1
    print(found)
    print(build_connection_payload(found.host, found.port))
    return 0


def main(argv=None) -> int:
    cfg = parse_args(argv)
    configure_logging(cfg.log_level)

    if cfg.role == "receiver":
        return run_receiver(cfg)
    if cfg.role == "sender":
        return run_sender(cfg)
    if cfg.role == "discover":
        return run_discover(cfg)
    raise RuntimeError(f"Unsupported role: {cfg.role}")


if __name__ == "__main__":
    raise SystemExit(main())
