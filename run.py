#!/usr/bin/env python3
"""
Intensity Control - Dial/Slider Intensity Surface

A touch-style control surface that maps drag gestures to an intensity level,
gives tick feedback on every level crossing and drives an actuator bridge.
"""

import argparse
import cProfile
import sys
import time

from config import Config, ViewMode
from config_persistence import load_config
from logging_utils import log_event, set_log_level


def apply_cli_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Command-line flags win over the config file."""
    if args.bridge:
        config.bridge.backend = args.bridge
    if args.host:
        config.bridge.host = args.host
    if args.port is not None:
        config.bridge.port = args.port
    if args.log_level:
        config.log_level = args.log_level
    if args.no_thud:
        config.feedback.include_thud = False
    if args.no_audio:
        config.feedback.audio_enabled = False
    if args.mode:
        config.default_mode = ViewMode.DIAL if args.mode == "dial" else ViewMode.TRACK
    return config


def run_app(app_argv: list[str], config: Config) -> int:
    t_pyqt = time.perf_counter()
    from PyQt6.QtWidgets import QApplication

    print(
        f"[Startup] GUI framework loaded (+{(time.perf_counter() - t_pyqt) * 1000:.0f} ms). "
        "Initializing application...",
        flush=True,
    )

    app = QApplication(app_argv)
    app.setStyle("Fusion")

    print("[Startup] Loading control surface modules...", flush=True)
    t_main = time.perf_counter()

    # Import numpy/scipy-backed modules after the QApplication exists
    from main import IntensityControlWindow, SignalBridge, pulse_frame_forwarder
    from runtime_wiring import build_runtime

    print(
        f"[Startup] Loaded main module (+{(time.perf_counter() - t_main) * 1000:.0f} ms)",
        flush=True,
    )

    signals = SignalBridge()
    runtime = build_runtime(
        config,
        status_callback=signals.status_changed.emit,
        telemetry_callback=signals.telemetry_changed.emit,
        pulse_callback=pulse_frame_forwarder(signals),
    )

    print("[Startup] Creating main window...", flush=True)
    window = IntensityControlWindow(runtime, signals)
    runtime.adapter.start()

    print("\nInitialization complete. Starting GUI...\n", flush=True)
    window.show()

    return app.exec()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run Intensity Control")
    parser.add_argument("--config", default=None, help="Path to a config JSON file")
    parser.add_argument("--bridge", choices=["simulated", "tcp"], default=None,
                        help="Actuator bridge backend")
    parser.add_argument("--host", default=None, help="TCP bridge host")
    parser.add_argument("--port", type=int, default=None, help="TCP bridge port")
    parser.add_argument("--log-level", default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        type=str.upper, help="Logging level")
    parser.add_argument("--no-thud", action="store_true", help="Use the snap-only click")
    parser.add_argument("--no-audio", action="store_true", help="Disable click playback")
    parser.add_argument("--mode", choices=["dial", "track"], default=None, help="Initial surface")
    parser.add_argument(
        "--profile",
        action="store_true",
        help="Enable cProfile and save stats to --profile-out",
    )
    parser.add_argument(
        "--profile-out",
        default="profile.prof",
        help="Path to save cProfile stats (default: profile.prof)",
    )
    return parser


def main() -> None:
    args = build_parser().parse_args()

    config = apply_cli_overrides(load_config(args.config), args)
    set_log_level(config.log_level)
    log_event("INFO", "Startup", "Configuration ready", bridge=config.bridge.backend,
              mode=config.default_mode.name, thud=config.feedback.include_thud)

    # Keep Qt argument list clean; avoid passing our flags downstream
    app_argv = [sys.argv[0]]

    if args.profile:
        profiler = cProfile.Profile()
        profiler.enable()
        exit_code = run_app(app_argv, config)
        profiler.disable()
        profiler.dump_stats(args.profile_out)
    else:
        exit_code = run_app(app_argv, config)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
