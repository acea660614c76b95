from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from .config import PamSettings, cli_overrides_from_args
from .ffmpeg_check import probe_ffmpeg, probe_ffprobe, resolve_tools, validate_custom_ffmpeg
from .formatting import STAGE_MESSAGES, format_file_size, format_progress, format_time
from .logging import bind_run, configure_logging
from .merger import merge, options_from_settings
from .models import (
    ConflictsDetected,
    MergeComplete,
    MergeCompleteWithWarning,
    MergeFailed,
    MergeRequest,
    OutputFormat,
    ProgressEvent,
)
from .operation import OperationContext
from .paths import default_output_path
from .validator import scan_files

EXIT_OK = 0
EXIT_MERGE_FAILED = 1
EXIT_CONFLICTS = 2
EXIT_PREFLIGHT_FAILED = 3
EXIT_CANCELLED = 130

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def cmd_preflight(cfg: PamSettings) -> int:
    if cfg.ffmpeg_path:
        st = validate_custom_ffmpeg(cfg.ffmpeg_path)
    else:
        st = probe_ffmpeg()
    if not st.available:
        logger.error("ffmpeg: NOT FOUND")
        if st.error:
            logger.error(st.error)
        return EXIT_PREFLIGHT_FAILED
    logger.info(f"ffmpeg: {st.ffmpeg_path}")
    logger.info(f"version: {st.ffmpeg_version}")
    logger.info(f"libmp3lame: {'YES' if st.has_libmp3lame else 'NO'}")
    logger.info(f"aac: {'YES' if st.has_aac else 'NO'}")

    tools = resolve_tools(cfg.ffmpeg_path, cfg.ffprobe_path)
    st_probe = probe_ffprobe(tools.ffprobe)
    logger.info(f"ffprobe: {'FOUND' if st_probe.available else 'NOT FOUND'}")
    if st_probe.available:
        logger.info(f"ffprobe path: {st_probe.ffprobe_path}")
    elif st_probe.error:
        logger.error(st_probe.error)
    return EXIT_OK if st_probe.available else EXIT_PREFLIGHT_FAILED


def cmd_scan(cfg: PamSettings, files: list[str]) -> int:
    tools = resolve_tools(cfg.ffmpeg_path, cfg.ffprobe_path)
    rows = scan_files(files, timeout=cfg.probe_timeout, max_workers=cfg.probe_workers, ffprobe=tools.ffprobe)
    bad = 0
    for row in rows:
        name = Path(row["path"]).name
        if row.get("error"):
            bad += 1
            print(f"{name}: ERROR ({row.get('reason') or 'unreadable'})")
            continue
        m = row["metadata"]
        print(
            f"{name}: {m['codec']} {m['sample_rate']}Hz {m['channels']} {m['bitrate']} "
            f"{format_time(m['duration'])} {format_file_size(m['size'])}"
        )
    return EXIT_OK if bad == 0 else EXIT_MERGE_FAILED


def cmd_merge(cfg: PamSettings, files: list[str], output: Optional[str]) -> int:
    opts = options_from_settings(cfg)
    out = Path(output).expanduser() if output else default_output_path(files, opts.output_format)
    request = MergeRequest(files=[Path(f) for f in files], output_path=out, options=opts)
    ctx = OperationContext()

    def _on_stop(signum: int, frame: Any) -> None:
        ctx.cancel()

    # The merge unwinds through its own cleanup; atexit never runs on SIGTERM
    previous: dict[int, Any] = {}
    if threading.current_thread() is threading.main_thread():
        for sig in STOP_SIGNALS:
            previous[sig] = signal.signal(sig, _on_stop)

    last_stage = None
    try:
        for event in merge(request, ctx, cfg):
            if isinstance(event, ProgressEvent):
                snap = event.snapshot
                if snap.stage != last_stage:
                    last_stage = snap.stage
                    logger.info(STAGE_MESSAGES[snap.stage])
                print("\r" + format_progress(snap), end="", file=sys.stderr, flush=True)
            elif isinstance(event, ConflictsDetected):
                print(file=sys.stderr)
                logger.error(f"{len(event.conflicts)} conflict(s); target sample rate {event.target_sample_rate}Hz")
                for c in event.conflicts:
                    logger.error(f"  {c.file_name}: {c.reason.value} ({c.details})")
                logger.error("Re-run with --auto-fix to skip broken files and resample mismatches")
                return EXIT_CONFLICTS
            elif isinstance(event, MergeCompleteWithWarning):
                print(file=sys.stderr)
                logger.warning(f"Skipped: {', '.join(event.skipped)}")
                logger.info(f"Wrote: {event.output_path}")
                return EXIT_OK
            elif isinstance(event, MergeComplete):
                print(file=sys.stderr)
                logger.info(f"Wrote: {event.output_path}")
                return EXIT_OK
            elif isinstance(event, MergeFailed):
                print(file=sys.stderr)
                logger.error(f"Merge failed ({event.kind.value}): {event.message}")
                return EXIT_MERGE_FAILED
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    print(file=sys.stderr)
    logger.warning("Merge cancelled")
    return EXIT_CANCELLED


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="python-audio-merger")
    p.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ~/.config/python-audio-merger/config.toml)",
    )
    p.add_argument(
        "--write-config",
        action="store_true",
        help="Write current effective settings to the config file and exit",
    )
    p.add_argument("--log-level", default=None, help="Console log level (DEBUG, INFO, WARNING, ERROR)")
    p.add_argument("--log-json", dest="log_json", default=None, help="Path to write JSON lines log (structured events)")
    p.add_argument("--ffmpeg", dest="ffmpeg_path", default=None, help="Custom ffmpeg binary")
    p.add_argument("--ffprobe", dest="ffprobe_path", default=None, help="Custom ffprobe binary")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("preflight", help="Check ffmpeg/ffprobe availability")

    p_scan = sub.add_parser("scan", help="Show codec, rate, duration and size of audio files")
    p_scan.add_argument("files", nargs="+", help="Audio files to inspect")

    p_merge = sub.add_parser("merge", help="Merge audio files, in the given order, into one MP3 or M4B")
    p_merge.add_argument("files", nargs="+", help="Input files in chapter order")
    p_merge.add_argument("-o", "--output", default=None, help="Output path (default: '[MERGED] <name>' beside the first input)")
    p_merge.add_argument(
        "--format",
        dest="output_format",
        choices=[f.value for f in OutputFormat],
        type=str.upper,
        default=None,
        help="Output container (default from settings: MP3)",
    )
    p_merge.add_argument("--bitrate", default=None, help="Bitrate when re-encoding, e.g. 64k (default from settings)")
    p_merge.add_argument(
        "--custom-bitrate",
        dest="use_custom_bitrate",
        action="store_const",
        const=True,
        default=None,
        help="Re-encode at --bitrate instead of stream copying",
    )
    p_merge.add_argument(
        "--auto-fix",
        dest="auto_fix",
        action="store_const",
        const=True,
        default=None,
        help="Skip corrupt/empty files and resample mismatched sample rates",
    )
    p_merge.add_argument("--probe-timeout", dest="probe_timeout", type=float, default=None, help="Seconds per probe")
    p_merge.add_argument("--temp-dir", dest="temp_dir", default=None, help="Directory for temporary files")

    args = p.parse_args(argv)
    overrides = cli_overrides_from_args(args)
    cfg = PamSettings.load(config_path=Path(args.config_path).expanduser() if args.config_path else None, overrides=overrides)

    if args.write_config:
        written = cfg.write(Path(args.config_path).expanduser() if args.config_path else None)
        print(f"Config written to: {written}")
        return EXIT_OK

    configure_logging(cfg.log_level, cfg.log_json)
    bind_run()
    if args.cmd == "preflight":
        return cmd_preflight(cfg)
    if args.cmd == "scan":
        return cmd_scan(cfg, args.files)
    if args.cmd == "merge":
        return cmd_merge(cfg, args.files, args.output)
    p.error("unknown command")
    return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
