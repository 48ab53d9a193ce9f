#!/usr/bin/env python3
"""Command-line interface for Local Transcribe.

This is the main entry point for the transcribe-srt command-line tool.
"""
from __future__ import annotations

import argparse
import dataclasses
import json
import os
import tempfile
import time
import traceback
from pathlib import Path
from typing import List, Optional

from .audio import convert_to_compatible_audio
from .cancellation import CancellationToken
from .config import TranscriberConfig, apply_overrides, load_config_file
from .engine import SegmentCallbackData
from .errors import TranscribeError, TranscriptionCancelled
from .logging_utils import die, format_duration_ms, log, progress_done, progress_line
from .models import TOOL_VERSION, ProgressStatus, Subtitle
from .subtitle import (
    WRITERS,
    convert_subtitles_to_simplified,
    convert_traditional_to_simplified_chinese,
    subtitle_from_callback,
    subtitle_to_srt,
    transcription_to_subtitles,
)
from .system import file_size_or_zero
from .transcriber import Transcriber, save_silero_vad_model
from .vad import trim_start_silent_duration
from .wav import is_compatible_file, read_file


# ============================================================
# Span Tightening
# ============================================================

def tighten_subtitle_starts(
    subs: List[Subtitle],
    wav_path: str,
    threshold: float,
    cancel: CancellationToken,
) -> Optional[List[Subtitle]]:
    """Move each caption start to the detected speech onset.

    Returns:
        Adjusted captions, or None if cancelled
    """
    audio = read_file(wav_path)
    spans = [(sb.start_timestamp_ms, sb.end_timestamp_ms) for sb in subs]
    tightened, status = trim_start_silent_duration(audio, spans, threshold, cancel)
    if status is ProgressStatus.CANCELLED:
        return None
    return [
        dataclasses.replace(sb, start_timestamp_ms=start, end_timestamp_ms=end)
        for sb, (start, end) in zip(subs, tightened)
    ]


# ============================================================
# Run one file
# ============================================================

def run_one(
    *,
    input_path: Path,
    output_path: Path,
    args: argparse.Namespace,
    cfg: TranscriberConfig,
    cancel: CancellationToken,
    quiet: bool,
    show_progress: bool,
) -> int:
    """Transcribe a single media file and write subtitles.

    Args:
        input_path: Path to input media file
        output_path: Path for the subtitle file
        args: Command-line arguments namespace
        cfg: Resolved transcriber configuration
        cancel: Cancellation token shared with the converter and engine
        quiet: Suppress non-error output
        show_progress: Show conversion/transcription progress

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    started = time.time()
    tmp_wav: Optional[str] = None

    try:
        log(f"Input: {input_path} ({file_size_or_zero(str(input_path))} bytes)", quiet=quiet)
        log(f"Output: {output_path}", quiet=quiet)

        wav_path = str(input_path)
        if is_compatible_file(input_path):
            log("1/4 Input is already 16 kHz mono 16-bit WAV", quiet=quiet)
        else:
            log("1/4 Converting audio with ffmpeg...", quiet=quiet)
            fd, tmp_wav = tempfile.mkstemp(prefix="transcribe_", suffix=".wav", dir=args.tmpdir)
            os.close(fd)
            status = convert_to_compatible_audio(
                input_path,
                tmp_wav,
                cancel,
                lambda pct: progress_line("convert", pct, enabled=show_progress, quiet=quiet),
            )
            progress_done(enabled=show_progress, quiet=quiet)
            if status is ProgressStatus.CANCELLED:
                return die("Cancelled.", 130)
            wav_path = tmp_wav

        log("2/4 Loading model...", quiet=quiet)
        transcriber = Transcriber(cfg)

        log("3/4 Transcribing...", quiet=quiet)

        def on_progress(pct: int) -> None:
            progress_line("whisper", pct, enabled=show_progress, quiet=quiet)

        def on_segment(data: SegmentCallbackData) -> None:
            if not args.live:
                return
            contents = subtitle_to_srt(subtitle_from_callback(data))
            if args.t2s:
                contents = convert_traditional_to_simplified_chinese(contents)
            log(f"\n{contents}", quiet=quiet)

        result = transcriber.transcribe_file(
            wav_path,
            progress_cb=on_progress,
            segment_cb=on_segment,
            abort_cb=cancel.as_abort_callback(),
        )
        progress_done(enabled=show_progress, quiet=quiet)
        log(
            f"   Transcription complete: {len(result.segments)} segments in "
            f"{format_duration_ms(result.processing_time_ms)} "
            f"(rtf {result.real_time_factor():.2f}, confidence {result.average_confidence():.2f})",
            quiet=quiet,
        )

        if args.min_confidence is not None:
            result = result.filter_by_confidence(args.min_confidence)

        log("4/4 Writing subtitles...", quiet=quiet)
        subs = transcription_to_subtitles(result)
        if args.tighten_starts:
            tightened = tighten_subtitle_starts(subs, wav_path, args.vad_threshold, cancel)
            if tightened is None:
                return die("Cancelled.", 130)
            subs = tightened
        if args.t2s:
            subs = convert_subtitles_to_simplified(subs)

        WRITERS[args.format](subs, output_path)

        log(f"Done: {output_path} (total {format_duration_ms(int((time.time() - started) * 1000))})", quiet=quiet)
        return 0

    except TranscriptionCancelled:
        progress_done(enabled=show_progress, quiet=quiet)
        return die("Cancelled.", 130)

    finally:
        if tmp_wav and not args.keep_wav and os.path.exists(tmp_wav):
            try:
                os.remove(tmp_wav)
            except OSError:
                pass


# ============================================================
# CLI
# ============================================================

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Local subtitle generator (faster-whisper + ffmpeg)")
    ap.add_argument("input", nargs="?", help="Media file to transcribe")
    ap.add_argument("-o", "--output", default=None, help="Output path (defaults to the input name with the format's extension).")
    ap.add_argument("--format", choices=sorted(WRITERS), default="srt", help="Output format")

    ap.add_argument("--config", default=None, help="JSON config file. CLI args override config.")
    ap.add_argument("--model", default=None, help="Path to a faster-whisper model directory.")
    ap.add_argument("--vad-model", default=None, help="Enable engine-side VAD; the model file must exist.")
    ap.add_argument("--language", default=None, help="Language code (e.g., en, zh). If omitted, auto-detect.")
    ap.add_argument("--translate", action="store_true", help="Translate to English instead of transcribing.")
    ap.add_argument("--threads", type=int, default=None)
    ap.add_argument("--temperature", type=float, default=None)
    ap.add_argument("--initial-prompt", default=None)
    ap.add_argument("--device", choices=["auto", "cpu", "cuda"], default=None, help="auto/cpu/cuda")
    ap.add_argument("--compute-type", default=None, help="Override the device's default compute type.")

    ap.add_argument("--min-confidence", type=float, default=None, help="Drop segments below this confidence (0-1).")
    ap.add_argument("--tighten-starts", action="store_true", help="Move caption starts to the detected speech onset.")
    ap.add_argument("--vad-threshold", type=float, default=0.01, help="RMS threshold for --tighten-starts.")
    ap.add_argument("--t2s", action="store_true", help="Convert Traditional Chinese captions to Simplified.")
    ap.add_argument("--live", action="store_true", help="Print captions as they are recognized.")

    ap.add_argument("--overwrite", action="store_true", help="Overwrite output if it exists")
    ap.add_argument("--keep-wav", action="store_true", help="Do not delete the temporary WAV file")
    ap.add_argument("--tmpdir", default=None, help="Directory for temporary WAV (defaults to system temp)")
    ap.add_argument("--save-vad-model", default=None, help="Write the bundled Silero VAD model to this path and exit.")

    ap.add_argument("--quiet", action="store_true")
    ap.add_argument("--no-progress", action="store_true")
    ap.add_argument("--debug", action="store_true")
    ap.add_argument("--dry-run", action="store_true", help="Validate settings and show them, but do not transcribe.")
    ap.add_argument("--version", action="store_true")
    return ap


def resolve_config(args: argparse.Namespace) -> TranscriberConfig:
    """Build config: defaults -> config file -> CLI overrides."""
    cfg = apply_overrides(TranscriberConfig(), load_config_file(args.config))

    overrides = {
        "model_path": args.model,
        "vad_model_path": args.vad_model,
        "language": args.language,
        "n_threads": args.threads,
        "temperature": args.temperature,
        "initial_prompt": args.initial_prompt,
        "device": args.device,
        "compute_type": args.compute_type,
    }
    cfg = apply_overrides(cfg, {k: v for k, v in overrides.items() if v is not None})
    if args.translate:
        cfg = cfg.with_translate(True)
    if args.debug:
        cfg = cfg.with_debug_mode(True)
    return cfg


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the transcribe-srt command-line tool.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    args = build_parser().parse_args(argv)

    if args.version:
        print(TOOL_VERSION)
        return 0

    if args.save_vad_model:
        try:
            dest = save_silero_vad_model(args.save_vad_model)
        except TranscribeError as e:
            return die(str(e), 1)
        log(f"Saved VAD model: {dest}", quiet=args.quiet)
        return 0

    quiet = args.quiet
    show_progress = not args.no_progress

    if not args.input:
        return die("No input file provided.", 2)
    input_path = Path(args.input)
    if not input_path.is_file():
        return die(f"Input file not found: {input_path}", 2)

    output_path = Path(args.output) if args.output else input_path.with_suffix(f".{args.format}")
    if output_path.exists() and not args.overwrite:
        return die(f"Output already exists: {output_path} (use --overwrite)", 2)

    try:
        cfg = resolve_config(args)
        cfg.validate()
    except (OSError, TranscribeError) as e:
        return die(str(e), 2)

    if args.dry_run:
        log("Resolved config:", quiet=quiet)
        log(json.dumps(dataclasses.asdict(cfg), indent=2), quiet=quiet)
        return 0

    cancel = CancellationToken()
    try:
        return run_one(
            input_path=input_path,
            output_path=output_path,
            args=args,
            cfg=cfg,
            cancel=cancel,
            quiet=quiet,
            show_progress=show_progress,
        )
    except KeyboardInterrupt:
        cancel.cancel()
        return die("Interrupted by user.", 130)
    except TranscribeError as e:
        if args.debug:
            traceback.print_exc()
        return die(f"{input_path}: {e}", 1)


if __name__ == "__main__":
    raise SystemExit(main())
