# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Debug tool for replaying a transcript through the tracker.

This CLI tool takes a transcript file and a script file, feeds the
transcript to a ScriptTracker as recognition events, and outputs detailed
tracking information to help debug tracking issues.

Transcript lines may be prefixed with ``partial:`` or ``final:`` to say
how the recognizer delivered them; unprefixed lines are final results.
"""

import argparse
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal, TextIO

from .highlight import HighlightCommand, RollbackCommand, WordState, command_to_dict
from .tracker import ScriptTracker, TrackerSettings, TrackingMode

EventType = Literal["ROLLBACK", "FORWARD_JUMP", "advance", "no_change"]

# Cursor moves larger than this are reported as jumps
JUMP_THRESHOLD: int = 5


@dataclass
class TranscriptLine:
    """One recognition event read from a transcript file."""
    text: str
    is_final: bool = True


@dataclass
class TrackingEvent:
    """A single tracking event during transcript replay."""
    transcript_line: int
    transcript: str
    is_final: bool
    position_before: int
    position_after: int
    script_word: str
    event_type: EventType
    commands: list[HighlightCommand]


def parse_transcript_line(line: str) -> TranscriptLine:
    """Split an optional ``partial:``/``final:`` prefix off a transcript line."""
    head, sep, rest = line.partition(':')
    if sep:
        kind = head.strip().lower()
        if kind in ("partial", "interim"):
            return TranscriptLine(rest.strip(), is_final=False)
        if kind == "final":
            return TranscriptLine(rest.strip(), is_final=True)
    return TranscriptLine(line.strip(), is_final=True)


def load_transcript(path: Path) -> list[TranscriptLine]:
    """Load transcript file and extract transcript lines.

    Filters out metadata lines (starting with '===').
    """
    lines: list[TranscriptLine] = []
    with open(path, encoding='utf-8') as f:
        for line in f:
            stripped_line: str = line.strip()
            # Skip metadata lines and empty lines
            if stripped_line.startswith('===') or not stripped_line:
                continue
            lines.append(parse_transcript_line(stripped_line))
    return lines


def load_script(path: Path) -> str:
    """Load script file content."""
    with open(path, encoding='utf-8') as f:
        return f.read()


def expand_word_by_word(lines: list[TranscriptLine]) -> list[TranscriptLine]:
    """Simulate a streaming recognizer: each line grows one word at a time
    as interim results and is then delivered as a final result."""
    expanded: list[TranscriptLine] = []
    for line in lines:
        words = line.text.split()
        for n in range(1, len(words)):
            expanded.append(TranscriptLine(' '.join(words[:n]), is_final=False))
        expanded.append(line)
    return expanded


def classify_move(before: int, after: int, commands: list[HighlightCommand]) -> EventType:
    """Name the cursor movement caused by one event."""
    if any(isinstance(c, RollbackCommand) for c in commands) or after < before:
        return "ROLLBACK"
    if after > before + JUMP_THRESHOLD:
        return "FORWARD_JUMP"
    if after > before:
        return "advance"
    return "no_change"


RULE: str = "=" * 80
THIN_RULE: str = "-" * 40


def _write_header(output: TextIO, words: list[str], mode: TrackingMode,
                  event_count: int) -> None:
    output.write(f"{RULE}\nTRANSCRIPT DEBUG LOG\n")
    output.write(f"Generated: {datetime.now().isoformat()}\n")
    output.write(f"Mode: {mode.value}\n")
    output.write(f"Script words: {len(words)}\n")
    output.write(f"Transcript events: {event_count}\n{RULE}\n\n")
    output.write(f"SCRIPT WORDS (normalized):\n{THIN_RULE}\n")
    output.writelines(f"  [{i:4d}] {word}\n" for i, word in enumerate(words))
    output.write(f"\n{RULE}\n\nTRACKING LOG:\n{THIN_RULE}\n")


def _write_event(output: TextIO, event: TrackingEvent, verbose: bool) -> None:
    kind = "final" if event.is_final else "partial"
    shown = event.transcript[:60] + ('...' if len(event.transcript) > 60 else '')
    output.write(f"\n--- Event {event.transcript_line} ({kind}): \"{shown}\" ---\n")

    moved = f"      Position: {event.position_before} -> {event.position_after}\n"
    if event.event_type == "ROLLBACK":
        output.write("  *** ROLLBACK ***\n" + moved)
    elif event.event_type == "FORWARD_JUMP":
        output.write("  *** FORWARD JUMP ***\n" + moved)
        output.write(f"      Script word at new position: \"{event.script_word}\"\n")
    elif verbose:
        output.write(
            f"  [{event.position_after:4d}] \"{event.script_word}\" ({event.event_type})\n")

    if verbose:
        output.writelines(f"      {command_to_dict(c)}\n" for c in event.commands)


def _write_summary(output: TextIO, events: list[TrackingEvent],
                   tracker: ScriptTracker) -> None:
    by_type: dict[str, list[TrackingEvent]] = {}
    for event in events:
        by_type.setdefault(event.event_type, []).append(event)
    rollbacks = by_type.get("ROLLBACK", [])
    forward_jumps = by_type.get("FORWARD_JUMP", [])

    output.write(f"\n{RULE}\nSUMMARY:\n{THIN_RULE}\n")
    output.write(f"Total events processed: {len(events)}\n")
    output.write(f"Final position: {tracker.current_word} / {len(tracker.words)}\n")
    output.write(f"Matched words: {tracker.highlight.count(WordState.MATCHED)}\n")
    output.write(f"Missed words: {tracker.highlight.count(WordState.MISSED)}\n")
    output.write(f"Advances: {len(by_type.get('advance', []))}\n")
    output.write(f"Rollbacks: {len(rollbacks)}\n")
    output.write(f"Forward jumps: {len(forward_jumps)}\n")

    for title, group in (("Rollback", rollbacks), ("Forward jump", forward_jumps)):
        if group:
            output.write(f"\n{title} events:\n")
            output.writelines(
                f"  Event {e.transcript_line}: -> position {e.position_after} "
                f"\"{e.script_word}\"\n"
                for e in group
            )


def replay_transcript(
    transcript_lines: list[TranscriptLine],
    script_text: str,
    output: TextIO,
    mode: TrackingMode = TrackingMode.PRECISE,
    verbose: bool = False
) -> list[TrackingEvent]:
    """Feed transcript lines to a fresh tracker and write a tracking report.

    Args:
        transcript_lines: Recognition events to feed, in order
        script_text: Reference text to track against
        output: Where the report is written
        mode: Tracking mode to replay with
        verbose: Report every event and its commands, not only jumps and rollbacks

    Returns:
        One TrackingEvent per transcript line
    """
    tracker: ScriptTracker = ScriptTracker(script_text, TrackerSettings(mode=mode))
    events: list[TrackingEvent] = []
    _write_header(output, tracker.words, mode, len(transcript_lines))

    for line_num, line in enumerate(transcript_lines, start=1):
        position_before: int = tracker.current_word
        commands = tracker.on_recognition_event(line.text, line.is_final)
        position_after: int = tracker.current_word
        in_range = 0 <= position_after < len(tracker.words)
        event = TrackingEvent(
            transcript_line=line_num,
            transcript=line.text,
            is_final=line.is_final,
            position_before=position_before,
            position_after=position_after,
            script_word=tracker.script.word_text(position_after) if in_range else "<NONE>",
            event_type=classify_move(position_before, position_after, commands),
            commands=commands,
        )
        _write_event(output, event, verbose)
        events.append(event)

    _write_summary(output, events, tracker)
    return events


def main() -> None:
    """CLI entry point for debug transcript tool."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Debug transcript tracking by replaying a transcript through the tracker"
    )

    parser.add_argument(
        "transcript",
        type=Path,
        help="Path to transcript file"
    )

    parser.add_argument(
        "script",
        type=Path,
        help="Path to script file"
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output log file path (default: stdout)"
    )

    parser.add_argument(
        "-m", "--mode",
        choices=[m.value for m in TrackingMode],
        default=TrackingMode.PRECISE.value,
        help="Tracking mode to replay with (default: precise)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log every event, not just jumps/rollbacks"
    )

    parser.add_argument(
        "-w", "--word-by-word",
        action="store_true",
        help="Grow each line word-by-word as partial results before the final one"
    )

    args: argparse.Namespace = parser.parse_args()

    # Validate inputs
    if not args.transcript.exists():
        print(
            f"Error: Transcript file not found: {args.transcript}", file=sys.stderr)
        sys.exit(1)

    if not args.script.exists():
        print(f"Error: Script file not found: {args.script}", file=sys.stderr)
        sys.exit(1)

    # Load files
    try:
        transcript_lines: list[TranscriptLine] = load_transcript(args.transcript)
        script_text: str = load_script(args.script)
    except OSError as e:
        print(f"Error loading files: {e}", file=sys.stderr)
        sys.exit(1)

    if not transcript_lines:
        print("Error: No transcript lines found", file=sys.stderr)
        sys.exit(1)

    if args.word_by_word:
        transcript_lines = expand_word_by_word(transcript_lines)
    mode = TrackingMode(args.mode)

    # Run replay
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            replay_transcript(transcript_lines, script_text, f, mode, args.verbose)
        print(f"Debug log written to: {args.output}")
    else:
        replay_transcript(transcript_lines, script_text, sys.stdout, mode, args.verbose)


if __name__ == "__main__":
    main()
