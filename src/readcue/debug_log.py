"""
Opt-in trace files for tracking decisions.

Two plain-text files are written under ``logs/``:
- engine_words.log: every highlight change with the cursor before and after
- transcripts.log: recognition events in arrival order

Nothing is written until enable() is called (``readcue --debug-log``).
"""

from datetime import datetime
from pathlib import Path

LOG_DIR: Path = Path(__file__).parent.parent.parent / "logs"
ENGINE_LOG: Path = LOG_DIR / "engine_words.log"
TRANSCRIPT_LOG: Path = LOG_DIR / "transcripts.log"

_ENABLED: bool = False  # pylint: disable=invalid-name


def enable() -> None:
    """Start writing trace files."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = True


def disable() -> None:
    """Stop writing trace files."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = False


def is_enabled() -> bool:
    return _ENABLED


def _ensure_log_dir() -> None:
    LOG_DIR.mkdir(exist_ok=True)


def _timestamp() -> str:
    """Wall-clock time with milliseconds."""
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def _append(log_file: Path, line: str) -> None:
    _ensure_log_dir()
    with open(log_file, 'a', encoding='utf-8') as f:
        f.write(f"[{_timestamp()}] {line}\n")


def clear_logs() -> None:
    """Truncate both trace files and stamp the start of a session."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    header = f"=== New session started at {datetime.now().isoformat()} ===\n\n"
    for log_file in (ENGINE_LOG, TRANSCRIPT_LOG):
        log_file.write_text(header, encoding='utf-8')


def log_engine_word(word_index: int, event: str = "match", previous_index: int = -1) -> None:
    """
    Record a highlight change made by the engine.

    Args:
        word_index: The new cursor position
        event: Kind of change (match, skip, rollback, tentative, manual)
        previous_index: Cursor position before the change
    """
    if _ENABLED:
        _append(ENGINE_LOG,
                f"{event:10} pos={word_index:4d} (from {previous_index:4d})")


def log_transcript(transcript: str, is_final: bool, mode: str) -> None:
    """Record a recognition event as it arrived."""
    if _ENABLED:
        kind = "final" if is_final else "interim"
        _append(TRANSCRIPT_LOG, f"{mode:7} {kind:7} \"{transcript[-60:]}\"")
