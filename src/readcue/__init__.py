"""
readcue - Follow a reader through a script from speech recognition results.

Aligns noisy interim and final transcriptions against a reference text
and reports which words were read, skipped or are still pending.
"""

__version__ = "0.1.0"

from .highlight import HighlightCommand, WordState
from .main import ReadcueApp
from .server import WebServer
from .session import RecognitionSession, classify_error
from .tracker import ScriptTracker, TrackerSettings, TrackingMode

__all__ = [
    "HighlightCommand",
    "WordState",
    "ScriptTracker",
    "TrackerSettings",
    "TrackingMode",
    "RecognitionSession",
    "classify_error",
    "WebServer",
    "ReadcueApp",
]
