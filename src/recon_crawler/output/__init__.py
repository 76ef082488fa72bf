"""Result sinks, the emitter that feeds them, and checkpoint persistence."""

from .checkpoint import CheckpointInfo, CheckpointStore
from .emitter import ResultEmitter
from .sinks import CsvSink, HtmlReportSink, JsonlSink, Sink, TextSummarySink, default_sinks


__all__ = [
    "CheckpointInfo",
    "CheckpointStore",
    "CsvSink",
    "HtmlReportSink",
    "JsonlSink",
    "ResultEmitter",
    "Sink",
    "TextSummarySink",
    "default_sinks",
]
