"""
tlreport: turn ML compiler structured trace logs into navigable reports.

Usage:
    >>> from tlreport import build_report
    >>> build_report("dedicated_log_torch_trace.log", "tl_out")
"""

from .classifier import Category, classify
from .compile_id import CompileId, decode_compile_id, encode_compile_id
from .config_loader import ReportConfig, load_config
from .envelope import Envelope, EnvelopeError
from .intermediate import IngestStats, IntermediateWriter, ingest
from .models import Manifest, NormalizedRecord
from .reader import read_envelopes
from .report import build_report, ingest_log, render_report

__version__ = "0.1.0"

__all__ = [
  "Category",
  "CompileId",
  "Envelope",
  "EnvelopeError",
  "IngestStats",
  "IntermediateWriter",
  "Manifest",
  "NormalizedRecord",
  "ReportConfig",
  "build_report",
  "classify",
  "decode_compile_id",
  "encode_compile_id",
  "ingest",
  "ingest_log",
  "load_config",
  "read_envelopes",
  "render_report",
]
