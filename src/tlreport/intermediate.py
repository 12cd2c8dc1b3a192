"""
Category-partitioned intermediate output.

Ingestion turns a stream of envelopes into one append-only JSONL file per
category, a JSON array of trace spans, an interned string table and a
manifest describing the run. Rendering reads only these files.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, IO, Iterable, List, Optional, Set, Union

from .classifier import Category, classify
from .compile_id import encode_compile_id
from .envelope import Envelope
from .models import Manifest, NormalizedRecord

_logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"
STRING_TABLE_FILENAME = "string_table.json"
TRACE_SPAN_KIND = "chromium_event"


@dataclass
class IngestStats:
  """
  Counters accumulated while writing intermediate records.

  Two accumulators merge by summing counts and unioning the id sets, so
  partial ingestions can be combined.
  """

  total: int = 0
  counts: Counter = field(default_factory=Counter)
  compile_ids: Set[str] = field(default_factory=set)
  ranks: Set[int] = field(default_factory=set)

  def record(self, kind: str, compile_id: Optional[str] = None, rank: Optional[int] = None) -> None:
    self.total += 1
    self.counts[kind] += 1
    if compile_id is not None:
      self.compile_ids.add(compile_id)
    if rank is not None:
      self.ranks.add(rank)

  def merge(self, other: "IngestStats") -> "IngestStats":
    return IngestStats(
      total=self.total + other.total,
      counts=self.counts + other.counts,
      compile_ids=self.compile_ids | other.compile_ids,
      ranks=self.ranks | other.ranks,
    )


def _hash_file(path: Path) -> Optional[str]:
  if not path.is_file():
    return None
  digest = hashlib.sha256()
  with path.open("rb") as f:
    for chunk in iter(lambda: f.read(1 << 16), b""):
      digest.update(chunk)
  return digest.hexdigest()


class IntermediateWriter:
  """
  Writes normalized records into per-category files.

  Use `IntermediateWriter.open(dir)` (also usable as a context manager) and
  call `finalize()` exactly once when the stream is exhausted.
  """

  def __init__(self, output_dir: Path, streams: Dict[Category, IO[str]]):
    self.output_dir = output_dir
    self.stats = IngestStats()
    self._streams = streams
    self._trace_spans: List[Any] = []
    self._finalized = False

  @classmethod
  def open(cls, output_dir: Union[str, Path]) -> "IntermediateWriter":
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    streams: Dict[Category, IO[str]] = {}
    try:
      for category in Category:
        if category.is_line_delimited:
          streams[category] = (output_dir / category.filename).open("w", encoding="utf-8")
    except OSError:
      for stream in streams.values():
        stream.close()
      raise
    return cls(output_dir, streams)

  def __enter__(self) -> "IntermediateWriter":
    return self

  def __exit__(self, exc_type, exc, tb) -> None:
    # Streams are closed on error; a clean exit leaves finalize to the caller.
    if exc_type is not None:
      self.close()

  def close(self) -> None:
    for stream in self._streams.values():
      if not stream.closed:
        stream.close()

  def _check_open(self) -> None:
    if self._finalized:
      raise RuntimeError("IntermediateWriter has already been finalized")

  def write(self, record: NormalizedRecord, category: Category) -> None:
    self._check_open()
    self.stats.record(record.kind, record.compile_id, record.rank)

    if category is Category.CHROMIUM_EVENTS:
      self._trace_spans.append(record.metadata)
      return

    self._streams[category].write(record.to_json_line())
    self._streams[category].write("\n")

  def write_trace_span(self, value: Any) -> None:
    self._check_open()
    self.stats.record(TRACE_SPAN_KIND)
    self._trace_spans.append(value)

  def write_string_table(self, table: Dict[int, str]) -> None:
    self._check_open()
    path = self.output_dir / STRING_TABLE_FILENAME
    with path.open("w", encoding="utf-8") as f:
      json.dump({str(k): v for k, v in sorted(table.items())}, f, indent=2)

  def finalize(
    self,
    source_file: str,
    parse_mode: str = "normal",
    string_table_entries: int = 0,
  ) -> Manifest:
    """
    Close every stream, write the trace-span array and the manifest.

    Only non-empty category files are listed in the manifest, except the
    trace-span file which is always present.
    """
    self._check_open()
    self._finalized = True

    for stream in self._streams.values():
      stream.flush()
    self.close()

    trace_path = self.output_dir / Category.CHROMIUM_EVENTS.filename
    with trace_path.open("w", encoding="utf-8") as f:
      json.dump(self._trace_spans, f)

    files = []
    for category in Category:
      path = self.output_dir / category.filename
      if not path.exists():
        continue
      if category is Category.CHROMIUM_EVENTS or path.stat().st_size > 0:
        files.append(category.filename)

    manifest = Manifest(
      generated_at=datetime.now(timezone.utc).isoformat(),
      source_file=source_file,
      source_file_hash=_hash_file(Path(source_file)),
      total_envelopes=self.stats.total,
      envelope_counts=dict(self.stats.counts),
      compile_ids=sorted(self.stats.compile_ids),
      string_table_entries=string_table_entries,
      parse_mode=parse_mode,
      ranks=sorted(self.stats.ranks),
      files=files,
    )

    manifest_path = self.output_dir / MANIFEST_FILENAME
    manifest_path.write_text(manifest.model_dump_json(indent=2), encoding="utf-8")

    _logger.info(
      "Wrote %d records across %d files to %s",
      manifest.total_envelopes,
      len(files),
      self.output_dir,
    )
    return manifest


def normalize(envelope: Envelope) -> NormalizedRecord:
  """Turn an envelope into the uniform record shape used by every category."""
  return NormalizedRecord(
    kind=envelope.kind or "",
    compile_id=encode_compile_id(envelope.compile_id),
    rank=envelope.rank,
    timestamp=envelope.timestamp,
    thread=envelope.thread,
    pathname=envelope.pathname,
    lineno=envelope.lineno,
    metadata=envelope.metadata(),
    payload=envelope.inline_payload,
  )


def _trace_span_value(envelope: Envelope) -> Any:
  # Spans arrive as the envelope's inline payload; fall back to the tag value.
  if envelope.inline_payload:
    try:
      return json.loads(envelope.inline_payload)
    except json.JSONDecodeError:
      _logger.warning(
        "Trace span at %s:%d is not valid JSON; keeping raw text",
        envelope.pathname,
        envelope.lineno,
      )
      return envelope.inline_payload
  return envelope.payload


def ingest(envelopes: Iterable[Envelope], writer: IntermediateWriter) -> int:
  """
  Route each envelope into its category stream.

  Returns the number of envelopes dropped as unknown or internal.
  """
  dropped = 0
  for envelope in envelopes:
    category = classify(envelope.kind)
    if category is None:
      dropped += 1
      continue

    if category is Category.CHROMIUM_EVENTS:
      writer.write_trace_span(_trace_span_value(envelope))
      continue

    writer.write(normalize(envelope), category)

  if dropped:
    _logger.debug("Dropped %d unknown or internal envelopes", dropped)
  return dropped
