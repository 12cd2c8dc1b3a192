"""
Structured trace log reader.

Lines look like:

  [rank0]:V0806 12:34:56.789012 1234 torch/_dynamo/convert_frame.py:900] {"dynamo_start": {...}, "frame_id": 0}
  \tfirst payload line
  \tsecond payload line

The optional `[rankN]:` prefix marks distributed runs. When the JSON carries
`has_payload`, the tab-indented lines that follow form the inline payload.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from .envelope import Envelope, EnvelopeError

_logger = logging.getLogger(__name__)

GLOG_LINE = re.compile(
  r"^(?:\[rank(?P<rank>\d+)\]:)?"
  r"(?P<level>[VIWEC])(?P<month>\d{2})(?P<day>\d{2}) "
  r"(?P<time>\d{2}:\d{2}:\d{2}\.\d+)\s+"
  r"(?P<thread>\d+) "
  r"(?P<pathname>[^:\]]+):(?P<lineno>\d+)\] "
  r"(?P<body>.*)$"
)

_FRAME_LIST_KEYS = ("stack", "user_stack")


@dataclass
class ReadStats:
  lines: int = 0
  envelopes: int = 0
  malformed: int = 0
  unknown: int = 0


@dataclass
class _Pending:
  raw: Dict[str, Any]
  match: "re.Match[str]"
  lineno: int
  payload_lines: List[str]


class StructuredLogReader:
  """
  Iterates the envelopes of one log file.

  The string table is filled as `str` events are read, so frames that refer
  to an interned filename are resolved before the envelope is built.
  """

  def __init__(self, path: Union[str, Path], year: Optional[int] = None):
    self.path = Path(path)
    self.year = year if year is not None else datetime.now().year
    self.string_table: Dict[int, str] = {}
    self.stats = ReadStats()

  def __iter__(self) -> Iterator[Envelope]:
    pending: Optional[_Pending] = None

    with self.path.open("r", encoding="utf-8", errors="replace") as f:
      for lineno, line in enumerate(f, start=1):
        self.stats.lines += 1
        line = line.rstrip("\n")

        if line.startswith("\t"):
          if pending is not None:
            pending.payload_lines.append(line[1:])
          continue

        if pending is not None:
          envelope = self._finish(pending)
          pending = None
          if envelope is not None:
            yield envelope

        if not line.strip():
          continue

        pending = self._start(line, lineno)

      if pending is not None:
        envelope = self._finish(pending)
        if envelope is not None:
          yield envelope

    if self.stats.malformed:
      _logger.warning(
        "Skipped %d malformed line(s) in %s", self.stats.malformed, self.path
      )

  def _start(self, line: str, lineno: int) -> Optional[_Pending]:
    match = GLOG_LINE.match(line)
    if match is None:
      self.stats.malformed += 1
      _logger.debug("%s:%d: not a structured log line", self.path, lineno)
      return None

    try:
      raw = json.loads(match.group("body"))
    except json.JSONDecodeError as exc:
      self.stats.malformed += 1
      _logger.warning("%s:%d: invalid JSON (%s)", self.path, lineno, exc)
      return None

    if not isinstance(raw, dict):
      self.stats.malformed += 1
      _logger.warning("%s:%d: event is not a JSON object", self.path, lineno)
      return None

    return _Pending(raw=raw, match=match, lineno=lineno, payload_lines=[])

  def _finish(self, pending: _Pending) -> Optional[Envelope]:
    raw = pending.raw
    match = pending.match

    self._intern(raw)
    self._resolve_frames(raw)

    inline_payload = None
    if raw.get("has_payload") is not None:
      inline_payload = "\n".join(pending.payload_lines)

    rank = match.group("rank")
    timestamp = (
      f"{self.year:04d}-{match.group('month')}-{match.group('day')}T{match.group('time')}"
    )
    try:
      envelope = Envelope.from_raw(
        raw,
        rank=int(rank) if rank is not None else None,
        timestamp=timestamp,
        thread=int(match.group("thread")),
        pathname=match.group("pathname"),
        lineno=int(match.group("lineno")),
        inline_payload=inline_payload,
      )
    except EnvelopeError as exc:
      self.stats.malformed += 1
      _logger.warning("%s:%d: %s", self.path, pending.lineno, exc)
      return None

    self.stats.envelopes += 1
    if envelope.kind is None:
      self.stats.unknown += 1
    return envelope

  def _intern(self, raw: Dict[str, Any]) -> None:
    entry = raw.get("str")
    if isinstance(entry, list) and len(entry) == 2 and isinstance(entry[1], int):
      self.string_table[entry[1]] = str(entry[0])

  def _resolve_frames(self, raw: Dict[str, Any]) -> None:
    self._resolve_frame_list(raw.get("stack"))
    for value in raw.values():
      if isinstance(value, dict):
        for key in _FRAME_LIST_KEYS:
          self._resolve_frame_list(value.get(key))

  def _resolve_frame_list(self, frames: Any) -> None:
    if not isinstance(frames, list):
      return
    for frame in frames:
      if not isinstance(frame, dict) or "uninterned_filename" in frame:
        continue
      filename = frame.get("filename")
      if isinstance(filename, int) and filename in self.string_table:
        frame["uninterned_filename"] = self.string_table[filename]


def read_envelopes(path: Union[str, Path], year: Optional[int] = None) -> Iterator[Envelope]:
  """Yield the envelopes of a structured trace log."""
  return iter(StructuredLogReader(path, year=year))
