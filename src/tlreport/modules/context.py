from __future__ import annotations

import json
import logging
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..classifier import Category
from ..config_loader import ReportConfig
from ..models import Manifest, NormalizedRecord

_logger = logging.getLogger(__name__)


class IntermediateReadError(ValueError):
  """Raised when an intermediate file holds a line that is not a record."""

  def __init__(self, path: Path, lineno: int, reason: str):
    super().__init__(f"{path}:{lineno}: {reason}")
    self.path = path
    self.lineno = lineno


class ModuleContext:
  """
  Read-only view over a finalized intermediate set.

  Every method re-reads from disk and never writes, so one context can be
  shared by modules rendering concurrently.
  """

  def __init__(
    self,
    intermediate_dir: Path,
    output_dir: Path,
    manifest: Manifest,
    config: Optional[ReportConfig] = None,
  ):
    self.intermediate_dir = Path(intermediate_dir)
    self.output_dir = Path(output_dir)
    self.manifest = manifest
    self.config = config or ReportConfig()

  def read(self, category: Category) -> List[NormalizedRecord]:
    """
    Read every record of a line-delimited category.

    Returns an empty list when the file is absent. Blank lines are skipped.

    Raises:
      IntermediateReadError: On a line that is not a valid record.
    """
    path = self.intermediate_dir / category.filename
    if not path.exists():
      return []

    records: List[NormalizedRecord] = []
    with path.open("r", encoding="utf-8") as f:
      for lineno, line in enumerate(f, start=1):
        if not line.strip():
          continue
        try:
          records.append(NormalizedRecord.model_validate_json(line))
        except ValidationError as exc:
          raise IntermediateReadError(path, lineno, f"invalid record: {exc}") from exc
    return records

  def records_for_compile(self, category: Category, compile_id: str) -> List[NormalizedRecord]:
    return [r for r in self.read(category) if r.compile_id == compile_id]

  def records_by_kind(self, category: Category, kind: str) -> List[NormalizedRecord]:
    return [r for r in self.read(category) if r.kind == kind]

  def group_by_compile_id(self, category: Category) -> Dict[Optional[str], List[NormalizedRecord]]:
    """Group records by compile id, keeping first-seen order of the ids."""
    grouped: Dict[Optional[str], List[NormalizedRecord]] = OrderedDict()
    for record in self.read(category):
      grouped.setdefault(record.compile_id, []).append(record)
    return grouped

  def read_trace_spans(self) -> List[Any]:
    path = self.intermediate_dir / Category.CHROMIUM_EVENTS.filename
    if not path.exists():
      return []
    try:
      spans = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
      raise IntermediateReadError(path, exc.lineno, f"invalid trace span array: {exc.msg}") from exc
    if not isinstance(spans, list):
      raise IntermediateReadError(path, 1, "trace span file must hold a JSON array")
    return spans

  def compile_ids(self) -> List[str]:
    return list(self.manifest.compile_ids)

  def has_records(self, category: Category) -> bool:
    return category.filename in self.manifest.files
