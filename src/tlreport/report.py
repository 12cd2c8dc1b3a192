"""
Report pipeline: log -> intermediate set -> rendered report.

The two stages can run separately (`ingest_log`, `render_report`) or
back-to-back (`build_report`).
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from .config_loader import ReportConfig
from .intermediate import MANIFEST_FILENAME, IntermediateWriter, ingest
from .models import Manifest
from .modules import CombinedOutput, IndexGenerator, IntermediateReadError, ModuleContext, ModuleRegistry
from .reader import StructuredLogReader

_logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.html"

PathLike = Union[str, Path]


def ingest_log(log_path: PathLike, intermediate_dir: PathLike, year: Optional[int] = None) -> Manifest:
  """
  Parse a structured log and write its intermediate set.

  Raises:
    OSError: If the log cannot be read or an intermediate file cannot be written.
  """
  reader = StructuredLogReader(log_path, year=year)
  with IntermediateWriter.open(intermediate_dir) as writer:
    dropped = ingest(reader, writer)
    writer.write_string_table(reader.string_table)
    manifest = writer.finalize(
      str(log_path),
      parse_mode="normal",
      string_table_entries=len(reader.string_table),
    )

  _logger.info(
    "Ingested %s: %d line(s), %d envelope(s), %d dropped, %d malformed",
    log_path,
    reader.stats.lines,
    reader.stats.envelopes,
    dropped,
    reader.stats.malformed,
  )
  return manifest


def load_manifest(intermediate_dir: PathLike) -> Manifest:
  path = Path(intermediate_dir) / MANIFEST_FILENAME
  if not path.is_file():
    raise FileNotFoundError(f"No {MANIFEST_FILENAME} in {intermediate_dir}")
  try:
    return Manifest.model_validate_json(path.read_text(encoding="utf-8"))
  except ValidationError as exc:
    raise IntermediateReadError(path, 1, f"invalid manifest: {exc}") from exc


def write_outputs(output_dir: PathLike, combined: CombinedOutput) -> int:
  """
  Write every module file under output_dir. Paths that would land outside
  the directory are skipped with a warning.
  """
  root = Path(output_dir).resolve()
  written = 0
  for relative, content in combined.files:
    target = (root / relative).resolve()
    if target != root and root not in target.parents:
      _logger.warning("Refusing to write %s: outside output directory", relative)
      continue
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    written += 1
  return written


def render_report(
  intermediate_dir: PathLike,
  output_dir: PathLike,
  config: Optional[ReportConfig] = None,
  manifest: Optional[Manifest] = None,
) -> CombinedOutput:
  """Run the module registry over an intermediate set and write the report."""
  config = config or ReportConfig()
  manifest = manifest or load_manifest(intermediate_dir)
  output_dir = Path(output_dir)
  output_dir.mkdir(parents=True, exist_ok=True)

  ctx = ModuleContext(Path(intermediate_dir), output_dir, manifest, config)
  if config.export_mode:
    registry = ModuleRegistry.for_export_mode(config)
  else:
    registry = ModuleRegistry.with_defaults(config)

  combined = registry.render_all(ctx)

  # Export mode renders its own index page.
  if not any(path == INDEX_FILENAME for path, _ in combined.files):
    index = IndexGenerator(config.custom_header_html).generate(combined, manifest)
    combined.files.append((INDEX_FILENAME, index))

  written = write_outputs(output_dir, combined)
  _logger.info("Wrote %d file(s) to %s", written, output_dir)
  if combined.failed_modules:
    _logger.warning("Failed modules: %s", ", ".join(combined.failed_modules))
  return combined


def build_report(
  log_path: PathLike,
  output_dir: PathLike,
  config: Optional[ReportConfig] = None,
  intermediate_dir: Optional[PathLike] = None,
  year: Optional[int] = None,
) -> CombinedOutput:
  """
  Ingest then render. Without an explicit intermediate_dir the intermediate
  set lives in a temporary directory that is removed afterwards.
  """
  if intermediate_dir is not None:
    manifest = ingest_log(log_path, intermediate_dir, year=year)
    return render_report(intermediate_dir, output_dir, config, manifest)

  with tempfile.TemporaryDirectory(prefix="tlreport-") as tmp:
    manifest = ingest_log(log_path, tmp, year=year)
    return render_report(tmp, output_dir, config, manifest)
