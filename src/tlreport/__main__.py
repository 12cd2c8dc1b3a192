from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, NoReturn

from .config_loader import ReportConfig, load_config
from .modules import IntermediateReadError
from .report import build_report, ingest_log, render_report

COMMANDS = ("report", "ingest", "render")


def main(argv: list[str] | None = None) -> NoReturn:
  argv = list(sys.argv[1:] if argv is None else argv)

  if not argv or argv[0] not in COMMANDS:
    print("Usage: tlreport {report|ingest|render}", file=sys.stderr)
    print("  report   - Build a diagnostic report from a structured trace log", file=sys.stderr)
    print("  ingest   - Split a log into category-partitioned intermediate files", file=sys.stderr)
    print("  render   - Render a report from an existing intermediate directory", file=sys.stderr)
    sys.exit(1)

  if argv[0] == "report":
    _run_report(argv[1:])
  elif argv[0] == "ingest":
    _run_ingest(argv[1:])
  elif argv[0] == "render":
    _run_render(argv[1:])


def _setup_logging(verbose: bool) -> None:
  logging.basicConfig(
    level=logging.DEBUG if verbose else logging.INFO,
    format="%(levelname)s %(name)s: %(message)s",
  )


def _add_render_options(parser: argparse.ArgumentParser) -> None:
  parser.add_argument(
    "--plain-text",
    action="store_true",
    default=None,
    help="Write generated code as plain .txt files",
  )
  parser.add_argument(
    "--export",
    action="store_true",
    default=None,
    dest="export_mode",
    help="Render export diagnostics instead of the full compilation report",
  )
  parser.add_argument(
    "--custom-header-html",
    default=None,
    help="File whose HTML is inserted at the top of index.html",
  )
  parser.add_argument(
    "--config",
    default=None,
    help="YAML config file (default: ./tlreport.yaml if present)",
  )
  parser.add_argument(
    "--parallel",
    action="store_true",
    default=None,
    help="Render modules on a thread pool",
  )


def _config_from_args(parsed: argparse.Namespace) -> ReportConfig:
  overrides: Dict[str, Any] = {
    "plain_text": parsed.plain_text,
    "export_mode": parsed.export_mode,
    "parallel": parsed.parallel,
  }
  if parsed.custom_header_html:
    overrides["custom_header_html"] = Path(parsed.custom_header_html).read_text(encoding="utf-8")
  return load_config(config_path=parsed.config, overrides=overrides)


def _fail(message: str) -> NoReturn:
  print(f"Error: {message}", file=sys.stderr)
  sys.exit(1)


def _run_report(args: list[str]) -> None:
  parser = argparse.ArgumentParser(
    prog="tlreport report",
    description="Build a diagnostic report from a structured trace log",
  )
  parser.add_argument("log", help="Structured trace log file")
  parser.add_argument("-o", "--output", required=True, help="Output directory")
  parser.add_argument(
    "--intermediate-dir",
    default=None,
    help="Keep the intermediate files in this directory",
  )
  _add_render_options(parser)
  parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
  parsed = parser.parse_args(args)
  _setup_logging(parsed.verbose)

  try:
    config = _config_from_args(parsed)
    combined = build_report(parsed.log, parsed.output, config, parsed.intermediate_dir)
  except (OSError, ValueError) as e:
    _fail(str(e))

  print(f"Report written to {Path(parsed.output) / 'index.html'}")
  if combined.failed_modules:
    print(f"Warning: failed modules: {', '.join(combined.failed_modules)}", file=sys.stderr)
  sys.exit(0)


def _run_ingest(args: list[str]) -> None:
  parser = argparse.ArgumentParser(
    prog="tlreport ingest",
    description="Split a structured trace log into intermediate files",
  )
  parser.add_argument("log", help="Structured trace log file")
  parser.add_argument("-o", "--output", required=True, help="Intermediate output directory")
  parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
  parsed = parser.parse_args(args)
  _setup_logging(parsed.verbose)

  try:
    manifest = ingest_log(parsed.log, parsed.output)
  except (OSError, ValueError) as e:
    _fail(str(e))

  print(f"Ingested {manifest.total_envelopes} envelope(s) into {parsed.output}")
  sys.exit(0)


def _run_render(args: list[str]) -> None:
  parser = argparse.ArgumentParser(
    prog="tlreport render",
    description="Render a report from an intermediate directory",
  )
  parser.add_argument("intermediate_dir", help="Directory written by 'tlreport ingest'")
  parser.add_argument("-o", "--output", required=True, help="Output directory")
  _add_render_options(parser)
  parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
  parsed = parser.parse_args(args)
  _setup_logging(parsed.verbose)

  try:
    config = _config_from_args(parsed)
    combined = render_report(parsed.intermediate_dir, parsed.output, config)
  except IntermediateReadError as e:
    _fail(f"corrupt intermediate file: {e}")
  except (OSError, ValueError) as e:
    _fail(str(e))

  print(f"Report written to {Path(parsed.output) / 'index.html'}")
  if combined.failed_modules:
    print(f"Warning: failed modules: {', '.join(combined.failed_modules)}", file=sys.stderr)
  sys.exit(0)


if __name__ == "__main__":  # pragma: no cover
  main()
