from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..config_loader import ReportConfig
from .base import DirectoryEntry, IndexContribution, Module, ModuleOutput
from .cache import CacheModule
from .chromium_trace import ChromiumTraceModule
from .compilation_metrics import CompilationMetricsModule
from .compile_artifacts import CompileArtifactsModule
from .compile_directory import CompileDirectoryModule
from .context import ModuleContext
from .export import ExportModule
from .guards import GuardsModule
from .stack_trie import StackTrieModule
from .symbolic_shapes import SymbolicShapesModule

_logger = logging.getLogger(__name__)


@dataclass
class CombinedOutput:
  files: List[Tuple[str, str]] = field(default_factory=list)
  directory_entries: Dict[str, List[DirectoryEntry]] = field(default_factory=dict)
  index_contributions: List[IndexContribution] = field(default_factory=list)
  failed_modules: List[str] = field(default_factory=list)

  def merge(self, output: ModuleOutput) -> None:
    self.files.extend(output.files)
    for key, entries in output.directory_entries.items():
      self.directory_entries.setdefault(key, []).extend(entries)
    if output.index_contribution is not None:
      self.index_contributions.append(output.index_contribution)


class ModuleRegistry:
  """
  Ordered set of modules rendered against one shared context.

  A module that raises is logged and recorded; the remaining modules still
  run and their outputs are merged in registration order.
  """

  def __init__(self, parallel: bool = False, max_workers: Optional[int] = None):
    self.modules: List[Module] = []
    self.parallel = parallel
    self.max_workers = max_workers

  def register(self, module: Module) -> None:
    self.modules.append(module)

  @classmethod
  def with_defaults(cls, config: Optional[ReportConfig] = None) -> "ModuleRegistry":
    config = config or ReportConfig()
    registry = cls(parallel=config.parallel)
    registry.register(CompileArtifactsModule())
    registry.register(GuardsModule())
    registry.register(CacheModule())
    registry.register(CompilationMetricsModule())
    registry.register(ChromiumTraceModule())
    registry.register(SymbolicShapesModule())
    registry.register(StackTrieModule())
    registry.register(CompileDirectoryModule())
    return registry

  @classmethod
  def for_export_mode(cls, config: Optional[ReportConfig] = None) -> "ModuleRegistry":
    config = config or ReportConfig()
    registry = cls(parallel=config.parallel)
    registry.register(ExportModule())
    registry.register(SymbolicShapesModule())
    return registry

  def _render_one(self, module: Module, ctx: ModuleContext) -> Optional[ModuleOutput]:
    try:
      output = module.render(ctx)
    except Exception:
      _logger.warning("Module '%s' failed", module.name, exc_info=True)
      return None
    _logger.debug(
      "Module '%s' produced %d file(s), %d directory key(s)",
      module.name,
      len(output.files),
      len(output.directory_entries),
    )
    return output

  def render_all(self, ctx: ModuleContext) -> CombinedOutput:
    if self.parallel and len(self.modules) > 1:
      with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
        results = list(pool.map(lambda m: self._render_one(m, ctx), self.modules))
    else:
      results = [self._render_one(m, ctx) for m in self.modules]

    combined = CombinedOutput()
    for module, output in zip(self.modules, results):
      if output is None:
        combined.failed_modules.append(module.name)
      else:
        combined.merge(output)
    return combined
