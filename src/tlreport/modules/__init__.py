from .base import GLOBAL_KEY, DirectoryEntry, IndexContribution, Module, ModuleOutput
from .context import IntermediateReadError, ModuleContext
from .index_generator import IndexGenerator
from .registry import CombinedOutput, ModuleRegistry

__all__ = [
  "GLOBAL_KEY",
  "CombinedOutput",
  "DirectoryEntry",
  "IndexContribution",
  "IndexGenerator",
  "IntermediateReadError",
  "Module",
  "ModuleContext",
  "ModuleOutput",
  "ModuleRegistry",
]
