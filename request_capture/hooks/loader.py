"""Load capture hooks from a directory of Python modules.

Each ``*.py`` file in the directory defines one hook through a module-level
``hook`` (or ``HOOK``) attribute holding a dict, HookConfig or Hook:

    hook = {
      "name": "api",
      "url_patterns": ["https://api.example.com/*"],
      "capture_rules": {"methods": ["GET"], "status_codes": [200]},
    }

Modules that fail to import or define an invalid hook are logged and skipped;
loading continues with the rest of the directory.
"""

import importlib.util
import logging
from pathlib import Path
from types import ModuleType
from typing import Optional, Union

from request_capture.hooks.registry import HookRegistry

logger = logging.getLogger(__name__)

HOOK_ATTRIBUTES = ("hook", "HOOK")


def _import_module(path: Path) -> ModuleType:
  """Import a hook module from an arbitrary file path."""
  module_name = f"request_capture_hooks.{path.stem}"
  spec = importlib.util.spec_from_file_location(module_name, path)
  if spec is None or spec.loader is None:
    raise ImportError(f"Cannot create import spec for {path}")
  module = importlib.util.module_from_spec(spec)
  spec.loader.exec_module(module)
  return module


def _hook_from_module(module: ModuleType) -> Optional[object]:
  for attribute in HOOK_ATTRIBUTES:
    if hasattr(module, attribute):
      return getattr(module, attribute)
  return None


def load_hooks(directory: Union[str, Path], registry: HookRegistry) -> int:
  """Scan a directory for hook modules and register them.

  Args:
    directory: Directory containing hook definition modules
    registry: Registry that receives the hooks

  Returns:
    Number of hooks registered from this directory
  """
  config_dir = Path(directory)
  logger.info("Loading request capture hooks from: %s", config_dir)

  if not config_dir.is_dir():
    logger.warning("Capture hooks directory not found: %s", config_dir)
    return 0

  loaded = 0
  for path in sorted(config_dir.glob("*.py")):
    if path.name.startswith("_"):
      continue

    try:
      module = _import_module(path)
    except Exception:
      logger.exception("Failed to load capture hook %s", path.name)
      continue

    config = _hook_from_module(module)
    if config is None:
      logger.warning("Capture hook module %s does not define a 'hook' attribute", path.name)
      continue

    if registry.register_hook(config):
      loaded += 1
    else:
      logger.warning("Invalid capture hook configuration in %s", path.name)

  logger.info("Total capture hooks loaded: %d", registry.hook_count)
  return loaded
