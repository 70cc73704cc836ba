import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from ledgerbench.bench.errors import ConfigurationError

# Environment selection, same knobs for manager and workers
ENV_SUT_TYPE = "LEDGERBENCH_SUT_TYPE"               # e.g. "ledger"
ENV_WORKSPACE = "LEDGERBENCH_WORKSPACE"             # root for every relative path
ENV_NETWORK_CONFIG = "LEDGERBENCH_NETWORK_CONFIG"   # YAML network document


def get(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    return value.strip()


def workspace_root(explicit: Optional[Union[str, Path]] = None) -> Path:
    root = explicit if explicit is not None else get(ENV_WORKSPACE, ".")
    return Path(root).expanduser().resolve()


def resolve_path(path: Union[str, Path], root: Union[str, Path]) -> str:
    """Absolute form of ``path``; relative paths hang off ``root``."""
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = Path(root) / p
    return str(p.resolve())


def load_network_config(path: Union[str, Path]) -> Dict[str, Any]:
    p = Path(path)
    if not p.is_file():
        raise ConfigurationError(f"Network configuration not found or not a file: {p}")
    try:
        doc = yaml.safe_load(p.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Network configuration {p} could not be read: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Malformed network configuration {p}: {e}") from e
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ConfigurationError(f"Network configuration {p} must be a mapping, got {type(doc).__name__}")
    return doc


def network_config(
    explicit: Optional[Union[str, Path, Mapping[str, Any]]] = None,
    root: Optional[Path] = None,
) -> Mapping[str, Any]:
    """
    Parsed network document.

    Accepts an already parsed mapping, a path, or nothing (then the path
    comes from LEDGERBENCH_NETWORK_CONFIG). Relative paths hang off the
    workspace root.
    """
    if isinstance(explicit, Mapping):
        return explicit
    path = explicit if explicit is not None else get(ENV_NETWORK_CONFIG)
    if not path:
        raise ConfigurationError(f"{ENV_NETWORK_CONFIG} env missing and no network configuration given")
    return load_network_config(resolve_path(path, root or workspace_root()))


def sut_settings(config: Mapping[str, Any], sut_type: str) -> Dict[str, Any]:
    settings = config.get(sut_type)
    if settings is None:
        raise ConfigurationError(f"Network configuration has no '{sut_type}' section")
    if not isinstance(settings, dict):
        raise ConfigurationError(f"'{sut_type}' section must be a mapping, got {type(settings).__name__}")
    return settings
