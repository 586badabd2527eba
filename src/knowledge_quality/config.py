"""
config.py — Engine options and their validation.

Options are validated once, when they are constructed. The detection,
clustering and analysis functions trust whatever options they receive.

Environment variable overrides:
  KNOWLEDGE_QUALITY_CONFIG     path to a JSON config file
  KNOWLEDGE_QUALITY_LOG_LEVEL  level used by configure_logging()

Config file shape (every key optional):

    {
      "contradiction": {"similarity_threshold": 0.9, "min_confidence_delta": 0.1,
                        "same_kind_only": false},
      "clustering": {"similarity_threshold": 0.75, "min_cluster_size": 2,
                     "max_clusters": 10},
      "conflict_threshold": 0.85
    }
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from knowledge_quality.errors import InvalidOptionsError

logger = logging.getLogger(__name__)

CONFIG_ENV = 'KNOWLEDGE_QUALITY_CONFIG'
LOG_LEVEL_ENV = 'KNOWLEDGE_QUALITY_LOG_LEVEL'


def _check_threshold(name: str, value: float):
    if not 0.0 < value <= 1.0:
        raise InvalidOptionsError(f'{name} must be in (0, 1], got {value}')


@dataclass(frozen=True)
class ContradictionOptions:
    similarity_threshold: float = 0.85
    min_confidence_delta: float = 0.1
    same_kind_only: bool = False

    def __post_init__(self):
        _check_threshold('similarity_threshold', self.similarity_threshold)
        if not 0.0 <= self.min_confidence_delta <= 1.0:
            raise InvalidOptionsError(
                f'min_confidence_delta must be in [0, 1], '
                f'got {self.min_confidence_delta}'
            )


@dataclass(frozen=True)
class ClusterOptions:
    similarity_threshold: float = 0.75
    min_cluster_size: int = 2
    max_clusters: int = 10

    def __post_init__(self):
        _check_threshold('similarity_threshold', self.similarity_threshold)
        if self.min_cluster_size < 1:
            raise InvalidOptionsError(
                f'min_cluster_size must be >= 1, got {self.min_cluster_size}'
            )
        if self.max_clusters < 1:
            raise InvalidOptionsError(
                f'max_clusters must be >= 1, got {self.max_clusters}'
            )


@dataclass(frozen=True)
class EngineConfig:
    contradiction: ContradictionOptions = field(default_factory=ContradictionOptions)
    clustering: ClusterOptions = field(default_factory=ClusterOptions)
    conflict_threshold: float = 0.85

    def __post_init__(self):
        _check_threshold('conflict_threshold', self.conflict_threshold)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EngineConfig':
        try:
            return cls(
                contradiction=ContradictionOptions(**data.get('contradiction', {})),
                clustering=ClusterOptions(**data.get('clustering', {})),
                conflict_threshold=float(data.get('conflict_threshold', 0.85)),
            )
        except TypeError as e:
            # unknown keys in one of the sections
            raise InvalidOptionsError(f'Invalid config: {e}') from e


def load_config(path: Optional[Union[str, Path]] = None) -> EngineConfig:
    """
    Load engine config from JSON. Falls back to defaults when no file
    is configured or the file does not exist; a file that exists but
    cannot be parsed is an error.
    """
    path = path or os.environ.get(CONFIG_ENV)
    if not path:
        return EngineConfig()
    path = Path(path).expanduser()
    if not path.exists():
        logger.info('Config file %s not found, using defaults', path)
        return EngineConfig()
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise InvalidOptionsError(f'Config file {path} is not valid JSON: {e}') from e
    if not isinstance(data, dict):
        raise InvalidOptionsError(f'Config file {path} must hold a JSON object')
    return EngineConfig.from_dict(data)


def configure_logging(level: Optional[str] = None):
    """Basic console logging for scripts. Libraries should not call this."""
    level = level or os.environ.get(LOG_LEVEL_ENV, 'INFO')
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
