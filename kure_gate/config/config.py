import logging
import os
import re
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from kure_gate.errors import ConfigurationError
from kure_gate.models.models import Severity

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_LABELS = frozenset({
    'app.kubernetes.io/name',
    'app.kubernetes.io/instance',
    'app.kubernetes.io/version',
    'team',
    'environment',
})

# team-app-env: at least three lowercase alphanumeric segments joined by hyphens
DEFAULT_NAME_PATTERN = r'^[a-z0-9]+(?:-[a-z0-9]+){2,}$'

DEFAULT_FLOATING_TAGS = frozenset({'latest', 'stable', 'main', 'master'})

DEFAULT_FLOATING_TAG_PATTERNS = [
    r'^v?\d{1,3}$',          # short major only, e.g. "3"; build numbers and dates stay pinned
    r'^v?\d+\.\d+$',         # major.minor, e.g. "1.4"
    r'(?i)snapshot$',
    r'^(dev|develop|edge|nightly|canary|next|beta|alpha)$',
]

DEFAULT_LOG_SHIPPER_NAME_PATTERN = r'^(fluent-bit|fluentbit|fluentd|promtail|vector|filebeat|log-shipper)(-.*)?$'

# Capabilities that grant container escape or host-level privileges
DANGEROUS_CAPABILITIES = frozenset({
    'SYS_ADMIN', 'NET_RAW', 'SYS_PTRACE', 'SYS_MODULE',
    'DAC_READ_SEARCH', 'NET_ADMIN', 'SYS_RAWIO', 'SYS_BOOT',
    'SYS_TIME', 'MKNOD', 'SETUID', 'SETGID',
})


def _check_regex(value: str) -> str:
    try:
        re.compile(value)
    except re.error as e:
        raise ValueError(f"invalid regular expression '{value}': {e}")
    return value


class _ConfigModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True, extra='forbid')


class ProbeTimingBounds(_ConfigModel):
    """Recommended timing window for one probe type. None means unbounded."""
    min_initial_delay_seconds: Optional[int] = None
    max_initial_delay_seconds: Optional[int] = None
    min_period_seconds: Optional[int] = None
    max_period_seconds: Optional[int] = None
    min_timeout_seconds: Optional[int] = None
    max_timeout_seconds: Optional[int] = None
    min_failure_threshold: Optional[int] = None
    max_failure_threshold: Optional[int] = None

    @model_validator(mode='after')
    def check_ranges(self):
        for field in ('initial_delay_seconds', 'period_seconds', 'timeout_seconds', 'failure_threshold'):
            low = getattr(self, f'min_{field}')
            high = getattr(self, f'max_{field}')
            if low is not None and high is not None and low > high:
                raise ValueError(f"min_{field} ({low}) is greater than max_{field} ({high})")
        return self

    def bounds(self, field: str) -> Tuple[Optional[int], Optional[int]]:
        return getattr(self, f'min_{field}'), getattr(self, f'max_{field}')


def _default_probe_bounds() -> Dict[str, ProbeTimingBounds]:
    return {
        'liveness': ProbeTimingBounds(
            min_initial_delay_seconds=10, max_initial_delay_seconds=300,
            min_period_seconds=5, max_period_seconds=60,
            min_timeout_seconds=1, max_timeout_seconds=10,
            min_failure_threshold=1, max_failure_threshold=10,
        ),
        'readiness': ProbeTimingBounds(
            min_initial_delay_seconds=0, max_initial_delay_seconds=120,
            min_period_seconds=5, max_period_seconds=60,
            min_timeout_seconds=1, max_timeout_seconds=10,
            min_failure_threshold=1, max_failure_threshold=10,
        ),
        'startup': ProbeTimingBounds(
            min_initial_delay_seconds=0, max_initial_delay_seconds=60,
            min_period_seconds=1, max_period_seconds=60,
            min_timeout_seconds=1, max_timeout_seconds=10,
            min_failure_threshold=1, max_failure_threshold=60,
        ),
    }


class PolicyConfig(_ConfigModel):
    """Parameters of every rule plus evaluator tuning.

    Build it with ``parse_config`` or ``load_config`` to get
    ``ConfigurationError`` instead of a pydantic ``ValidationError``.
    """
    allowed_registries: FrozenSet[str] = frozenset({'registry.bank.internal'})
    restricted_namespaces: FrozenSet[str] = frozenset({'production'})
    required_labels: FrozenSet[str] = DEFAULT_REQUIRED_LABELS
    name_pattern: str = DEFAULT_NAME_PATTERN
    resource_request_limit_ratio_band: Tuple[float, float] = (0.4, 0.8)
    probe_timing_bounds: Dict[str, ProbeTimingBounds] = _default_probe_bounds()
    enabled_rule_ids: Optional[FrozenSet[str]] = None  # None: every registered rule
    disabled_rule_ids: FrozenSet[str] = frozenset()
    log_shipper_name_pattern: str = DEFAULT_LOG_SHIPPER_NAME_PATTERN
    floating_tags: FrozenSet[str] = DEFAULT_FLOATING_TAGS
    floating_tag_patterns: List[str] = DEFAULT_FLOATING_TAG_PATTERNS
    dangerous_capabilities: FrozenSet[str] = DANGEROUS_CAPABILITIES
    severity_overrides: Dict[str, Severity] = {}

    # Evaluator tuning
    concurrency: int = 4
    rule_workers: int = 1
    checker_timeout_seconds: float = 5.0
    fail_on_checker_error: bool = False

    @field_validator('name_pattern', 'log_shipper_name_pattern')
    @classmethod
    def check_regex(cls, value: str) -> str:
        return _check_regex(value)

    @field_validator('floating_tag_patterns')
    @classmethod
    def check_regex_list(cls, value: List[str]) -> List[str]:
        return [_check_regex(pattern) for pattern in value]

    @field_validator('severity_overrides', mode='before')
    @classmethod
    def normalize_severities(cls, value):
        if isinstance(value, dict):
            return {k: v.lower() if isinstance(v, str) else v for k, v in value.items()}
        return value

    @field_validator('resource_request_limit_ratio_band')
    @classmethod
    def check_band(cls, value: Tuple[float, float]) -> Tuple[float, float]:
        low, high = value
        if low <= 0 or high <= 0 or low > high:
            raise ValueError(f"ratio band must satisfy 0 < min <= max, got {value}")
        return value

    @field_validator('probe_timing_bounds')
    @classmethod
    def check_probe_types(cls, value: Dict[str, ProbeTimingBounds]) -> Dict[str, ProbeTimingBounds]:
        unknown = set(value) - {'liveness', 'readiness', 'startup'}
        if unknown:
            raise ValueError(f"unknown probe types: {', '.join(sorted(unknown))}")
        # Probe types left out of the configuration keep their default bounds
        return {**_default_probe_bounds(), **value}

    @field_validator('concurrency', 'rule_workers')
    @classmethod
    def check_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator('checker_timeout_seconds')
    @classmethod
    def check_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than 0")
        return value

    def compiled_name_pattern(self) -> re.Pattern:
        return re.compile(self.name_pattern)

    def compiled_log_shipper_pattern(self) -> re.Pattern:
        return re.compile(self.log_shipper_name_pattern)

    def compiled_floating_tag_patterns(self) -> List[re.Pattern]:
        return [re.compile(p) for p in self.floating_tag_patterns]


def parse_config(data: Optional[dict]) -> PolicyConfig:
    """Validate a configuration mapping"""
    if data is None:
        return PolicyConfig()
    if not isinstance(data, dict):
        raise ConfigurationError(f"configuration must be a mapping, got {type(data).__name__}")
    try:
        return PolicyConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}")


def load_config(path: Optional[Union[str, Path]] = None) -> PolicyConfig:
    """Load policy configuration from a YAML file; defaults when path is None"""
    if path is None:
        logger.info("No policy configuration file given, using defaults")
        return PolicyConfig()
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"cannot read configuration file {path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"configuration file {path} is not valid YAML: {e}")
    config = parse_config(data)
    logger.info(f"Loaded policy configuration from {path}")
    return config


class ServiceSettings:
    """Process settings for the CLI and the webhook server"""

    def __init__(self):
        self.log_level = os.getenv('KURE_GATE_LOG_LEVEL', 'INFO')
        self.config_path = os.getenv('KURE_GATE_CONFIG') or None
        self.host = os.getenv('KURE_GATE_HOST', '0.0.0.0')
        self.port = int(os.getenv('KURE_GATE_PORT', '8443'))
