from .config import PolicyConfig, ProbeTimingBounds, ServiceSettings, load_config, parse_config

__all__ = ["PolicyConfig", "ProbeTimingBounds", "ServiceSettings", "load_config", "parse_config"]
