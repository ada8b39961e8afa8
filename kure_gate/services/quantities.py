from typing import Optional

_BINARY_UNITS = {'Ki': 1024, 'Mi': 1024 ** 2, 'Gi': 1024 ** 3, 'Ti': 1024 ** 4, 'Pi': 1024 ** 5}
_DECIMAL_UNITS = {'k': 1000, 'K': 1000, 'M': 1000 ** 2, 'G': 1000 ** 3, 'T': 1000 ** 4, 'P': 1000 ** 5}


def parse_memory_to_bytes(size_str: Optional[str]) -> Optional[float]:
    """Parse Kubernetes memory quantity (e.g. 256Mi, 1G, 1048576) to bytes"""
    if not size_str:
        return None
    try:
        size_str = str(size_str).strip()
        for units in (_BINARY_UNITS, _DECIMAL_UNITS):
            for suffix, multiplier in units.items():
                if size_str.endswith(suffix):
                    return float(size_str[:-len(suffix)]) * multiplier
        if size_str.endswith('m'):
            return float(size_str[:-1]) / 1000
        return float(size_str)
    except (ValueError, TypeError):
        return None


def parse_cpu_to_millicores(cpu_str: Optional[str]) -> Optional[float]:
    """Parse Kubernetes CPU quantity (e.g. 100m, 0.5, 2) to millicores"""
    if not cpu_str:
        return None
    try:
        cpu_str = str(cpu_str).strip()
        if cpu_str.endswith('m'):
            return float(cpu_str[:-1])
        return float(cpu_str) * 1000
    except (ValueError, TypeError):
        return None
