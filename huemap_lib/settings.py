"""
HUEMAP Settings - Configuration file parsing

huemap.cfg uses the same INI-like format as Klipper/Moonraker configs:

    [huemap_settings]
    oracle: api            # api | database | cached
    min_span: 1
    traversal: stack       # stack | queue

Sections are [name] headers, options are "key: value", and anything
after a # is a comment.
"""

import math
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

DEFAULT_CONFIG_PATH = "~/.config/huemap/huemap.cfg"

SETTINGS_SECTION = "huemap_settings"
ORACLE_SECTION = "huemap_oracle"
SERVER_SECTION = "huemap_server"
KNOWN_SECTIONS = (SETTINGS_SECTION, ORACLE_SECTION, SERVER_SECTION)

VALID_TRAVERSALS = ("stack", "queue")
TRUE_VALUES = ("true", "yes", "on", "1")
FALSE_VALUES = ("false", "no", "off", "0")
VALID_BOOLS = FALSE_VALUES + TRUE_VALUES

# Section name -> (line number of header, options)
ParsedConfig = Dict[str, Tuple[int, Dict[str, str]]]


@dataclass
class HueMapSettings:
    """Effective settings after defaults and the config file are combined."""
    oracle: str = "api"
    min_span: float = 1.0
    traversal: str = "stack"
    default_saturation: float = 60.0
    default_lightness: float = 50.0
    memo: bool = True
    debug: bool = False
    # Oracle options, passed through to the oracle constructor
    oracle_config: Dict[str, str] = field(default_factory=dict)
    # HTTP surface
    host: str = "127.0.0.1"
    port: int = 3770

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_config_lines(lines: List[str]) -> Tuple[ParsedConfig, List[str]]:
    """
    Parse config text into sections.

    Returns:
        (sections, warnings) where warnings lists malformed lines
    """
    sections: ParsedConfig = {}
    warnings: List[str] = []
    current: Optional[str] = None

    for line_num, line in enumerate(lines, 1):
        line = line.strip()
        if not line or line.startswith('#'):
            continue

        if line.startswith('[') and line.endswith(']'):
            current = line[1:-1].strip()
            if current in sections:
                warnings.append(f"Line {line_num}: Duplicate section [{current}] (later values win)")
                sections[current][1].clear()
            else:
                sections[current] = (line_num, {})
            continue

        if ':' in line and current:
            key, value = line.split(':', 1)
            # Strip inline comments (# ...)
            if '#' in value:
                value = value.split('#', 1)[0]
            sections[current][1][key.strip()] = value.strip()
        elif current is None:
            warnings.append(f"Line {line_num}: Option outside of any section: {line}")
        else:
            warnings.append(f"Line {line_num}: Malformed line (no colon): {line}")

    return sections, warnings


def parse_config_file(path: Path) -> Tuple[ParsedConfig, List[str]]:
    with open(path, 'r') as f:
        return parse_config_lines(f.readlines())


def parse_bool(value: str) -> bool:
    return value.strip().lower() in TRUE_VALUES


def is_http_url(value: str) -> bool:
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def build_settings(sections: ParsedConfig) -> Tuple[HueMapSettings, List[str]]:
    """
    Combine parsed sections with defaults.

    Bad values keep the default and produce a warning instead of
    aborting, so one typo never takes the service down.
    """
    settings = HueMapSettings()
    warnings: List[str] = []

    for name, (line_num, data) in sections.items():
        if name not in KNOWN_SECTIONS:
            warnings.append(f"Unknown section [{name}] (line {line_num})")

    _, data = sections.get(SETTINGS_SECTION, (0, {}))
    settings.oracle = data.get("oracle", settings.oracle).strip().lower()
    settings.traversal = data.get("traversal", settings.traversal).strip().lower()
    if settings.traversal not in VALID_TRAVERSALS:
        warnings.append(
            f"Unknown traversal '{settings.traversal}' (valid: {', '.join(VALID_TRAVERSALS)}), using stack"
        )
        settings.traversal = "stack"

    for key, minimum, maximum in (
        ("min_span", 0.0, 360.0),
        ("default_saturation", 0.0, 100.0),
        ("default_lightness", 0.0, 100.0),
    ):
        if key not in data:
            continue
        try:
            value = float(data[key])
        except ValueError:
            warnings.append(f"{key} must be a number (got '{data[key]}')")
            continue
        if key == "min_span" and value <= minimum:
            warnings.append(f"min_span must be > 0 (got {value})")
            continue
        if not minimum <= value <= maximum:
            warnings.append(f"{key} must be {minimum:g}-{maximum:g} (got {value})")
            continue
        setattr(settings, key, value)

    if "memo" in data:
        settings.memo = parse_bool(data["memo"])
    if "debug" in data:
        settings.debug = parse_bool(data["debug"])

    _, data = sections.get(ORACLE_SECTION, (0, {}))
    settings.oracle_config = dict(data)
    if "timeout" in data:
        try:
            timeout = float(data["timeout"])
        except ValueError:
            timeout = None
        if timeout is None or not (math.isfinite(timeout) and timeout > 0):
            warnings.append(f"timeout must be a number > 0 (got '{data['timeout']}'), using default")
            del settings.oracle_config["timeout"]
    if "endpoint" in data and not is_http_url(data["endpoint"]):
        warnings.append(f"endpoint must be an http(s) URL (got '{data['endpoint']}'), using default")
        del settings.oracle_config["endpoint"]

    _, data = sections.get(SERVER_SECTION, (0, {}))
    settings.host = data.get("host", settings.host)
    if "port" in data:
        try:
            settings.port = int(data["port"])
        except ValueError:
            warnings.append(f"port must be an integer (got '{data['port']}')")

    return settings, warnings


def load_settings(path: Optional[str] = None) -> Tuple[HueMapSettings, List[str]]:
    """Read a config file; a missing file yields defaults plus a warning."""
    config_path = Path(path or DEFAULT_CONFIG_PATH).expanduser()
    if not config_path.exists():
        return HueMapSettings(), [f"Config not found: {config_path} (using defaults)"]

    sections, parse_warnings = parse_config_file(config_path)
    settings, warnings = build_settings(sections)
    return settings, parse_warnings + warnings
