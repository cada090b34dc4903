#!/usr/bin/env python3
"""
HUEMAP Configuration Validator

Validates huemap.cfg syntax and settings without starting the service.
Useful for checking config before deployment or debugging issues.

Usage:
    python3 validate_config.py /path/to/huemap.cfg
    python3 validate_config.py ~/.config/huemap/huemap.cfg

Returns:
    Exit 0 if config is valid
    Exit 1 if errors found
"""

import sys
import argparse
from pathlib import Path
from typing import Dict, List

from huemap_lib.oracles import list_oracles
from huemap_lib.oracles.database import DATABASE_PATH_ENV, resolve_database_path
from huemap_lib.settings import (
    KNOWN_SECTIONS, ORACLE_SECTION, SERVER_SECTION, SETTINGS_SECTION,
    VALID_BOOLS, VALID_TRAVERSALS, is_http_url, parse_config_file,
)

# ANSI color codes
GREEN = '\033[0;32m'
YELLOW = '\033[1;33m'
RED = '\033[0;31m'
CYAN = '\033[0;36m'
BOLD = '\033[1m'
NC = '\033[0m'  # No Color


class ConfigValidator:
    """Validates HUEMAP configuration files."""

    VALID_ORACLES = list_oracles()
    VALID_TRAVERSALS = list(VALID_TRAVERSALS)
    VALID_BOOLS = list(VALID_BOOLS)

    def __init__(self, config_path: str):
        self.config_path = Path(config_path).expanduser()
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.settings: Dict[str, str] = {}
        self.oracle: Dict[str, str] = {}
        self.server: Dict[str, str] = {}

    def validate(self) -> bool:
        """Run all validation checks."""
        if not self._check_file_exists():
            return False

        self._parse_config()

        if not self.errors:
            self._validate_settings()
            self._validate_oracle()
            self._validate_server()

        return len(self.errors) == 0

    def _check_file_exists(self) -> bool:
        """Check if config file exists."""
        if not self.config_path.exists():
            self.errors.append(f"Config file not found: {self.config_path}")
            return False
        if not self.config_path.is_file():
            self.errors.append(f"Path is not a file: {self.config_path}")
            return False
        return True

    def _parse_config(self):
        """Parse INI-style config file."""
        try:
            sections, warnings = parse_config_file(self.config_path)
        except (OSError, UnicodeDecodeError) as e:
            self.errors.append(f"Failed to parse config: {e}")
            return

        self.warnings.extend(warnings)
        for name, (line_num, data) in sections.items():
            if name not in KNOWN_SECTIONS:
                self.warnings.append(f"Unknown section: [{name}] (line {line_num})")
        self.settings = sections.get(SETTINGS_SECTION, (0, {}))[1]
        self.oracle = sections.get(ORACLE_SECTION, (0, {}))[1]
        self.server = sections.get(SERVER_SECTION, (0, {}))[1]

    def _validate_settings(self):
        """Validate global settings."""
        if not self.settings:
            self.warnings.append(f"No [{SETTINGS_SECTION}] section found (will use defaults)")
            return

        oracle = self.settings.get('oracle', 'api').lower()
        if oracle not in self.VALID_ORACLES:
            self.errors.append(f"Invalid oracle '{oracle}' (valid: {', '.join(self.VALID_ORACLES)})")

        traversal = self.settings.get('traversal', 'stack').lower()
        if traversal not in self.VALID_TRAVERSALS:
            self.errors.append(f"Invalid traversal '{traversal}' (valid: {', '.join(self.VALID_TRAVERSALS)})")

        if 'min_span' in self.settings:
            try:
                val = float(self.settings['min_span'])
                if val <= 0:
                    self.errors.append(f"min_span must be > 0 (got {val})")
                elif val < 1:
                    self.warnings.append(f"min_span below 1 behaves like 1 (got {val}), midpoints are whole degrees")
                elif val > 90:
                    self.warnings.append(f"min_span {val} is very coarse, narrow color bands will be missed")
            except ValueError:
                self.errors.append(f"min_span must be a number (got '{self.settings['min_span']}')")

        for key in ('default_saturation', 'default_lightness'):
            if key in self.settings:
                try:
                    val = float(self.settings[key])
                    if not (0.0 <= val <= 100.0):
                        self.errors.append(f"{key} must be 0-100 (got {val})")
                except ValueError:
                    self.errors.append(f"{key} must be a number (got '{self.settings[key]}')")

        for key in ('memo', 'debug'):
            if key in self.settings and self.settings[key].lower() not in self.VALID_BOOLS:
                self.warnings.append(f"{key} should be one of {', '.join(self.VALID_BOOLS)} (got '{self.settings[key]}')")

    def _validate_oracle(self):
        """Validate oracle options against the selected oracle."""
        oracle = self.settings.get('oracle', 'api').lower()

        if 'timeout' in self.oracle:
            try:
                val = float(self.oracle['timeout'])
                if val <= 0:
                    self.errors.append(f"timeout must be > 0 (got {val})")
            except ValueError:
                self.errors.append(f"timeout must be a number (got '{self.oracle['timeout']}')")

        if 'endpoint' in self.oracle and not is_http_url(self.oracle['endpoint']):
            self.errors.append(f"endpoint must be an http(s) URL (got '{self.oracle['endpoint']}')")

        if oracle in ('database', 'cached'):
            path = resolve_database_path(self.oracle.get('database_path'))
            if not path.is_file():
                message = f"Color cache not found: {path} (build it with build_color_cache.py, or set {DATABASE_PATH_ENV})"
                if oracle == 'database':
                    self.errors.append(message)
                else:
                    self.warnings.append(message + ", every lookup will hit the API")

    def _validate_server(self):
        """Validate HTTP server options."""
        if 'port' in self.server:
            try:
                port = int(self.server['port'])
                if not (1 <= port <= 65535):
                    self.errors.append(f"port must be 1-65535 (got {port})")
                elif port < 1024:
                    self.warnings.append(f"port {port} is privileged and needs root")
            except ValueError:
                self.errors.append(f"port must be an integer (got '{self.server['port']}')")

    def print_results(self):
        """Print validation results."""
        print(f"\n{BOLD}{CYAN}HUEMAP Configuration Validator{NC}")
        print(f"Config: {self.config_path}\n")

        if self.errors:
            print(f"{RED}{BOLD}❌ ERRORS ({len(self.errors)}):{NC}")
            for error in self.errors:
                print(f"  {RED}✗{NC} {error}")
            print()

        if self.warnings:
            print(f"{YELLOW}{BOLD}⚠️  WARNINGS ({len(self.warnings)}):{NC}")
            for warning in self.warnings:
                print(f"  {YELLOW}⚠{NC} {warning}")
            print()

        if not self.errors and not self.warnings:
            print(f"{GREEN}{BOLD}✅ Configuration is valid!{NC}\n")
            print(f"  Oracle: {self.settings.get('oracle', 'api')}")
            print(f"  Settings: {len(self.settings)} option(s) configured")
        elif not self.errors:
            print(f"{GREEN}{BOLD}✅ Configuration is valid (with warnings){NC}\n")
            print(f"  Oracle: {self.settings.get('oracle', 'api')}")
        else:
            print(f"{RED}{BOLD}❌ Configuration has errors{NC}\n")


def main():
    parser = argparse.ArgumentParser(
        description='Validate HUEMAP configuration file',
        epilog='Example: python3 validate_config.py ~/.config/huemap/huemap.cfg'
    )
    parser.add_argument('config', help='Path to huemap.cfg file')
    parser.add_argument('-q', '--quiet', action='store_true', help='Only show errors (no warnings)')
    args = parser.parse_args()

    validator = ConfigValidator(args.config)
    is_valid = validator.validate()

    if args.quiet:
        validator.warnings = []  # Suppress warnings in quiet mode

    validator.print_results()

    sys.exit(0 if is_valid else 1)


if __name__ == '__main__':
    main()
