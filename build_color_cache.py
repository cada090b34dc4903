#!/usr/bin/env python3
"""
HUEMAP Color Cache Builder

Fills the SQLite color cache read by the 'database' and 'cached' oracles
by asking The Color API for every integer HSL point in the given ranges.
Rows already present are skipped, so an interrupted run can be resumed.

Usage:
    python3 build_color_cache.py
    python3 build_color_cache.py --saturation 60 60 --lightness 50 50
    COLOR_CACHE_CONCURRENCY=8 python3 build_color_cache.py --db data/colors.sqlite

Ranges and limits default to the COLOR_CACHE_* environment variables.

Returns:
    Exit 0 if every point was cached
    Exit 1 if any lookup failed
"""

import argparse
import asyncio
import logging
import os
import sqlite3
import sys
import time
from pathlib import Path
from typing import Dict, Iterable, Tuple

from huemap_lib.colors import ColorDescriptor
from huemap_lib.oracles import BaseOracle, ColorApiOracle, OracleError
from huemap_lib.oracles.database import SCHEMA, resolve_database_path

_logger = logging.getLogger(__name__)

# Linear backoff: RETRY_DELAY * (attempt + 1) seconds
RETRY_DELAY = 0.5
# Points scheduled per gather() and committed together
BATCH_SIZE = 1000

INSERT_COLOR = (
    "INSERT OR REPLACE INTO colors ("
    "hue, saturation, lightness, name, "
    "rgb_value, rgb_r, rgb_g, rgb_b, "
    "hsl_value, hsl_h, hsl_s, hsl_l"
    ") VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
)
SELECT_EXISTS = "SELECT 1 FROM colors WHERE hue = ? AND saturation = ? AND lightness = ? LIMIT 1"


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        _logger.warning(f"[HUEMAP] Ignoring {name}={value!r} (not an integer), using {default}")
        return default


def open_cache(path: Path) -> sqlite3.Connection:
    """Create (if needed) and open the cache for writing."""
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA journal_mode = WAL")
    conn.executescript(SCHEMA)
    return conn


def iter_points(
    hues: Tuple[int, int],
    saturations: Tuple[int, int],
    lightnesses: Tuple[int, int],
) -> Iterable[Tuple[int, int, int]]:
    """Every (hue, saturation, lightness) in the inclusive ranges, hue varying fastest."""
    for saturation in range(saturations[0], saturations[1] + 1):
        for lightness in range(lightnesses[0], lightnesses[1] + 1):
            for hue in range(hues[0], hues[1] + 1):
                yield hue, saturation, lightness


async def fetch_with_retry(
    oracle: BaseOracle,
    hue: int,
    saturation: int,
    lightness: int,
    retry_limit: int,
    retry_delay: float = RETRY_DELAY,
) -> ColorDescriptor:
    """
    Look up one point, retrying transport failures and 5xx responses.

    Raises:
        OracleError: On a 4xx response, or once retry_limit retries are used up
    """
    attempt = 0
    while True:
        try:
            return await oracle.lookup(hue, saturation, lightness)
        except OracleError as e:
            if not e.retryable or attempt >= retry_limit:
                raise
            delay = retry_delay * (attempt + 1)
            _logger.debug(f"[HUEMAP] Retry {attempt + 1}/{retry_limit} for {hue}/{saturation}/{lightness} in {delay:g}s: {e}")
            await asyncio.sleep(delay)
            attempt += 1


def store_color(conn: sqlite3.Connection, hue: int, saturation: int, lightness: int, color: ColorDescriptor):
    conn.execute(INSERT_COLOR, (
        hue, saturation, lightness, color.name,
        color.rgb.value, color.rgb.r, color.rgb.g, color.rgb.b,
        color.hsl.value, color.hsl.h, color.hsl.s, color.hsl.l,
    ))


async def build_cache(
    conn: sqlite3.Connection,
    oracle: BaseOracle,
    hues: Tuple[int, int] = (0, 359),
    saturations: Tuple[int, int] = (0, 100),
    lightnesses: Tuple[int, int] = (0, 100),
    concurrency: int = 4,
    retry_limit: int = 4,
    retry_delay: float = RETRY_DELAY,
) -> Dict[str, int]:
    """
    Populate the cache for the given ranges.

    Returns:
        Counters: inserted, skipped, requests, failed
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1 (got {concurrency})")

    stats = {"inserted": 0, "skipped": 0, "requests": 0, "failed": 0}
    semaphore = asyncio.Semaphore(concurrency)

    async def cache_point(hue: int, saturation: int, lightness: int) -> None:
        async with semaphore:
            stats["requests"] += 1
            try:
                color = await fetch_with_retry(oracle, hue, saturation, lightness, retry_limit, retry_delay)
            except OracleError as e:
                stats["failed"] += 1
                _logger.error(f"[HUEMAP] Failed to cache {hue}/{saturation}/{lightness}: {e}")
                return
            store_color(conn, hue, saturation, lightness, color)
            stats["inserted"] += 1

    batch = []
    try:
        for hue, saturation, lightness in iter_points(hues, saturations, lightnesses):
            if conn.execute(SELECT_EXISTS, (hue, saturation, lightness)).fetchone():
                stats["skipped"] += 1
                continue
            batch.append(cache_point(hue, saturation, lightness))
            if len(batch) >= BATCH_SIZE:
                await asyncio.gather(*batch)
                batch = []
                conn.commit()
        await asyncio.gather(*batch)
    finally:
        conn.commit()
    return stats


def main():
    parser = argparse.ArgumentParser(
        description='Populate the HUEMAP SQLite color cache from The Color API',
        epilog='Example: python3 build_color_cache.py --saturation 60 60 --lightness 50 50'
    )
    parser.add_argument('--db', type=str, default=None,
                        help='Cache path (default: $COLOR_DATABASE_PATH or data/colors.sqlite)')
    parser.add_argument('--hue', type=int, nargs=2, metavar=('START', 'END'),
                        default=[_env_int('COLOR_CACHE_HUE_START', 0), _env_int('COLOR_CACHE_HUE_END', 359)])
    parser.add_argument('--saturation', type=int, nargs=2, metavar=('START', 'END'),
                        default=[_env_int('COLOR_CACHE_SATURATION_START', 0), _env_int('COLOR_CACHE_SATURATION_END', 100)])
    parser.add_argument('--lightness', type=int, nargs=2, metavar=('START', 'END'),
                        default=[_env_int('COLOR_CACHE_LIGHTNESS_START', 0), _env_int('COLOR_CACHE_LIGHTNESS_END', 100)])
    parser.add_argument('--concurrency', type=int, default=_env_int('COLOR_CACHE_CONCURRENCY', 4))
    parser.add_argument('--retry-limit', type=int, default=_env_int('COLOR_CACHE_RETRY_LIMIT', 4))
    parser.add_argument('--endpoint', type=str, default=None, help='Color API endpoint override')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log every retry')
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='[HUEMAP] %(asctime)s.%(msecs)03d %(message)s', datefmt='%H:%M:%S')

    db_path = Path(args.db).expanduser() if args.db else resolve_database_path()
    oracle = ColorApiOracle({'endpoint': args.endpoint} if args.endpoint else None)
    conn = open_cache(db_path)

    start_time = time.time()
    try:
        stats = asyncio.run(build_cache(
            conn, oracle,
            hues=tuple(args.hue),
            saturations=tuple(args.saturation),
            lightnesses=tuple(args.lightness),
            concurrency=args.concurrency,
            retry_limit=args.retry_limit,
        ))
    except KeyboardInterrupt:
        _logger.info("Interrupted, progress so far is saved")
        sys.exit(1)
    finally:
        conn.close()

    _logger.info(f"Inserted {stats['inserted']} colors. Skipped {stats['skipped']} existing entries.")
    _logger.info(f"Total requests sent: {stats['requests']} in {time.time() - start_time:.1f}s. "
                 f"Database saved at {db_path}")
    if stats['failed']:
        _logger.error(f"{stats['failed']} points failed, run again to retry them")

    sys.exit(1 if stats['failed'] else 0)


if __name__ == '__main__':
    main()
