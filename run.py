#!/usr/bin/env python3
"""
Sobriety Tracker - local launcher (FastAPI + SQLite)

Usage:
  python run.py                         # http://127.0.0.1:8000
  python run.py --db ~/tracker.sqlite3  # use another data file
  python run.py --host 0.0.0.0 --port 8000 --log-level debug
  python run.py --watch                 # live counter in the terminal, no server
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import threading
import time
import webbrowser
from pathlib import Path

import uvicorn

from sobriety.kvstore import SqliteKeyValueStore
from sobriety.progress import Elapsed, JourneyTicker, growth_stage
from sobriety.storage import StorageService


def open_browser_later(url: str) -> None:
    def _open() -> None:
        time.sleep(1.0)
        try:
            webbrowser.open(url)
        except webbrowser.Error as exc:
            logging.getLogger(__name__).warning("Could not open browser: %s", exc)

    threading.Thread(target=_open, daemon=True).start()


def format_elapsed(current: Elapsed) -> str:
    return f"{current.days} days, {current.hours} hours, {current.minutes} minutes ({growth_stage(current.days).value})"


async def watch(storage: StorageService, interval: float = 1.0, stop: asyncio.Event | None = None) -> int:
    """Print the running counter until ``stop`` is set (or Ctrl+C)."""
    start = await storage.get_sobriety_date()
    if start is None:
        print("No journey started yet. Open the app and press 'Begin my journey'.")
        return 1

    def show(current: Elapsed) -> None:
        print(f"\r{format_elapsed(current)}", end="", flush=True)

    async with JourneyTicker(start, show, interval=interval):
        await (stop or asyncio.Event()).wait()
    print()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(prog="Sobriety Tracker", description="Run the local sobriety tracker.")
    parser.add_argument("--host", default="127.0.0.1", help="Server host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Server port (default: 8000)")
    parser.add_argument("--db", default=None, help="SQLite data file (default: $SOBRIETY_TRACKER_DB or ./data.sqlite3)")
    parser.add_argument("--log-level", default="info", choices=["debug", "info", "warning", "error"])
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    parser.add_argument("--no-browser", action="store_true", help="Do not open a browser tab")
    parser.add_argument("--watch", action="store_true", help="Show a live counter in the terminal instead of serving")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.db:
        # the env var reaches reload workers, which import kvstore fresh
        os.environ["SOBRIETY_TRACKER_DB"] = str(Path(args.db).expanduser().resolve())

    if args.watch:
        return asyncio.run(watch(StorageService(SqliteKeyValueStore(os.environ.get("SOBRIETY_TRACKER_DB")))))

    url = f"http://{args.host if args.host != '0.0.0.0' else '127.0.0.1'}:{args.port}"
    print(f"\nStarting server: {url}")
    print("Press Ctrl+C to stop.\n")
    if not args.no_browser:
        open_browser_later(url)

    uvicorn.run("sobriety.main:app", host=args.host, port=args.port, reload=args.reload, log_level=args.log_level)
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        print("\nStopped.")
