#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import argparse
import logging
import pathlib
from dataclasses import replace
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from .auth import AuthError
from .config import ConfigError, Settings, load_settings
from .missing import DOWNLOADED, EMPTY, LOCAL_ONLY, MISSING, compare, generate_csv_report
from .pipeline import RunOptions, run_download_job
from .store import CatalogStore, CatalogStoreError

LOG = logging.getLogger("slashdl.cli")


def _setup_logging(log_dir: pathlib.Path) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "app.log"

    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    logging.getLogger("slashdl").setLevel(logging.DEBUG)

    # Console handler (INFO)
    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        ch = logging.StreamHandler()
        ch.setLevel(logging.INFO)
        ch.setFormatter(fmt)
        root.addHandler(ch)

    # Rotating file handler
    file_handler: Optional[RotatingFileHandler] = None
    for handler in root.handlers:
        if isinstance(handler, RotatingFileHandler) and getattr(handler, "baseFilename", None) == str(log_path.resolve()):
            file_handler = handler
            break
    if file_handler is None:
        file_handler = RotatingFileHandler(log_path, maxBytes=2 * 1024 * 1024, backupCount=5, encoding="utf-8")
        root.addHandler(file_handler)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(fmt)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="slashdl", description="Download every chapter page of a slashlib title.")
    parser.add_argument("--config", type=pathlib.Path, default=None, help="Path to config.json (default: ./config.json)")
    parser.set_defaults(refresh_catalog=False, exhaustive_scroll=False, single_image=False, show_browser=False)
    sub = parser.add_subparsers(dest="command")

    dl = sub.add_parser("download", help="Log in, resolve the chapter list and download pages (default)")
    dl.add_argument("--refresh-catalog", action="store_true", help="Ignore the cached chapters.json and rediscover")
    dl.add_argument("--exhaustive-scroll", action="store_true", help="Keep scrolling the chapter list until it stops changing")
    dl.add_argument("--single-image", action="store_true", help="Save only the first image of each chapter as image.jpg")
    dl.add_argument("--show-browser", action="store_true", help="Run the browser with a visible window")

    miss = sub.add_parser("missing", help="Compare chapters.json with the downloads folder")
    miss.add_argument("--csv", type=pathlib.Path, default=None, help="Report path (default: ./chapter_report_<timestamp>.csv)")
    return parser


def _run_download(settings: Settings, args: argparse.Namespace) -> int:
    options = RunOptions(
        refresh_catalog=args.refresh_catalog,
        exhaustive_scroll=args.exhaustive_scroll,
        single_image=args.single_image,
    )
    results = run_download_job(settings, options)
    incomplete = [r for r in results if not r.success]
    for res in incomplete:
        if res.skipped:
            LOG.warning("Skipped %s: %s", res.title.strip(), res.skipped)
        else:
            LOG.warning("Incomplete %s: pages %s missing", res.title.strip(), res.failed)
    LOG.info("Done: %d chapters, %d incomplete.", len(results), len(incomplete))
    return 0


def _run_missing(settings: Settings, args: argparse.Namespace) -> int:
    chapters = CatalogStore(settings.chapters_file).load()
    if chapters is None:
        LOG.error("%s not found; run a download first.", settings.chapters_file)
        return 1
    statuses = compare(chapters, settings.output_dir)
    output = args.csv or pathlib.Path.cwd() / f"chapter_report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"
    generate_csv_report(statuses, output)

    counts = {key: sum(1 for s in statuses if s.status == key) for key in (DOWNLOADED, EMPTY, MISSING, LOCAL_ONLY)}
    print(f"Chapters in catalog: {len(chapters)}")
    print(f"Downloaded: {counts[DOWNLOADED]}  Empty: {counts[EMPTY]}  Missing: {counts[MISSING]}  Local only: {counts[LOCAL_ONLY]}")
    missing = [s.title for s in statuses if s.status == MISSING]
    if missing:
        print(f"First missing: {', '.join(missing[:10])}{'...' if len(missing) > 10 else ''}")
    print(f"Report written to: {output}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    args.command = args.command or "download"
    try:
        settings = load_settings(args.config, require_credentials=args.command == "download")
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO)
        LOG.error("Configuration error: %s", exc)
        return 1
    _setup_logging(settings.log_dir)
    if args.show_browser:
        settings = replace(settings, headless=False)

    try:
        if args.command == "missing":
            return _run_missing(settings, args)
        return _run_download(settings, args)
    except (AuthError, CatalogStoreError) as exc:
        LOG.error("Error: %s", exc)
        return 1
    except KeyboardInterrupt:
        LOG.info("Interrupted.")
        return 1
    except Exception:
        LOG.exception("Unhandled error")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
