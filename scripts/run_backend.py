#!/usr/bin/env python3
"""Run the ephemeral share API with explicit args (avoids shell interpolation)."""
from __future__ import annotations

import argparse
import dataclasses

import uvicorn

from ephemeral_share.app import ShareServiceSettings, create_app


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=3001)
    parser.add_argument("--reaper", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--blob-root", default=None, help="Filesystem blob directory (local env)")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    settings = ShareServiceSettings.from_env()
    overrides = {}
    if args.reaper is not None:
        overrides["reaper_enabled"] = args.reaper
    if args.blob_root is not None:
        overrides["blob_root"] = args.blob_root
    if overrides:
        settings = dataclasses.replace(settings, **overrides)
    app = create_app(settings)
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
