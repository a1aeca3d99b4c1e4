from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schedule_graphic.core.config import settings
from schedule_graphic.core.http import close_http_clients
from schedule_graphic.data.providers.matches_file import load_current_matches
from schedule_graphic.services.compositor import render
from schedule_graphic.services.surface import normalize_format


async def _run(args: argparse.Namespace) -> int:
    fmt = normalize_format(args.format)
    matches = load_current_matches(args.matches)
    try:
        result = await render(matches, args.title, args.background, backgrounds_dir=args.backgrounds_dir)
    finally:
        await close_http_clients()
    data = result.encode(fmt, args.quality)
    out = Path(args.out or f"schedule.{fmt.lower()}")
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(data)
    print(
        f"rendered {len(result.plan.rows)} matches -> {out} "
        f"({result.plan.canvas_width}x{result.plan.canvas_height}, {len(data)} bytes, "
        f"logos {len(result.session.logos)}, background={'image' if result.background_loaded else 'gradient'})"
    )
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Render the schedule graphic from a match list file")
    parser.add_argument("--matches", default=settings.matches_file)
    parser.add_argument("--title", default=None)
    parser.add_argument("--background", default=settings.default_background or None)
    parser.add_argument("--backgrounds-dir", default=settings.backgrounds_dir, help="directory --background names are read from")
    parser.add_argument("--out", default=None)
    parser.add_argument("--format", default="png", choices=["png", "jpeg", "jpg", "webp"])
    parser.add_argument("--quality", type=int, default=100)
    args = parser.parse_args()
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
