from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from prepkit.services.job_description_fetcher import FetchError, fetch_job_description


def main() -> None:
    parser = argparse.ArgumentParser(description="Fetch a job posting page and extract its job description text.")
    parser.add_argument("url", help="Job posting URL (http or https)")
    parser.add_argument(
        "--out",
        default=None,
        help="Write the text to this path instead of stdout",
    )
    parser.add_argument("--verbose", action="store_true", help="Log fetch progress to stderr")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, format="%(message)s")

    try:
        text = fetch_job_description(args.url)
    except FetchError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text + "\n", encoding="utf-8")
        print(f"Wrote {len(text)} chars to {out_path}")
    else:
        print(text)


if __name__ == "__main__":
    main()
