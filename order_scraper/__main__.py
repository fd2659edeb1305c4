from __future__ import annotations

from order_scraper.cli import main

if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
