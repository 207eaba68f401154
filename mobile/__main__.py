"""Module entry point: python -m mobile ..."""

from __future__ import annotations

from mobile.main import main


if __name__ == "__main__":
    raise SystemExit(main())
