"""Module entry point: python -m fare_estimator ..."""

from __future__ import annotations

from fare_estimator.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
