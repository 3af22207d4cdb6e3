from __future__ import annotations

import argparse
import math
import random
from datetime import datetime
from pathlib import Path
from typing import Final

from earthlord.csv_io import write_fixes_csv
from earthlord.models import DEFAULT_TZ, LocationFix
from earthlord.timeutils import epoch_ms_from_dt, parse_dt

M_PER_DEG_LAT: Final[float] = 111_320.0


def generate_loop_walk(
    *,
    center_lat: float,
    center_lon: float,
    radius_m: float,
    speed_kmh: float,
    interval_s: float,
    seed: int,
    start: datetime,
    laps: float = 1.05,
    glitch_rate: float = 0.0,
    bad_accuracy_rate: float = 0.05,
) -> list[LocationFix]:
    """Generate fixes for a player walking once around a circle."""

    rng = random.Random(seed)
    cur_ms = epoch_ms_from_dt(start)

    circumference = 2.0 * math.pi * radius_m
    step_m = speed_kmh / 3.6 * interval_s
    steps = max(1, int(circumference * laps / step_m))
    m_per_deg_lon = M_PER_DEG_LAT * math.cos(math.radians(center_lat))

    out: list[LocationFix] = []
    for i in range(steps + 1):
        angle = 2.0 * math.pi * (i * step_m) / circumference
        # small jitter, like a phone held in hand
        north = radius_m * math.sin(angle) + rng.uniform(-1.5, 1.5)
        east = radius_m * math.cos(angle) - radius_m + rng.uniform(-1.5, 1.5)

        if rng.random() < glitch_rate:
            # GPS glitch: a fix hundreds of meters away
            north += rng.choice([-1, 1]) * rng.uniform(150, 400)

        accuracy = rng.choice([4.0, 6.0, 8.0, 12.0, 20.0])
        if rng.random() < bad_accuracy_rate:
            accuracy = rng.choice([-1.0, 65.0, 120.0])

        out.append(
            LocationFix(
                latitude=center_lat + north / M_PER_DEG_LAT,
                longitude=center_lon + east / m_per_deg_lon,
                horizontal_accuracy_m=accuracy,
                timestamp_ms=cur_ms,
            )
        )
        cur_ms += int(interval_s * 1000 + rng.uniform(-200, 200))

    return out


def main() -> int:
    p = argparse.ArgumentParser(description="Generate a synthetic loop walk CSV for replay/testing.")
    p.add_argument("--out", type=str, default="sample_data/walk.csv", help="Output CSV path")
    p.add_argument("--center-lat", type=float, default=31.2304, help="Loop start latitude")
    p.add_argument("--center-lon", type=float, default=121.4737, help="Loop start longitude")
    p.add_argument("--radius-m", type=float, default=80.0, help="Loop radius in meters")
    p.add_argument("--speed-kmh", type=float, default=4.5, help="Walking speed")
    p.add_argument("--interval", type=float, default=2.0, help="Seconds between fixes")
    p.add_argument("--seed", type=int, default=42, help="Random seed (reproducible)")
    p.add_argument(
        "--glitch-rate",
        type=float,
        default=0.0,
        help="Share of fixes thrown hundreds of meters off (the sampler stops on the implied overspeed)",
    )
    p.add_argument(
        "--start",
        type=str,
        default="2026-01-01 08:00:00",
        help="Start local time in Asia/Shanghai, e.g. '2026-01-01 08:00:00'",
    )
    args = p.parse_args()

    fixes = generate_loop_walk(
        center_lat=args.center_lat,
        center_lon=args.center_lon,
        radius_m=args.radius_m,
        speed_kmh=args.speed_kmh,
        interval_s=args.interval,
        seed=args.seed,
        start=parse_dt(args.start, DEFAULT_TZ),
        glitch_rate=args.glitch_rate,
    )
    n = write_fixes_csv(fixes, Path(args.out))
    print(f"Generated: {args.out} (rows={n}, seed={args.seed})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
