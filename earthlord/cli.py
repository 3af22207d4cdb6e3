"""Command-line interface for earthlord.

Run:
    python -m earthlord replay --csv walk.csv
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from typing import Any

from earthlord.backend import BackendConfig, SupabaseBackend
from earthlord.catalog import ItemCatalog
from earthlord.csv_io import load_location_fixes, write_track_csv
from earthlord.inspect import inspect_fixes
from earthlord.models import DEFAULT_TZ, ExplorationResult
from earthlord.replay import replay_exploration, replay_track
from earthlord.sampler import SamplerConfig
from earthlord.timeutils import dt_from_epoch_ms


def _sampler_config(args: argparse.Namespace) -> SamplerConfig:
    return SamplerConfig(
        min_accuracy_m=args.min_accuracy,
        max_jump_distance_m=args.max_jump,
        min_time_interval_s=args.min_interval,
        min_distance_for_new_point_m=args.min_distance,
        sample_interval_s=args.sample_interval,
        speed_warning_kmh=args.speed_warning,
        speed_stop_kmh=args.speed_stop,
        closure_distance_m=args.closure_distance,
        minimum_path_points=args.min_points,
    )


def _cmd_inspect(args: argparse.Namespace) -> int:
    fixes, summary = load_location_fixes(args.csv)
    res = inspect_fixes(fixes, min_accuracy_m=args.min_accuracy)

    print("### CSV字段")
    print(", ".join(summary.fieldnames))
    print()

    print("### 行数")
    print(f"total_rows={summary.rows_total}, parsed={summary.rows_parsed}, skipped={summary.rows_skipped}")
    print()

    if res.min_time_ms is not None and res.max_time_ms is not None:
        print("### 时间范围（本地时区）")
        start = dt_from_epoch_ms(res.min_time_ms, args.tz)
        end = dt_from_epoch_ms(res.max_time_ms, args.tz)
        print(f"start={start.isoformat(sep=' ')}, end={end.isoformat(sep=' ')}")
        print()

    if res.delta is not None:
        print("### 采样间隔（秒）")
        print(
            f"count={res.delta.count}, min={res.delta.min_s:.3f}, median={res.delta.median_s:.3f}, "
            f"p95={res.delta.p95_s:.3f}, max={res.delta.max_s:.3f}"
        )
        print()

    print("### 精度")
    print(f"invalid(<0)={res.invalid_accuracy}, poor(>{args.min_accuracy:g}m)={res.poor_accuracy}")
    print(f"max_implied_speed={res.max_speed_kmh:.1f} km/h")
    print()

    if args.json:
        payload = asdict(res) | {
            "rows_total": summary.rows_total,
            "rows_parsed": summary.rows_parsed,
            "rows_skipped": summary.rows_skipped,
            "fieldnames": list(summary.fieldnames),
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


def _cmd_replay(args: argparse.Namespace) -> int:
    fixes, _ = load_location_fixes(args.csv)
    res = replay_track(fixes, _sampler_config(args), use_ticker=not args.every_fix)
    track = res.track

    print(f"ticks={res.ticks}, points={track.point_count}, distance={track.distance_m:.1f}m")
    print(f"closed={track.closed}, stop_reason={track.stop_reason.value if track.stop_reason else '-'}")
    if track.closed:
        print(f"enclosed_area={res.enclosed_area_m2:.0f}m²")
    print("decisions: " + ", ".join(f"{d.value}={n}" for d, n in res.decisions.most_common()))

    if args.out:
        write_track_csv(track.points, args.out, args.tz)
        print(f"已导出：{args.out}")
    return 0


def _result_payload(result: ExplorationResult) -> dict[str, Any]:
    return {
        "success": result.is_success,
        "message": result.message,
        "tier": result.tier.value,
        "experience": result.experience,
        "distance_m": round(result.distance_m, 2),
        "points": result.point_count,
        "duration": result.stats.duration_mmss,
        "stop_reason": result.stop_reason.value,
        "enclosed_area_m2": round(result.enclosed_area_m2, 1),
        "start_time": result.start_time.isoformat(),
        "end_time": result.end_time.isoformat(),
        "session_id": result.session_id,
        "items": [
            {
                "item_id": item.item_id,
                "name": item.definition.name,
                "rarity": item.definition.rarity.value,
                "quality": item.quality.value,
                "quantity": item.quantity,
            }
            for item in result.items
        ],
    }


def _cmd_explore(args: argparse.Namespace) -> int:
    fixes, _ = load_location_fixes(args.csv)
    if not fixes:
        print("CSV中没有可用的定位点", file=sys.stderr)
        return 1

    backend: SupabaseBackend | None = None
    if args.backend:
        cfg = BackendConfig.from_env()
        if cfg is None:
            print("未配置 EARTHLORD_SUPABASE_URL / EARTHLORD_SUPABASE_KEY", file=sys.stderr)
            return 2
        backend = SupabaseBackend(cfg)

    catalog = ItemCatalog(backend.fetch_item_definitions if backend is not None else None)
    service, result = replay_exploration(
        fixes,
        config=_sampler_config(args),
        catalog=catalog,
        backend=backend,
        seed=args.seed,
    )
    if service.speed_warning:
        print(f"警告：{service.speed_warning}", file=sys.stderr)
    if result is None:
        return 1
    if service.last_error:
        print(service.last_error, file=sys.stderr)

    if args.json:
        print(json.dumps(_result_payload(result), ensure_ascii=False, indent=2))
        return 0

    print(result.message)
    print(
        f"等级={result.tier.display_name}, 距离={result.distance_m:.1f}m, 点数={result.point_count}, "
        f"时长={result.stats.duration_mmss}, 经验={result.experience}"
    )
    if result.enclosed_area_m2 > 0:
        print(f"圈地面积≈{result.enclosed_area_m2:.0f}m²")
    for item in result.items:
        print(f"- {item.definition.name} [{item.definition.rarity.display_name}] [{item.quality.display_name}]")
    return 0


def _add_sampler_args(p: argparse.ArgumentParser) -> None:
    d = SamplerConfig()
    g = p.add_argument_group("采样参数")
    g.add_argument("--min-accuracy", type=float, default=d.min_accuracy_m, help="精度阈值（米），超过则丢弃")
    g.add_argument("--max-jump", type=float, default=d.max_jump_distance_m, help="最大跳变距离（米）")
    g.add_argument("--min-interval", type=float, default=d.min_time_interval_s, help="最小时间间隔（秒）")
    g.add_argument("--min-distance", type=float, default=d.min_distance_for_new_point_m, help="新点最小距离（米）")
    g.add_argument("--sample-interval", type=float, default=d.sample_interval_s, help="采点周期（秒）")
    g.add_argument("--speed-warning", type=float, default=d.speed_warning_kmh, help="超速警告阈值（km/h）")
    g.add_argument("--speed-stop", type=float, default=d.speed_stop_kmh, help="超速停止阈值（km/h）")
    g.add_argument("--closure-distance", type=float, default=d.closure_distance_m, help="闭环距离（米）")
    g.add_argument("--min-points", type=int, default=d.minimum_path_points, help="闭环最少点数")


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""

    p = argparse.ArgumentParser(prog="earthlord")
    p.add_argument("--log-level", type=str, default="WARNING", help="日志级别（DEBUG/INFO/WARNING）")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_ins = sub.add_parser("inspect", help="分析定位CSV的时间范围/采样间隔/精度")
    p_ins.add_argument("--csv", type=str, default="Path.csv", help="输入CSV路径")
    p_ins.add_argument("--tz", type=str, default=DEFAULT_TZ, help="时区（IANA），默认 Asia/Shanghai")
    p_ins.add_argument("--min-accuracy", type=float, default=SamplerConfig().min_accuracy_m, help="精度阈值（米）")
    p_ins.add_argument("--json", action="store_true", help="额外输出JSON（便于后处理）")
    p_ins.set_defaults(func=_cmd_inspect)

    p_rep = sub.add_parser("replay", help="按采样规则回放定位CSV，输出轨迹与闭环结果")
    p_rep.add_argument("--csv", type=str, default="Path.csv", help="输入CSV路径")
    p_rep.add_argument("--tz", type=str, default=DEFAULT_TZ, help="时区（IANA）")
    p_rep.add_argument("--out", type=str, default=None, help="导出保留轨迹点的CSV路径")
    p_rep.add_argument("--every-fix", action="store_true", help="不按采点周期降采样，逐个定位点回放")
    _add_sampler_args(p_rep)
    p_rep.set_defaults(func=_cmd_replay)

    p_exp = sub.add_parser("explore", help="回放一次完整探索：轨迹 → 奖励等级 → 掉落物品")
    p_exp.add_argument("--csv", type=str, default="Path.csv", help="输入CSV路径")
    p_exp.add_argument("--seed", type=int, default=None, help="随机种子（可复现掉落）")
    p_exp.add_argument("--backend", action="store_true", help="使用 Supabase 后端（读取环境变量）保存记录")
    p_exp.add_argument("--json", action="store_true", help="以JSON输出结果")
    _add_sampler_args(p_exp)
    p_exp.set_defaults(func=_cmd_explore)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
