from __future__ import annotations

from pathlib import Path

import streamlit as st

from earthlord.csv_io import load_location_fixes
from earthlord.models import LocationFix, StopReason
from earthlord.replay import replay_exploration, replay_track
from earthlord.sampler import SamplerConfig
from earthlord.timeutils import format_mmss

_STOP_LABELS = {
    StopReason.CLOSED: "闭环完成",
    StopReason.OVERSPEED: "超速停止",
    StopReason.MANUAL: "手动结束",
}


@st.cache_data(show_spinner=False)
def _load_fixes(path_csv: str, mtime: float) -> list[LocationFix]:
    _ = mtime  # part of cache key so updated files reload automatically
    fixes, _summary = load_location_fixes(path_csv)
    return fixes


def main() -> None:
    st.set_page_config(page_title="地球新主：探索轨迹回放", layout="wide")
    st.title("地球新主：探索轨迹回放与奖励模拟")

    with st.sidebar:
        st.subheader("数据")
        path_csv = st.text_input("定位CSV路径", value="sample_data/walk.csv")

        st.subheader("采样参数")
        d = SamplerConfig()
        min_accuracy = st.number_input("精度阈值（米）", value=d.min_accuracy_m, step=5.0)
        max_jump = st.number_input("最大跳变（米）", value=d.max_jump_distance_m, step=10.0)
        min_distance = st.number_input("新点最小距离（米）", value=d.min_distance_for_new_point_m, step=1.0)
        sample_interval = st.number_input("采点周期（秒）", value=d.sample_interval_s, step=0.5, min_value=0.5)

        with st.expander("高级参数（通常不用改）", expanded=False):
            min_interval = st.number_input("最小时间间隔（秒）", value=d.min_time_interval_s, step=0.5)
            speed_warning = st.number_input("超速警告（km/h）", value=d.speed_warning_kmh, step=1.0)
            speed_stop = st.number_input("超速停止（km/h）", value=d.speed_stop_kmh, step=1.0)
            closure_distance = st.number_input("闭环距离（米）", value=d.closure_distance_m, step=5.0)
            min_points = st.number_input("闭环最少点数", value=d.minimum_path_points, step=1, min_value=2)

        seed = st.number_input("掉落随机种子", value=42, step=1)

    p = Path(path_csv)
    if not p.exists():
        st.error(f"找不到文件：{path_csv!r}。可以先运行 scripts/generate_loop_walk_csv.py 生成示例数据。")
        return

    try:
        cfg = SamplerConfig(
            min_accuracy_m=float(min_accuracy),
            max_jump_distance_m=float(max_jump),
            min_time_interval_s=float(min_interval),
            min_distance_for_new_point_m=float(min_distance),
            sample_interval_s=float(sample_interval),
            speed_warning_kmh=float(speed_warning),
            speed_stop_kmh=float(speed_stop),
            closure_distance_m=float(closure_distance),
            minimum_path_points=int(min_points),
        )
    except ValueError as exc:
        st.error(str(exc))
        return

    fixes = _load_fixes(path_csv, p.stat().st_mtime)
    if not fixes:
        st.warning("CSV中没有可用的定位点。")
        return

    res = replay_track(fixes, cfg)
    track = res.track

    st.subheader("轨迹")
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("保留点数", str(track.point_count))
    c2.metric("有效距离", f"{track.distance_m:.1f} m")
    c3.metric("状态", _STOP_LABELS.get(track.stop_reason, "未结束") if track.stop_reason else "未结束")
    c4.metric("圈地面积", f"{res.enclosed_area_m2:.0f} m²")
    if track.speed_warning:
        st.warning(track.speed_warning)

    if track.points:
        st.map(
            {
                "lat": [pt.latitude for pt in track.points],
                "lon": [pt.longitude for pt in track.points],
            }
        )

    with st.expander("采样决策统计", expanded=False):
        st.dataframe(
            [{"decision": dec.value, "count": n} for dec, n in res.decisions.most_common()],
            use_container_width=True,
        )

    st.subheader("奖励")
    if st.button("结算本次探索", type="primary"):
        _service, result = replay_exploration(fixes, config=cfg, seed=int(seed))
        if result is None:
            st.error("探索未能开始。")
            return
        (st.success if result.is_success else st.info)(result.message)
        r1, r2, r3 = st.columns(3)
        r1.metric("等级", result.tier.display_name)
        r2.metric("经验", str(result.experience))
        r3.metric("时长", format_mmss(result.stats.duration_s))
        st.dataframe(
            [
                {
                    "物品": item.definition.name,
                    "稀有度": item.definition.rarity.display_name,
                    "品质": item.quality.display_name,
                    "数量": item.quantity,
                }
                for item in result.items
            ],
            use_container_width=True,
        )


if __name__ == "__main__":
    main()
