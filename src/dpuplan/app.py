from __future__ import annotations

import argparse
import logging

import pandas as pd

from dpuplan.core.errors import DpuError
from dpuplan.core.months import parse_month_label
from dpuplan.core.rounding import calculate_dpu
from dpuplan.logging_conf import configure_logging
from dpuplan.settings import default_settings
from dpuplan.trajectory.glide_path import calculate_glide_path, reduction_label

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dpuplan", description="DPU targets and glide paths")
    parser.add_argument("--log-level", type=str, default="WARNING")
    parser.add_argument(
        "--engine-log-level", type=str, default=None, help="Level for dpuplan loggers only (defaults to --log-level)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    dpu = sub.add_parser("dpu", help="DPU for one stage")
    dpu.add_argument("inspected", type=int)
    dpu.add_argument("faults", type=int)

    glide = sub.add_parser("glide", help="Monthly glide path to a target")
    glide.add_argument("--current", type=float, required=True, help="DPU at the start month")
    glide.add_argument("--target", type=float, required=True, help="Target DPU")
    glide.add_argument("--from", dest="start", type=str, required=True, help="Start month, e.g. Sep-25")
    glide.add_argument("--to", dest="end", type=str, required=True, help="Target month, e.g. Dec-25")
    return parser


def _glide_table(args: argparse.Namespace) -> str:
    start_year, start_month = parse_month_label(args.start)
    end_year, end_month = parse_month_label(args.end)
    path = calculate_glide_path(
        current_dpu=args.current,
        target_dpu=args.target,
        current_month=start_month,
        current_year=start_year,
        target_month=end_month,
        target_year=end_year,
        settings=default_settings(),
    )
    df = pd.DataFrame(
        [
            {
                "month": p.month,
                "target_dpu": round(p.target_dpu, 2),
                "cumulative": reduction_label(p.cumulative_reduction),
                "achievable": "yes" if p.is_achievable else "no",
            }
            for p in path.monthly_targets
        ]
    )
    header = (
        f"{path.start_month} {path.start_dpu:.2f} -> {path.target_dpu:.2f} "
        f"in {path.months_remaining} month(s): {path.required_monthly_reduction:.2f}/month "
        f"({path.daily_reduction_required:.3f}/day), {path.risk_assessment.value}"
    )
    return header + "\n" + df.to_string(index=False)


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    configure_logging(args.log_level, engine_level=args.engine_log_level)

    try:
        if args.command == "dpu":
            print(f"{calculate_dpu(args.inspected, args.faults):.2f}")
        else:
            print(_glide_table(args))
    except DpuError as exc:
        logger.error("%s", exc)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
