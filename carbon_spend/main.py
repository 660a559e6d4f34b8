"""
main.py – CLI entry point for the spend-based carbon footprint engine.

Usage
-----
Baseline totals by category (bundled demo data unless files are given):
    python -m carbon_spend.main baseline
    python -m carbon_spend.main baseline --transactions tx.csv --emission-factors ef.csv --fx fx.csv

Scenario vs baseline:
    python -m carbon_spend.main scenario --scenario scenario.json
    python -m carbon_spend.main demo            # bundled "cut flights + move cloud" scenario

Per-transaction Scope 3 footprints for card transactions:
    python -m carbon_spend.main footprints --transactions card_tx.json --method scope3_upstream

Common options:
    --data-dir "carbon_spend/data/"
    --out result.json
    --verbose
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from carbon_spend.calculations import Totals, baseline_totals, compare_totals, top_categories
from carbon_spend.config import Config, get_config
from carbon_spend.constants import (
    ALLOWED_METHODS,
    DEMO_CARD_TRANSACTIONS_FILE,
    DEMO_EMISSION_FACTORS_FILE,
    DEMO_FX_FILE,
    DEMO_TRANSACTIONS_FILE,
)
from carbon_spend.emission_factors import index_fx_rates
from carbon_spend.estimate import estimate_many, summarize_footprints
from carbon_spend.io_utils import (
    load_card_transactions,
    load_emission_factors,
    load_fx_rates,
    load_scenario,
    load_transactions,
    write_json,
)
from carbon_spend.scenarios import DEMO_SCENARIO, apply_scenario

console = Console()


# ─────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────

def _setup_logging(config: Config, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.log_level,
        format="%(asctime)s  %(levelname)-8s  %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_config(args: argparse.Namespace) -> Optional[Config]:
    try:
        config = get_config(
            method=getattr(args, "method", None),
            data_dir=args.data_dir,
        )
    except EnvironmentError as exc:
        console.print(f"[red]Config error:[/] {exc}")
        return None
    _setup_logging(config, args.verbose)
    return config


def _path_or_default(value: Optional[str], config: Config, filename: str) -> Path:
    return Path(value) if value else config.data_dir / filename


def _load_spend_inputs(args: argparse.Namespace, config: Config):
    tx = load_transactions(_path_or_default(args.transactions, config, DEMO_TRANSACTIONS_FILE))
    ef = load_emission_factors(
        _path_or_default(args.emission_factors, config, DEMO_EMISSION_FACTORS_FILE)
    )
    fx = load_fx_rates(_path_or_default(args.fx, config, DEMO_FX_FILE))
    return tx, ef, fx


def _run(handler: Callable[[], int]) -> int:
    """Report load failures uniformly instead of dumping a traceback."""
    try:
        return handler()
    except (OSError, ValueError) as exc:
        console.print(f"[red]Error:[/] {exc}")
        return 1


def _maybe_write(args: argparse.Namespace, payload: Any) -> None:
    if args.out:
        dest = write_json(Path(args.out), payload)
        console.print(f"[green]✓[/] Wrote {dest}")


def _print_totals_table(title: str, totals: Totals, limit: int) -> None:
    table = Table(title=title, show_lines=False)
    table.add_column("Category", style="bold")
    table.add_column("USD", justify="right")
    table.add_column("kg CO₂e", justify="right")
    table.add_column("% of kg", justify="right")
    for row in top_categories(totals, limit):
        table.add_row(
            row["category"],
            f"{row['usd']:,.2f}",
            f"{row['kg']:,.2f}",
            f"{row['kg_perc']:.1f}",
        )
    table.add_section()
    table.add_row("TOTAL", f"{totals.total_usd:,.2f}", f"{totals.total_kg:,.2f}", "")
    console.print(table)
    if totals.fx_fallbacks or totals.factor_fallbacks:
        console.print(
            f"[yellow]Note:[/] {totals.fx_fallbacks} tx without FX rate (treated as USD), "
            f"{totals.factor_fallbacks} tx without emission factor (0 kg)"
        )


def _print_comparison_table(comparison: dict[str, Any]) -> None:
    table = Table(title="Baseline vs scenario (kg CO₂e)")
    table.add_column("Category", style="bold")
    table.add_column("Baseline", justify="right")
    table.add_column("Scenario", justify="right")
    table.add_column("Δ", justify="right")
    table.add_column("Δ %", justify="right")

    def _row(label: str, figures: dict[str, Any]) -> None:
        pct = figures["delta_pct"]
        colour = "green" if figures["delta"] < 0 else "red" if figures["delta"] > 0 else "white"
        table.add_row(
            label,
            f"{figures['baseline']:,.2f}",
            f"{figures['scenario']:,.2f}",
            f"[{colour}]{figures['delta']:+,.2f}[/]",
            "–" if pct is None else f"{pct:+.1f}",
        )

    for cat, figures in comparison["byCat"].items():
        _row(cat, figures["kg"])
    table.add_section()
    _row("TOTAL", comparison["totalKg"])
    console.print(table)


# ─────────────────────────────────────────────────────────────
# Sub-commands
# ─────────────────────────────────────────────────────────────

def cmd_baseline(args: argparse.Namespace) -> int:
    """Handle: python -m carbon_spend.main baseline ..."""
    config = _load_config(args)
    if config is None:
        return 1

    def _go() -> int:
        tx, ef, fx = _load_spend_inputs(args, config)
        totals = baseline_totals(tx, ef, fx)
        console.print(Panel(f"[bold]Baseline[/]: {len(tx)} transaction(s)", style="blue"))
        _print_totals_table("Top categories", totals, args.top or config.top_categories)
        _maybe_write(args, totals.to_dict())
        return 0

    return _run(_go)


def _run_scenario(args: argparse.Namespace, config: Config, scenario) -> int:
    tx, ef, fx = _load_spend_inputs(args, config)
    before = baseline_totals(tx, ef, fx)
    after = apply_scenario(tx, ef, fx, scenario)
    comparison = compare_totals(before, after)

    console.print(Panel(f"[bold]Scenario[/]: {scenario.title or 'untitled'}", style="blue"))
    for idx, step in enumerate(scenario.steps, start=1):
        console.print(f"  {idx}. {step.action} → {step.model_dump(exclude={'action'})}")
    _print_comparison_table(comparison)
    _maybe_write(args, {
        "scenario": scenario.model_dump(),
        "baseline": before.to_dict(),
        "after": after.to_dict(),
        "comparison": comparison,
    })
    return 0


def cmd_scenario(args: argparse.Namespace) -> int:
    """Handle: python -m carbon_spend.main scenario --scenario FILE"""
    config = _load_config(args)
    if config is None:
        return 1

    def _go() -> int:
        scenario = load_scenario(Path(args.scenario)) if args.scenario else DEMO_SCENARIO
        return _run_scenario(args, config, scenario)

    return _run(_go)


def cmd_demo(args: argparse.Namespace) -> int:
    """Handle: python -m carbon_spend.main demo"""
    config = _load_config(args)
    if config is None:
        return 1
    return _run(lambda: _run_scenario(args, config, DEMO_SCENARIO))


def cmd_footprints(args: argparse.Namespace) -> int:
    """Handle: python -m carbon_spend.main footprints --transactions FILE"""
    config = _load_config(args)
    if config is None:
        return 1

    def _go() -> int:
        card_tx = load_card_transactions(
            _path_or_default(args.transactions, config, DEMO_CARD_TRANSACTIONS_FILE)
        )
        fx_index = index_fx_rates(load_fx_rates(Path(args.fx))) if args.fx else None
        use_fallback = config.use_fallback and not args.no_fallback
        footprints = estimate_many(
            card_tx, method=config.method, use_fallback=use_fallback, fx_index=fx_index
        )
        summary = summarize_footprints(footprints)

        table = Table(title=f"Footprints ({config.method})")
        table.add_column("Tx", style="bold")
        table.add_column("USD", justify="right")
        table.add_column("MCC")
        table.add_column("NAICS")
        table.add_column("Title")
        table.add_column("kg/USD", justify="right")
        table.add_column("kg CO₂e", justify="right")
        for fp in footprints:
            table.add_row(
                fp.tx_id,
                f"{fp.usd:,.2f}",
                fp.mcc or "–",
                f"{fp.naics or '–'} ({fp.naics_source})",
                fp.naics_title or "",
                "–" if fp.factor_used is None else f"{fp.factor_used:.3f}",
                "[yellow]unknown[/]" if fp.kg_co2e is None else f"{fp.kg_co2e:,.3f}",
            )
        console.print(table)
        console.print(
            f"  Spend: {summary.total_usd:,.2f} USD | "
            f"Emissions: {summary.total_kg:,.3f} kg CO₂e "
            f"({summary.estimated_count} estimated, {summary.unknown_count} unknown)"
        )
        _maybe_write(args, {
            "footprints": [fp.to_dict() for fp in footprints],
            "summary": summary.to_dict(),
        })
        return 0

    return _run(_go)


# ─────────────────────────────────────────────────────────────
# Argument parsing
# ─────────────────────────────────────────────────────────────

def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {raw!r}") from exc
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {value}")
    return value


def _build_shared_args(parser: argparse.ArgumentParser) -> None:
    """Add arguments shared by every sub-command."""
    parser.add_argument(
        "--data-dir",
        dest="data_dir",
        default=None,
        help="Directory holding the demo CSV/JSON files (default: bundled data)",
    )
    parser.add_argument(
        "--out",
        default=None,
        help="Write the result as JSON to this path",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Log every fallback at DEBUG level",
    )


def _build_spend_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--transactions", default=None, help="Transactions CSV/JSON")
    parser.add_argument(
        "--emission-factors",
        dest="emission_factors",
        default=None,
        help="Emission factors CSV/JSON (category, region, kgCO2e_per_USD)",
    )
    parser.add_argument("--fx", default=None, help="FX table CSV/JSON (currency, usd_per_unit)")
    parser.add_argument(
        "--top",
        type=_positive_int,
        default=None,
        help="Number of categories to show (default: CARBON_SPEND_TOP_CATEGORIES or 8)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Construct and return the top-level argument parser."""
    root = argparse.ArgumentParser(
        prog="python -m carbon_spend.main",
        description="Spend-based carbon footprint engine – local CLI tool.",
    )
    sub = root.add_subparsers(dest="command", required=True)

    # ── baseline ───────────────────────────────────────────────
    p_base = sub.add_parser("baseline", help="Aggregate spend and kg CO₂e by category.")
    _build_spend_args(p_base)
    _build_shared_args(p_base)

    # ── scenario ───────────────────────────────────────────────
    p_scen = sub.add_parser("scenario", help="Compare a what-if scenario against the baseline.")
    _build_spend_args(p_scen)
    p_scen.add_argument(
        "--scenario",
        default=None,
        help="Scenario JSON ({title, steps}); defaults to the bundled demo scenario",
    )
    _build_shared_args(p_scen)

    # ── demo ───────────────────────────────────────────────────
    p_demo = sub.add_parser("demo", help="Run the bundled demo data and scenario.")
    _build_spend_args(p_demo)
    _build_shared_args(p_demo)

    # ── footprints ─────────────────────────────────────────────
    p_fp = sub.add_parser("footprints", help="Per-transaction Scope 3 estimates (MCC → NAICS).")
    p_fp.add_argument("--transactions", default=None, help="Card transactions JSON")
    p_fp.add_argument(
        "--method",
        choices=ALLOWED_METHODS,
        default=None,
        help="Accounting method (default: CARBON_SPEND_METHOD or scope3_full_value_chain)",
    )
    p_fp.add_argument(
        "--no-fallback",
        dest="no_fallback",
        action="store_true",
        default=False,
        help="Leave unmapped MCCs unresolved instead of using the fallback NAICS code",
    )
    p_fp.add_argument("--fx", default=None, help="Optional FX table to convert non-USD amounts")
    _build_shared_args(p_fp)

    return root


# ─────────────────────────────────────────────────────────────
# Entry point
# ─────────────────────────────────────────────────────────────

def main(argv: Optional[list[str]] = None) -> None:
    """Parse arguments and dispatch to the correct sub-command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    dispatch = {
        "baseline": cmd_baseline,
        "scenario": cmd_scenario,
        "demo": cmd_demo,
        "footprints": cmd_footprints,
    }
    handler = dispatch.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()
