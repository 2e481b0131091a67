from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import Settings
from .errors import ClusterSaturated, InferenceUnavailable
from .session import Session
from .simulation import DistrictId, SimulationConfig, SimulationState, SimulationStateStore
from .tools import TOOL_DECLARATIONS, SectionId


def _positive_float(value: str) -> float:
    try:
        v = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None
    if v <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {value}")
    return v


def _positive_int(value: str) -> int:
    try:
        v = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if v < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {value}")
    return v


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="flashfusion", description="FlashFusion inference orchestration + city simulation.")
    p.add_argument("--log_level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = p.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="Send one or more messages and apply returned tool calls")
    chat.add_argument("--query", action="append", help="Message to send (repeatable)")
    chat.add_argument("--queries_file", default=None, help="Path to a newline-delimited file of messages")
    chat.add_argument("--boost", action="store_true", help="Route to the high-reasoning tier")
    chat.add_argument("--dry_run", action="store_true", default=None, help="No network calls; stub responses")
    chat.add_argument("--api_key", default=None, help="Overrides FLASHFUSION_API_KEY / GEMINI_API_KEY")
    chat.add_argument("--base_url", default=None)
    chat.add_argument("--timeout_s", type=_positive_float, default=None)
    chat.add_argument("--cache_ttl_s", type=_positive_float, default=None)
    chat.add_argument("--cache_max_entries", type=_positive_int, default=None)
    chat.add_argument("--collapse_inflight", action="store_true", default=None)
    chat.add_argument("--seed", type=int, default=None)
    chat.add_argument("--runs_dir", default=None, help="Base output dir for telemetry")
    chat.add_argument("--run_id", default=None, help="Run id (defaults to timestamp)")

    sim = sub.add_parser("simulate", help="Run the city simulation offline and print the final state")
    sim.add_argument("--ticks", type=int, default=5)
    sim.add_argument("--seed", type=int, default=0)
    sim.add_argument("--fail", action="append", default=[], choices=[d.value for d in DistrictId], help="District id to fail (repeatable)")
    sim.add_argument("--backbone", default=None, help="n8n | Zapier | Manual")
    sim.add_argument("--boost", action="store_true", help="Toggle GPU boost on the AI district")
    sim.add_argument("--json", action="store_true", help="Print the state as JSON instead of a table")

    sub.add_parser("tools", help="Print the tool schema offered to the model")
    return p


def state_table(state: SimulationState) -> Table:
    t = Table(title=f"Backbone: {state.routing_backbone.value}  |  simulation active: {state.simulation_active}")
    t.add_column("District")
    t.add_column("Status")
    t.add_column("Load", justify="right")
    t.add_column("Health", justify="right")
    t.add_column("GPU")
    for did, d in state.districts.items():
        gpu = ""
        if d.gpu_acceleration is not None:
            g = d.gpu_acceleration
            gpu = f"{'BOOST ' if g.is_boosted else ''}{g.throughput:.0f} TFLOPS / {g.memory_used:.1f} GB"
        t.add_row(
            did.value,
            "[green]online[/green]" if d.is_active else "[red]offline[/red]",
            f"{d.load:.1f}",
            f"{d.health:.0f}",
            gpu,
        )
    return t


async def _chat(args: argparse.Namespace, console: Console) -> int:
    queries: list[str] = []
    if args.query:
        queries.extend([q for q in args.query if q and q.strip()])
    if args.queries_file:
        text = Path(args.queries_file).read_text(encoding="utf-8")
        queries.extend([line.strip() for line in text.splitlines() if line.strip()])
    if not queries:
        raise SystemExit("Provide at least one --query or a --queries_file.")

    settings = Settings.from_env().with_overrides(
        api_key=args.api_key,
        base_url=args.base_url,
        timeout_s=args.timeout_s,
        dry_run=args.dry_run,
        cache_ttl_s=args.cache_ttl_s,
        cache_max_entries=args.cache_max_entries,
        collapse_inflight=args.collapse_inflight,
        seed=args.seed,
        runs_dir=args.runs_dir,
    )

    def _navigate(section: SectionId) -> None:
        console.print(f"[cyan]-> navigate to #{section.value}[/cyan]")

    session = Session.with_run_dir(settings, navigate=_navigate, run_id=args.run_id)
    async with session:
        for q in queries:
            try:
                turn = await session.ask(q, boosted=args.boost)
            except ClusterSaturated as exc:
                console.print(f"[yellow]{exc}[/yellow]")
                continue
            except InferenceUnavailable as exc:
                console.print(f"[red]{exc}[/red]")
                continue
            m = turn.chat.metrics
            console.print(f"[bold]> {q}[/bold]")
            console.print(turn.chat.text)
            console.print(
                f"[dim]tier={turn.chat.tier.value} cached={m.cached} latency={m.total_latency:.1f}ms "
                f"ttft~{m.ttft:.1f}ms cost=${turn.chat.cost_estimate:.6f}[/dim]"
            )
            for o in turn.outcomes:
                console.print(f"  [{'green' if o.applied else 'yellow'}]{o.name}[/]: {o.detail}")
        console.print(state_table(session.store.get_state()))
    if session.telemetry is not None:
        console.print(f"Telemetry: {session.telemetry.path}")
    return 0


def _simulate(args: argparse.Namespace, console: Console) -> int:
    store = SimulationStateStore(config=SimulationConfig(), rng=random.Random(args.seed))
    for did in args.fail:
        store.fail_district(did)
    if args.backbone:
        store.set_backbone(args.backbone)
    if args.boost:
        store.toggle_gpu_boost()
    for _ in range(max(0, int(args.ticks))):
        store.tick()
    state = store.get_state()
    if args.json:
        console.print_json(json.dumps(state.to_dict()))
    else:
        console.print(state_table(state))
    return 0


def main() -> None:
    args = _build_parser().parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    console = Console()
    if args.command == "chat":
        raise SystemExit(asyncio.run(_chat(args, console)))
    if args.command == "simulate":
        raise SystemExit(_simulate(args, console))
    if args.command == "tools":
        console.print_json(json.dumps(TOOL_DECLARATIONS))
        raise SystemExit(0)


if __name__ == "__main__":
    main()
