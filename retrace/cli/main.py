"""retrace CLI — rebuild replayable calls from a profitable transaction.

Usage:
    retrace simulate <tx-hash>          Trace a transaction and print its call plan
    retrace config                      Show current configuration
    retrace --version                   Print version

Examples:
    retrace simulate 0x5e1f...c0de --signer 0xYourEOA
    retrace simulate 0x5e1f...c0de --no-rewind --contract 0xSimContract --format json
    retrace simulate 0x5e1f...c0de --rpc-url http://localhost:8545 -o plan.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import httpx

from retrace import __version__
from retrace.core.config import Settings, get_settings
from retrace.core.errors import RetraceError
from retrace.core.logging import setup_logging
from retrace.simulate.simulator import SimulationResult

logger = logging.getLogger(__name__)


# ── Coloured output helpers ──────────────────────────────────────────────────

_RESET = "\033[0m"
_BOLD = "\033[1m"
_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOTHING_FOUND = 2


def _c(text: str, code: str) -> str:
    return f"{code}{text}{_RESET}"


# ── Banner ───────────────────────────────────────────────────────────────────

BANNER = rf"""
{_BOLD}{_CYAN}           _
 _ __ ___| |_ _ __ __ _  ___ ___
| '__/ _ \ __| '__/ _` |/ __/ _ \
| | |  __/ |_| | | (_| | (_|  __/
|_|  \___|\__|_|  \__,_|\___\___|{_RESET}
  {_DIM}Transaction trace replay planner — v{__version__}{_RESET}
"""


# ── CLI argument parser ─────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="retrace",
        description="retrace — rebuild replayable calls from profitable transactions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("--no-banner", action="store_true", help="Suppress the startup banner")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")

    sub = parser.add_subparsers(dest="command")

    # ── simulate ─────────────────────────────────────────────────────────────
    sim_p = sub.add_parser("simulate", help="Trace a transaction and rebuild its call plan")
    sim_p.add_argument("tx_hash", help="Transaction hash (0x...)")
    rewind = sim_p.add_mutually_exclusive_group()
    rewind.add_argument(
        "--rewind",
        dest="rewind",
        action="store_true",
        default=None,
        help="Trace at the parent block (pre-transaction state)",
    )
    rewind.add_argument(
        "--no-rewind",
        dest="rewind",
        action="store_false",
        help="Trace at the transaction's own block",
    )
    sim_p.add_argument("--signer", help="Address that sends the replayed calls")
    sim_p.add_argument("--contract", help="Simulation contract written into calldata instead of the signer")
    sim_p.add_argument("--rpc-url", help="Node URL (overrides RETRACE_RPC_URL and --chain)")
    sim_p.add_argument("--chain", help="Chain used to resolve the default node URL")
    sim_p.add_argument(
        "--profit-mode",
        choices=["sender_first", "native_token"],
        help="Profit accounting mode",
    )
    sim_p.add_argument(
        "--format",
        "-f",
        default="table",
        choices=["table", "json"],
        help="Output format (default: table)",
    )
    sim_p.add_argument("--output", "-o", help="Write output to file instead of stdout")
    # Also accepted after the subcommand; SUPPRESS keeps the global value when absent
    sim_p.add_argument("--quiet", "-q", action="store_true", default=argparse.SUPPRESS, help="Minimal output")

    # ── config ───────────────────────────────────────────────────────────────
    sub.add_parser("config", help="Show current configuration")

    return parser


# ── Simulate command ─────────────────────────────────────────────────────────


def _settings_for(args: argparse.Namespace) -> Settings:
    """Layer command-line overrides on top of the environment settings."""
    overrides = {
        "rpc_url": args.rpc_url,
        "chain": args.chain,
        "signer_address": args.signer,
        "simulation_contract": args.contract,
        "rewind": args.rewind,
        "profit_mode": args.profit_mode,
    }
    return get_settings().model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )


def _print_table(result: SimulationResult, quiet: bool = False) -> None:
    """Pretty-print the call plan."""
    plan = result.plan
    if not quiet:
        block = result.block if result.block is not None else "latest"
        print(f"\n{_BOLD}Simulation complete{_RESET} — {result.transaction.hash}")
        print(
            f"  Profit: {_c(f'{result.profit} wei', _GREEN)}"
            f"  |  Traced at: {block}"
            f"  |  Calls: {plan.call_count}\n"
        )

    for b, batch in enumerate(plan):
        label = "root call" if b == 0 else "direct subcalls"
        print(f"  {_BOLD}Batch {b}{_RESET} {_DIM}({label}){_RESET}")
        if not batch.calls:
            print(f"       {_DIM}(empty){_RESET}")
        for i, call in enumerate(batch, 1):
            target = call.recipient or _c("<create>", _YELLOW)
            data = call.data if len(call.data) <= 74 else call.data[:74] + "…"
            print(f"  {_DIM}{i:>3}.{_RESET} → {target}  value={call.value}")
            if not quiet:
                print(f"       {_DIM}{data}{_RESET}")
        print()

    if not plan.complete:
        print(_c(f"  ⚠ {len(plan.skipped)} trace entries could not be replayed:", _YELLOW))
        for skip in plan.skipped:
            print(f"       {_DIM}{skip.trace_address}: {skip.reason}{_RESET}")
        print()


async def _run_simulate(args: argparse.Namespace) -> int:
    """Run the simulation pipeline and print the plan."""
    from retrace.core.interfaces import StaticIdentity
    from retrace.rpc.client import EthRpcClient
    from retrace.simulate.profit import get_profit_detector
    from retrace.simulate.simulator import Simulator

    settings = _settings_for(args)
    if not settings.signer_address:
        print(_c("Error: provide --signer or set RETRACE_SIGNER_ADDRESS.", _RED), file=sys.stderr)
        return EXIT_ERROR

    try:
        identity = StaticIdentity(settings.signer_address)
        detector = get_profit_detector(settings.profit_mode)
        client = EthRpcClient.from_settings(settings)
    except ValueError as exc:
        print(_c(f"Error: {exc}", _RED), file=sys.stderr)
        return EXIT_ERROR

    async with client:
        try:
            simulator = Simulator(
                client,
                identity,
                contract=settings.simulation_contract or None,
                profit_detector=detector,
                max_skipped_ratio=settings.max_skipped_ratio,
            )
        except ValueError as exc:
            print(_c(f"Error: {exc}", _RED), file=sys.stderr)
            return EXIT_ERROR

        if not args.quiet:
            # Host only; paths and query strings can carry provider keys
            host = httpx.URL(client.url).host
            print(f"  Tracing {_c(args.tx_hash, _CYAN)} via {host}…", file=sys.stderr)

        try:
            result = await simulator.simulate(args.tx_hash, rewind=settings.rewind)
        except RetraceError as exc:
            logger.debug("Simulation failed", exc_info=True)
            print(_c(f"\nSimulation failed: {exc}", _RED), file=sys.stderr)
            return EXIT_ERROR

    if result is None:
        print(_c("  No profitable, replayable calls found.", _YELLOW), file=sys.stderr)
        return EXIT_NOTHING_FOUND

    if args.format == "json":
        output = json.dumps(result.to_dict(), indent=2)
        if args.output:
            Path(args.output).write_text(output)
            if not args.quiet:
                print(f"  Written to {_c(args.output, _CYAN)}", file=sys.stderr)
        else:
            print(output)
    else:
        _print_table(result, quiet=args.quiet)

    return EXIT_OK


# ── Config command ───────────────────────────────────────────────────────────


def _run_config() -> int:
    """Print current settings (redacted)."""
    s = get_settings()
    print(f"\n{_BOLD}retrace configuration{_RESET}\n")
    for field_name in sorted(type(s).model_fields.keys()):
        val = getattr(s, field_name, "")
        # Redact secrets
        if any(kw in field_name for kw in ("password", "secret", "key", "token")):
            val = "****" if val else "(not set)"
        print(f"  {_DIM}{field_name}:{_RESET}  {val}")
    print()
    return EXIT_OK


# ── Entrypoint ───────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"retrace {__version__}")
        return EXIT_OK

    if not args.no_banner:
        print(BANNER, file=sys.stderr)

    if not args.command:
        parser.print_help()
        return EXIT_OK

    settings = get_settings()
    setup_logging(settings.app_env, "DEBUG" if settings.debug else settings.log_level)

    if args.command == "config":
        return _run_config()

    if args.command == "simulate":
        return asyncio.run(_run_simulate(args))

    parser.print_help()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
