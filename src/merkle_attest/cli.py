"""
Merkle Attest - CLI Entry Point

Usage:
    merkle-attest dump [--start N] [--end N] [--offset D]
    merkle-attest compare [--key K] [--seed S] [--receipt-out PATH] [--json]
    merkle-attest verify-receipt PATH [--program-id HEX] [--json]
    merkle-attest serve

Environment variables are read through merkle_attest.core.config.
"""

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from pathlib import Path

import structlog

from merkle_attest.core.config import settings
from merkle_attest.core.logging import setup_logging
from merkle_attest.crypto.merkle import LeafEncoding, OddNodeStrategy
from merkle_attest.services.attestation import (
    AttestationError,
    Receipt,
    VerificationError,
    create_backend,
    expected_program_id,
)
from merkle_attest.services.comparison_workflow import ComparisonWorkflow
from merkle_attest.services.sampler import SampleComparator, build_offset_commitment

logger = structlog.get_logger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_RUNTIME_ERROR = 1
EXIT_VERIFICATION_FAILED = 2

# --receipt-out given without a path
RECEIPT_DIR_SENTINEL = Path("-")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="merkle-attest",
        description="Keyed Merkle commitments and attested sampled comparison.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {settings.VERSION}"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (overrides LOG_LEVEL)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- dump command ---
    dump_parser = subparsers.add_parser(
        "dump",
        help="Build a letter dataset commitment and print the whole tree",
    )
    dump_parser.add_argument("--start", type=int, default=settings.SAMPLE_KEY_START)
    dump_parser.add_argument("--end", type=int, default=settings.SAMPLE_KEY_END)
    dump_parser.add_argument(
        "--offset",
        type=int,
        default=0,
        help="Letter offset of the dataset (default: 0)",
    )
    dump_parser.add_argument(
        "--encoding",
        choices=[e.value for e in LeafEncoding],
        default=settings.LEAF_ENCODING,
    )
    dump_parser.add_argument(
        "--odd-node-strategy",
        choices=[s.value for s in OddNodeStrategy],
        default=settings.ODD_NODE_STRATEGY,
    )
    dump_parser.set_defaults(func=dump_cmd)

    # --- compare command ---
    compare_parser = subparsers.add_parser(
        "compare",
        help="Sample a key across the datasets, prove and verify",
    )
    compare_parser.add_argument(
        "--key",
        type=int,
        default=None,
        help="Key to compare at (default: sampled at random)",
    )
    compare_parser.add_argument(
        "--seed",
        type=int,
        default=settings.SAMPLE_SEED,
        help="Seed for key sampling",
    )
    compare_parser.add_argument(
        "--receipt-out",
        type=Path,
        nargs="?",
        const=RECEIPT_DIR_SENTINEL,
        default=None,
        help="Write the verified receipt to PATH (default: under RECEIPT_DIR)",
    )
    compare_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Output machine-readable JSON summary",
    )
    compare_parser.set_defaults(func=compare_cmd)

    # --- verify-receipt command ---
    verify_parser = subparsers.add_parser(
        "verify-receipt",
        help="Verify a receipt file against the program identity",
    )
    verify_parser.add_argument("path", type=Path, help="Receipt JSON file")
    verify_parser.add_argument(
        "--program-id",
        type=str,
        default=None,
        help="Expected program identity (default: configured identity)",
    )
    verify_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Output machine-readable JSON report",
    )
    verify_parser.set_defaults(func=verify_receipt_cmd)

    # --- serve command ---
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service")
    serve_parser.set_defaults(func=serve_cmd)

    return parser


def dump_cmd(args: argparse.Namespace) -> int:
    """Print every node of a letter dataset commitment."""
    if args.end < args.start:
        print(f"Error: empty key range {args.start}..{args.end}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    commitment = build_offset_commitment(
        range(args.start, args.end + 1),
        offset=args.offset,
        encoding=LeafEncoding(args.encoding),
        odd_node_strategy=OddNodeStrategy(args.odd_node_strategy),
    )
    for line in commitment.render():
        print(line)
    return EXIT_SUCCESS


async def _compare(args: argparse.Namespace) -> int:
    comparator = SampleComparator(seed=args.seed)
    backend = create_backend(settings.ATTESTATION_BACKEND)
    workflow = ComparisonWorkflow(comparator, backend)

    try:
        result = await workflow.run(key=args.key)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except VerificationError as e:
        print(f"Verification failed: {e}", file=sys.stderr)
        return EXIT_VERIFICATION_FAILED
    except AttestationError as e:
        print(f"Attestation failed: {e}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    finally:
        await backend.close()

    if args.receipt_out is not None:
        path = args.receipt_out
        if path == RECEIPT_DIR_SENTINEL:
            path = Path(settings.RECEIPT_DIR) / f"receipt-{result.key}.json"
        result.receipt.save(path)
        if not args.json:
            print(f"Receipt: {path}")

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"Key: {result.key}")
        print(f"Values: {', '.join(result.values)}")
        print("Verification passed!")
        print(f"Journal: {result.journal}")
    return EXIT_SUCCESS


def compare_cmd(args: argparse.Namespace) -> int:
    """Run one attested comparison."""
    return asyncio.run(_compare(args))


async def _verify_receipt(args: argparse.Namespace) -> int:
    try:
        receipt = Receipt.load(args.path)
    except (OSError, KeyError, ValueError) as e:
        print(f"Error: cannot read receipt {args.path}: {e}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    program_id = args.program_id or expected_program_id()
    backend = create_backend(settings.ATTESTATION_BACKEND)

    try:
        await backend.verify(receipt, program_id)
        verified, message = True, "Verification passed!"
    except VerificationError as e:
        verified, message = False, str(e)
    except AttestationError as e:
        print(f"Error: verification unavailable: {e}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    finally:
        await backend.close()

    if args.json:
        print(json.dumps({
            "verified": verified,
            "journal": receipt.journal,
            "program_id": program_id,
            "message": message,
        }, indent=2))
    else:
        print(message)
        if verified:
            print(f"Journal: {receipt.journal}")

    return EXIT_SUCCESS if verified else EXIT_VERIFICATION_FAILED


def verify_receipt_cmd(args: argparse.Namespace) -> int:
    """Verify a receipt file."""
    return asyncio.run(_verify_receipt(args))


def serve_cmd(args: argparse.Namespace) -> int:
    """Run the HTTP service until interrupted."""
    from merkle_attest.main import main as serve

    serve()
    return EXIT_SUCCESS


def main(argv: Sequence[str] | None = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0=success, 1=error, 2=verification failed)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_RUNTIME_ERROR

    setup_logging(level=args.log_level, stream=sys.stderr)

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except Exception as e:
        logger.error("Command failed", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR


if __name__ == "__main__":
    sys.exit(main())
