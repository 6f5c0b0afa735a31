"""Command-line interface for mlekit.

Usage:
    mlekit estimate config.yaml        Run MLE/MAP/MCMC estimation from a config
    mlekit simulate poisson -o y.csv   Simulate a count dataset
    mlekit simulate mnl -o c.csv       Simulate a conjoint choice dataset
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from mlekit.exceptions import MLEKitError

if TYPE_CHECKING:
    from argparse import Namespace


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="mlekit",
        description="Maximum likelihood and Metropolis-Hastings estimation for Poisson and MNL models",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mlekit estimate patents.yaml                 MLE from a YAML config
  mlekit estimate conjoint.yaml --method mcmc  Posterior sampling
  mlekit simulate poisson -n 1000 -o y.csv     Simulated counts
  mlekit simulate mnl --beta ad=-0.8,price=-0.1 -o c.csv
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # =========================================================================
    # estimate command
    # =========================================================================
    estimate_parser = subparsers.add_parser(
        "estimate",
        help="Run parameter estimation (MLE/MAP/MCMC)",
        description="Estimate coefficients from the data and settings in a YAML config.",
    )
    estimate_parser.add_argument("config", help="Estimation config (.yaml)")
    estimate_parser.add_argument(
        "--method",
        choices=["mle", "map", "mcmc"],
        help="Override the config's estimation method",
    )
    estimate_parser.add_argument(
        "--seed",
        type=int,
        help="Override the random seed for MCMC proposals and restarts",
    )
    estimate_parser.add_argument(
        "--draws",
        type=int,
        help="Override total MCMC draws",
    )
    estimate_parser.add_argument(
        "--burn-in",
        type=int,
        help="Override MCMC burn-in",
    )
    estimate_parser.add_argument(
        "-o", "--output",
        help=(
            "Optional CSV output path. "
            "MLE/MAP: coefficient table. MCMC: saved posterior samples."
        ),
    )
    estimate_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log optimizer and sampler details",
    )

    # =========================================================================
    # simulate command
    # =========================================================================
    sim_parser = subparsers.add_parser(
        "simulate",
        help="Write a simulated dataset with known coefficients",
        description="Simulate Poisson counts or long-format conjoint choices.",
    )
    sim_parser.add_argument("family", choices=["poisson", "mnl"], help="Model family")
    sim_parser.add_argument(
        "-o", "--output",
        required=True,
        help="Output CSV path",
    )
    sim_parser.add_argument(
        "-n", "--n-obs",
        type=int,
        default=500,
        help="Observations for poisson (default: 500)",
    )
    sim_parser.add_argument(
        "--respondents",
        type=int,
        default=100,
        help="Respondents for mnl (default: 100)",
    )
    sim_parser.add_argument(
        "--tasks",
        type=int,
        default=10,
        help="Choice tasks per respondent for mnl (default: 10)",
    )
    sim_parser.add_argument(
        "--alternatives",
        type=int,
        default=3,
        help="Alternatives per task for mnl (default: 3)",
    )
    sim_parser.add_argument(
        "--beta",
        help=(
            "Coefficients: comma-separated values for poisson (intercept first), "
            "name=value pairs for mnl"
        ),
    )
    sim_parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed (default: 42)",
    )

    return parser


def _get_version() -> str:
    """Get package version."""
    try:
        from mlekit._version import __version__

        return __version__
    except ImportError:
        return "unknown"


def _parse_float_list(spec: str) -> list[float]:
    values = [token.strip() for token in spec.split(",") if token.strip()]
    if not values:
        raise ValueError("--beta must include at least one value")
    try:
        return [float(v) for v in values]
    except ValueError as exc:
        raise ValueError(f"Invalid --beta value list '{spec}'") from exc


def _parse_named_floats(spec: str) -> dict[str, float]:
    out: dict[str, float] = {}
    for token in spec.split(","):
        token = token.strip()
        if not token:
            continue
        if "=" not in token:
            raise ValueError(f"Invalid --beta entry '{token}'. Expected name=value")
        name, raw = token.split("=", 1)
        name = name.strip()
        if not name:
            raise ValueError(f"Invalid --beta entry '{token}'. Empty name")
        if name in out:
            raise ValueError(f"Duplicate --beta entry '{name}'")
        try:
            out[name] = float(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid --beta value for '{name}': '{raw}'") from exc
    if not out:
        raise ValueError("--beta must include at least one name=value pair")
    return out


def cmd_estimate(args: Namespace) -> int:
    """Estimation command (MLE/MAP/MCMC)."""
    import pandas as pd

    from mlekit.estimation import estimate_map, estimate_mcmc, estimate_mle
    from mlekit.io.config import load_config
    from mlekit.logging_config import set_log_level

    if args.verbose:
        set_log_level(logging.DEBUG)

    try:
        config = load_config(args.config)
    except MLEKitError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    method = args.method or config.method
    mcmc_cfg = dict(config.mcmc)
    if args.seed is not None:
        mcmc_cfg["seed"] = args.seed
    if args.draws is not None:
        mcmc_cfg["draws"] = args.draws
    if args.burn_in is not None:
        mcmc_cfg["burn_in"] = args.burn_in

    print(f"Loading data: {config.data}")
    try:
        data = config.build_data()
    except (MLEKitError, OSError, pd.errors.ParserError) as e:
        print(f"Error loading data: {e}", file=sys.stderr)
        return 1

    units = "tasks" if config.family == "mnl" else "observations"
    n_units = data.n_tasks if config.family == "mnl" else data.n_obs
    print(f"Running {method.upper()} estimation ({config.family}, {n_units} {units})...")

    names = list(data.param_names)
    try:
        if method == "mle":
            result = estimate_mle(
                data,
                family=config.family,
                method=str(config.optimizer.get("method", "BFGS")),
                options=config.optimizer_options(),
                ridge=float(config.optimizer.get("ridge", 0.0)),
                n_restarts=int(config.optimizer.get("restarts", 0)),
                seed=mcmc_cfg.get("seed"),
            )
        elif method == "map":
            result = estimate_map(
                data,
                config.resolve_priors(names),
                family=config.family,
                method=str(config.optimizer.get("method", "BFGS")),
                options=config.optimizer_options(),
            )
        else:  # method == "mcmc"
            result = estimate_mcmc(
                data,
                config.resolve_priors(names),
                family=config.family,
                n_draws=int(mcmc_cfg.get("draws", 11000)),
                burn_in=int(mcmc_cfg.get("burn_in", 1000)),
                thin=int(mcmc_cfg.get("thin", 1)),
                proposal_scale=config.resolve_proposal_scale(names),
                seed=mcmc_cfg.get("seed"),
            )
    except MLEKitError as e:
        print(f"Error during estimation: {e}", file=sys.stderr)
        return 1

    print()
    print(result.summary())

    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)

        if method == "mcmc":
            output_df = pd.DataFrame(result.samples, columns=result.param_names)
            output_df.to_csv(out_path, index=False)
        else:
            result.to_frame().to_csv(out_path)
        print(f"\nEstimation output saved to: {out_path}")

    return 0


def cmd_simulate(args: Namespace) -> int:
    """Simulate command."""
    from mlekit.simulate import simulate_choice_data, simulate_count_data

    try:
        if args.family == "poisson":
            beta = _parse_float_list(args.beta) if args.beta else (1.0, 0.5, -0.3)
            frame = simulate_count_data(args.n_obs, beta, seed=args.seed)
        else:
            beta = _parse_named_floats(args.beta) if args.beta else None
            frame = simulate_choice_data(
                args.respondents,
                args.tasks,
                args.alternatives,
                beta,
                seed=args.seed,
            )
    except ValueError as err:
        print(f"Error: {err}", file=sys.stderr)
        return 1

    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(out_path, index=False)
    print(f"Simulated {len(frame)} rows saved to: {out_path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "estimate": cmd_estimate,
        "simulate": cmd_simulate,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
