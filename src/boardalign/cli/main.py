"""boardalign CLI - fiducial board alignment tools.

Command-line interface for fitting transforms, ordering fiducial visits and
running the alignment state machine against a simulated machine.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer

from boardalign import __version__
from boardalign.config import settings
from boardalign.utils.logging import configure_logging, get_logger

app = typer.Typer(
    name="boardalign",
    help="boardalign: fiducial-based board alignment for pick-and-place machines",
    add_completion=False,
)


# =============================================================================
# Commands
# =============================================================================


@app.command()
def version(
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Show version information."""
    if json_output:
        typer.echo(json.dumps({"version": __version__}))
    else:
        typer.echo(f"boardalign {__version__}")


@app.command()
def solve(
    pairs_path: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            help="JSON file with expected/measured correspondence pairs",
        ),
    ],
    offset_mm: Annotated[
        float,
        typer.Option(
            "--offset", help="Board origin movement (mm) to check against tolerance"
        ),
    ] = 0.0,
    verbose: Annotated[
        int, typer.Option("--verbose", "-v", count=True, help="Increase verbosity")
    ] = 0,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Fit a design->machine transform and check it against the tolerances."""
    from boardalign.cli.runners import run_solve  # noqa: PLC0415

    _configure_logging(verbose)
    logger = get_logger(__name__)

    try:
        result = run_solve(
            pairs_path, origin_offset_mm=offset_mm, tolerances=settings.tolerances()
        )
        report = result.report

        if json_output:
            output_data = {
                "transform": result.transform.model_dump(),
                "decomposition": report.decomposition.model_dump(),
                "residuals": {
                    "distances": list(result.residuals.distances),
                    "mean": result.residuals.mean,
                    "max": result.residuals.max,
                    "rms": result.residuals.rms,
                },
                "passed": report.passed,
                "violations": [
                    {**v.model_dump(mode="json"), "message": v.describe()}
                    for v in report.violations
                ],
            }
            typer.echo(json.dumps(output_data, indent=2))
        else:
            tx = result.transform
            typer.echo("Transform:")
            typer.echo(f"  [{tx.m00:.6f} {tx.m01:.6f} {tx.m02:.6f}]")
            typer.echo(f"  [{tx.m10:.6f} {tx.m11:.6f} {tx.m12:.6f}]")
            typer.echo(f"Decomposition: {report.decomposition}")
            typer.echo(
                f"Residuals: mean={result.residuals.mean:.4f}mm "
                f"max={result.residuals.max:.4f}mm rms={result.residuals.rms:.4f}mm"
            )
            if report.passed:
                typer.echo("Validation: PASS")
            else:
                typer.echo("Validation: FAIL")
                for violation in report.violations:
                    typer.echo(f"  - {violation.describe()}")

        raise typer.Exit(0 if report.passed else 1)

    except typer.Exit:
        raise
    except Exception as e:
        logger.exception("Solve failed")
        _echo_error(e, json_output)
        raise typer.Exit(1) from None


@app.command()
def order(
    points_path: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            help="JSON file with points and start/end anchors",
        ),
    ],
    verbose: Annotated[
        int, typer.Option("--verbose", "-v", count=True, help="Increase verbosity")
    ] = 0,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Order points for a short path from the start to the end anchor."""
    from boardalign.cli.runners import run_order  # noqa: PLC0415

    _configure_logging(verbose)
    logger = get_logger(__name__)

    try:
        result = run_order(points_path, max_passes=settings.require_travel_passes())

        if json_output:
            output_data = {
                "order": result.order,
                "input_length_mm": result.input_length_mm,
                "optimized_length_mm": result.optimized_length_mm,
            }
            typer.echo(json.dumps(output_data, indent=2))
        else:
            typer.echo(f"Order: {', '.join(result.order) or '(empty)'}")
            typer.echo(
                f"Path length: {result.input_length_mm:.3f}mm -> "
                f"{result.optimized_length_mm:.3f}mm"
            )
        raise typer.Exit(0)

    except typer.Exit:
        raise
    except Exception as e:
        logger.exception("Ordering failed")
        _echo_error(e, json_output)
        raise typer.Exit(1) from None


@app.command()
def simulate(
    job_path: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            help="JSON job file (boards, board locations, truth)",
        ),
    ],
    noise_mm: Annotated[
        float,
        typer.Option("--noise", help="Measurement noise standard deviation (mm)"),
    ] = 0.0,
    seed: Annotated[
        int | None, typer.Option("--seed", help="Random seed for measurement noise")
    ] = None,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity (-v, -vv)"
        ),
    ] = 0,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Align the boards of a job against a simulated machine."""
    from boardalign.cli.runners import run_simulation  # noqa: PLC0415

    _configure_logging(verbose)
    logger = get_logger(__name__)

    if noise_mm < 0:
        typer.echo("Error: --noise must be >= 0", err=True)
        raise typer.Exit(2)

    try:
        result = run_simulation(
            job_path,
            noise_mm=noise_mm,
            seed=seed,
            tolerances=settings.tolerances(),
            max_passes=settings.require_travel_passes(),
        )

        if json_output:
            typer.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        else:
            for board in result.boards:
                line = f"{board.board_location_id}: {board.status.value}"
                if board.origin_offset_mm is not None:
                    line += f" (origin moved {board.origin_offset_mm:.4f}mm)"
                typer.echo(line)
                if board.new_location is not None and board.status.value == "aligned":
                    typer.echo(f"  location: {board.new_location}")
                if board.error_message:
                    typer.echo(f"  {board.error_message}")
            if result.cancelled:
                typer.echo("Run cancelled")
            typer.echo(f"Success: {result.success}")

        raise typer.Exit(0 if result.success else 1)

    except typer.Exit:
        raise
    except Exception as e:
        logger.exception("Simulation failed")
        _echo_error(e, json_output)
        raise typer.Exit(1) from None


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """boardalign: fiducial-based board alignment."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def _configure_logging(verbose: int) -> None:
    """Configure logging based on verbosity level."""
    if verbose == 0:
        level = "WARNING"
    elif verbose == 1:
        level = "INFO"
    else:  # verbose >= 2
        level = "DEBUG"

    configure_logging(level=level)


def _echo_error(error: Exception, json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps({"error": str(error)}))
    else:
        typer.echo(f"Error: {error}", err=True)


if __name__ == "__main__":  # pragma: no cover
    app()
