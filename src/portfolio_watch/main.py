"""CLI entrypoint for portfolio-watch."""

import logging
from collections.abc import Callable

import rich_click as click

from portfolio_watch import __version__
from portfolio_watch.controllers import (
    AnalyzeCommand,
    PollingCliController,
    PollingCliResult,
    WatchCommand,
)
from portfolio_watch.http.client import DEFAULT_HOLDINGS

click.rich_click.USE_MARKDOWN = True
POLLING_CONTROLLER = PollingCliController()


@click.group()
@click.version_option(version=__version__, prog_name="portfolio-watch")
@click.option("--verbose", is_flag=True, default=False, help="Log polling details to stderr.")
def portfolio_watch(verbose: bool) -> None:
    """Watch remote portfolio-analysis runs."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
    )


@portfolio_watch.command("watch")
@click.argument("run_id")
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=1),
    default=None,
    help="Stop watching after this many seconds.",
)
def watch(run_id: str, timeout_seconds: float | None) -> None:
    """Poll one analysis run until every subtask has arrived."""

    result = _run(
        lambda: POLLING_CONTROLLER.watch(
            WatchCommand(run_id=run_id, timeout_seconds=timeout_seconds),
            on_line=click.echo,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Analysis run did not complete.")


@portfolio_watch.command("analyze")
@click.option(
    "--holding",
    "holdings",
    multiple=True,
    callback=lambda _ctx, _param, values: _parse_holdings(values),
    help="Holding as TICKER:SHARES. Can be repeated; defaults to the demo portfolio.",
)
@click.option("--portfolio-name", default="Web Demo", show_default=True)
@click.option("--version-name", default="v1", show_default=True)
@click.option(
    "--watch/--no-watch",
    default=True,
    show_default=True,
    help="Keep polling the new run until it completes.",
)
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=1),
    default=None,
    help="Stop watching after this many seconds.",
)
def analyze(
    holdings: tuple[tuple[str, float], ...],
    portfolio_name: str,
    version_name: str,
    watch: bool,
    timeout_seconds: float | None,
) -> None:
    """Submit a portfolio for analysis."""

    result = _run(
        lambda: POLLING_CONTROLLER.analyze(
            AnalyzeCommand(
                holdings=holdings or DEFAULT_HOLDINGS,
                portfolio_name=portfolio_name,
                version_name=version_name,
                watch=watch,
                timeout_seconds=timeout_seconds,
            ),
            on_line=click.echo,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Analysis failed.")


@portfolio_watch.command("subtasks")
def subtasks() -> None:
    """List the subtasks every analysis run is expected to deliver."""

    _emit_lines(POLLING_CONTROLLER.subtasks())


def _parse_holdings(values: tuple[str, ...]) -> tuple[tuple[str, float], ...]:
    parsed: list[tuple[str, float]] = []
    for value in values:
        ticker, sep, shares_raw = value.partition(":")
        ticker = ticker.strip().upper()
        if not sep or not ticker:
            raise click.BadParameter(f"Expected TICKER:SHARES, got {value!r}.")
        try:
            shares = float(shares_raw)
        except ValueError as error:
            raise click.BadParameter(f"Invalid share count in {value!r}.") from error
        if shares <= 0:
            raise click.BadParameter(f"Share count must be positive in {value!r}.")
        parsed.append((ticker, int(shares) if shares.is_integer() else shares))
    return tuple(parsed)


def _run(action: Callable[[], PollingCliResult]) -> PollingCliResult:
    try:
        return action()
    except ValueError as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    portfolio_watch()
