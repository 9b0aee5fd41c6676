"""Probe command -- show the redirect URI choice for this machine.

Runs the chooser once with the configured (or given) strategy, which
includes the real bind probe under the ``default`` strategy, and prints
the statistics it gathered. Useful on machines where ``127.0.0.1``
listeners are refused.
"""

from __future__ import annotations

from typing import Optional

import typer

from loopauth.output import error, info, print_table


def probe_command(
    strategy: Optional[str] = typer.Option(
        None, "--strategy", help="Redirect URI strategy: default, loopback_ip, localhost."
    ),
) -> None:
    """Show which redirect URI template would be used.

    Example::

        loopauth probe
        loopauth probe --strategy localhost --json
    """
    from loopauth.config import resolve_config
    from loopauth.exceptions import LoopauthError
    from loopauth.receiver import get_chooser

    try:
        config = resolve_config(cli_strategy=strategy)
    except LoopauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    chooser = get_chooser()
    template = chooser.get_uri_template(config.receiver.strategy)
    info(f"Strategy '{config.receiver.strategy.value}' selects {template}")

    rows = [
        [
            stats.uri,
            "yes" if stats.can_be_used else "no",
            "yes" if stats.known_to_succeed else "no",
            "yes" if stats.known_to_fail else "no",
            "yes" if stats.is_timed_out else "no",
            str(stats.total_resets),
        ]
        for stats in chooser.snapshot()
    ]
    print_table(
        ["template", "usable", "succeeded", "failed", "timed_out", "resets"],
        rows,
        title="Redirect URI templates",
    )
