from __future__ import annotations

from pathlib import Path

import typer

from app.main import run_bridge
from logging_config import configure_logging
from settings import get_settings


app = typer.Typer(
    help="Bridge sensorbox MQTT measurements into InfluxDB.",
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=False,
)


@app.command()
def main(
    config: Path = typer.Argument(..., help="Path to the YAML config file."),
) -> None:
    """Run the bridge until SIGINT or SIGTERM."""
    settings = get_settings()
    configure_logging(settings.log_level)
    status = run_bridge(config, settings=settings)
    if status:
        raise typer.Exit(code=status)
