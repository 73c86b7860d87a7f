import logging
import os
from typing import Optional

import numpy as np
import typer
import yaml
from typing_extensions import Annotated

from .config_loader import load_config
from .crystal import SpinCrystal

app = typer.Typer(help="pyMagStruct: magnetic structure generator CLI")

logger = logging.getLogger("magstruct")


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(message)s",
        datefmt="%H:%M:%S",
    )


@app.command()
def validate(
    config_file: Annotated[str, typer.Argument(help="Path to the config.yaml file")]
):
    """
    Validate a configuration file against the schema.
    """
    if not os.path.exists(config_file):
        typer.secho(f"Error: File {config_file} not found.", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    try:
        load_config(config_file)
    except ValueError as e:
        typer.secho("Validation Failed:", fg=typer.colors.RED)
        typer.echo(str(e))
        raise typer.Exit(code=1)
    typer.secho(f"Success: {config_file} is valid.", fg=typer.colors.GREEN)


@app.command()
def generate(
    config_file: Annotated[str, typer.Argument(help="Path to the config.yaml file")],
    seed: Annotated[Optional[int], typer.Option(help="Seed of the random mode, overrides the config")] = None,
    debug: Annotated[bool, typer.Option("--debug", help="Verbose logging")] = False,
):
    """
    Generate the magnetic structure described in the configuration file
    and print it as YAML.
    """
    _setup_logging(debug)
    try:
        config = load_config(config_file)
        crystal = SpinCrystal.from_config(config.crystal_structure)
        seed = seed if seed is not None else config.seed
        structure = crystal.genmagstr(
            rng=np.random.default_rng(seed), **config.magnetic_structure
        )
    except (FileNotFoundError, ValueError, TypeError) as e:
        typer.secho(f"Generation failed: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(yaml.safe_dump(structure.to_dict(), sort_keys=False))


# Entry point for setuptools
def main():
    app()


if __name__ == "__main__":
    app()
