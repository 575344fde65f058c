"""
Command line interface of the :mod:`holdout` package.

Usage::

    holdout run config.yml [--data subjects.csv] [--output-dir out/]
    holdout split config.yml --output-dir out/
    holdout version
"""

import logging
from pathlib import Path
from typing import NoReturn, Optional

import pandas as pd
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import HoldoutConfig
from .data import Sample
from .errors import ConfigError, HoldoutError
from .pipeline import HoldoutPipeline, PipelineReport

log = logging.getLogger(__name__)

app = typer.Typer(help="Leakage-free train/validation/test model selection")

console = Console()


@app.command()
def version() -> None:
    """
    Print the version of the holdout package.
    """
    console.print(__version__)


@app.command()
def run(
    config_path: Path = typer.Argument(..., help="YAML configuration of the run"),
    data: Optional[Path] = typer.Option(
        None, "--data", help="CSV file with observations; overrides the config"
    ),
    output_dir: Optional[Path] = typer.Option(
        None, "--output-dir", help="directory for the subsets and the report"
    ),
) -> None:
    """
    Partition the data, select the best candidate on the validation subset, and
    evaluate it once on the test subset.
    """
    try:
        config = _load_config(config_path, data=data, output_dir=output_dir)
        pipeline = HoldoutPipeline.from_config(config)
        sample = _load_sample(config)
        report = pipeline.run(sample, output_dir=config.output_dir)
    except HoldoutError as e:
        _fail(e)

    _print_report(report)

    if config.output_dir is not None:
        console.print(
            f"[green]Wrote subsets and report to {config.output_dir}[/green]"
        )


@app.command()
def split(
    config_path: Path = typer.Argument(..., help="YAML configuration of the run"),
    output_dir: Path = typer.Option(
        ..., "--output-dir", help="directory to write the three subsets to"
    ),
    data: Optional[Path] = typer.Option(
        None, "--data", help="CSV file with observations; overrides the config"
    ),
) -> None:
    """
    Partition the data by entity and write the training, validation and test subsets
    to CSV files, without fitting any candidate.
    """
    try:
        config = _load_config(config_path, data=data, output_dir=output_dir)
        pipeline = HoldoutPipeline.from_config(config)
        partition = pipeline.split(_load_sample(config))
        paths = partition.to_csv(output_dir)
    except HoldoutError as e:
        _fail(e)

    console.print(_frame_to_table(partition.to_frame(), title="Partition"))
    console.print(f"seed: {partition.seed}")
    for role, path in paths.items():
        console.print(f"[green]Wrote {role} subset to {path}[/green]")


#
# auxiliary functions
#


def _load_config(
    config_path: Path, *, data: Optional[Path], output_dir: Optional[Path]
) -> HoldoutConfig:
    config = HoldoutConfig.load(config_path).with_overrides(
        data_path=data, output_dir=output_dir
    )
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return config


def _load_sample(config: HoldoutConfig) -> Sample:
    path = config.data.path
    if path is None:
        raise ConfigError("no data file given in the configuration or with --data")
    if not path.is_file():
        raise ConfigError(f"data file not found: {path}")
    try:
        return Sample.from_csv(path, entity_name=config.data.entity)
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"invalid data file {path}: {e}") from e


def _fail(error: HoldoutError) -> NoReturn:
    console.print(f"[red]{type(error).__name__}: {escape(str(error))}[/red]")
    raise typer.Exit(code=1)


def _frame_to_table(frame: pd.DataFrame, *, title: str) -> Table:
    table = Table(title=title)
    table.add_column(str(frame.index.name or ""))
    for column in frame.columns:
        table.add_column(str(column), justify="right")
    for index, row in frame.iterrows():
        table.add_row(
            escape(str(index)),
            *("" if pd.isna(value) else escape(_format_value(value)) for value in row),
        )
    return table


def _format_value(value: object) -> str:
    if isinstance(value, float):
        return f"{value:.6g}"
    return str(value)


def _print_report(report: PipelineReport) -> None:
    console.print(_frame_to_table(report.partition.to_frame(), title="Partition"))
    console.print(f"seed: {report.seed}")
    console.print(
        _frame_to_table(
            report.to_frame(), title=f"Validation ({report.metric_name})"
        )
    )

    for failure in report.failures:
        console.print(
            f"[yellow]excluded {escape(failure.candidate_name)} ({failure.stage}): "
            f"{escape(failure.message)}[/yellow]"
        )

    validation = report.validation_result
    test = report.test_result
    console.print(
        f"[bold]selected:[/bold] {escape(report.selected_candidate)} "
        f"(validation {validation.metric_name}={validation.score:.6g}, "
        f"test {test.metric_name}={test.score:.6g} "
        f"on {test.n_observations} observations)"
    )

    confusion_matrix = report.confusion_matrix
    if confusion_matrix is not None:
        console.print(
            _frame_to_table(confusion_matrix, title="Test confusion matrix")
        )


if __name__ == "__main__":
    app()
