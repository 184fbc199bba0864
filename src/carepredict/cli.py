"""Command-line interface for the carepredict pipeline."""

from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    import pandas as pd

app = typer.Typer(
    name="carepredict",
    help="Train supervised models and deploy them with per-row explanations.",
    no_args_is_help=True,
)

console = Console()

ConfigOption = Annotated[
    Path,
    typer.Option(
        "--config",
        "-c",
        help="Path to configuration YAML file.",
        exists=True,
        dir_okay=False,
    ),
]
DataOption = Annotated[
    Path,
    typer.Option(
        "--data",
        "-d",
        help="Path to source CSV file.",
        exists=True,
        dir_okay=False,
    ),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Show row-level diagnostics."),
]


def _read_csv(path: Path) -> "pd.DataFrame":
    import pandas as pd

    # Same missing-value markers as the usual SQL exports
    return pd.read_csv(path, na_values=["NULL", "NA", ""])


@app.command()
def train(
    config: ConfigOption,
    data: DataOption,
    verbose: VerboseOption = False,
) -> None:
    """Prepare data, train the configured model family and save it."""
    from carepredict.config.loader import load_config
    from carepredict.errors import CarePredictError
    from carepredict.modeling.data import prepare
    from carepredict.modeling.training import ModelTrainer
    from carepredict.utils.logging import configure_logging

    try:
        model_config = load_config(config)
        configure_logging(debug=verbose or model_config.debug)
        prepared = prepare(_read_csv(data), model_config)
        fitted = ModelTrainer(model_config).train(prepared)
    except CarePredictError as e:
        console.print(f"[red]Training failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Training Summary ({fitted.family.value})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Training rows", str(len(prepared.train)))
    table.add_row("Test rows", str(len(prepared.test)))
    table.add_row("Features", str(len(fitted.feature_names)))
    if fitted.best_params:
        table.add_row("Best params", str(fitted.best_params))
    if fitted.cv_score is not None:
        table.add_row("CV score", f"{fitted.cv_score:.4f}")
    for name, value in fitted.test_scores.items():
        table.add_row(f"Test {name}", f"{value:.4f}")
    table.add_row("Training time (s)", f"{fitted.training_time_s:.2f}")
    console.print(table)
    console.print(f"[green]Saved model to {model_config.model_dir}[/green]")


@app.command()
def deploy(
    config: ConfigOption,
    data: DataOption,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Also write prediction records to this CSV file.",
        ),
    ] = None,
    no_write: Annotated[
        bool,
        typer.Option("--no-write", help="Skip writing to the destination table."),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Score new data with the saved model and write ranked explanations."""
    from carepredict.config.loader import load_config
    from carepredict.errors import CarePredictError, SinkWriteError
    from carepredict.modeling.deployment import run_deployment
    from carepredict.utils.logging import configure_logging

    overrides = {"write_to_db": False} if no_write else {}
    try:
        model_config = load_config(config, **overrides)
        configure_logging(debug=verbose or model_config.debug)
        records, _ = run_deployment(_read_csv(data), model_config)
    except SinkWriteError as e:
        console.print(f"[red]Writing to destination failed: {e}[/red]")
        if output is not None and e.records is not None:
            e.records.to_csv(output, index=False)
            console.print(f"[yellow]Records saved to {output} instead[/yellow]")
        raise typer.Exit(code=1) from e
    except CarePredictError as e:
        console.print(f"[red]Deployment failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        records.to_csv(output, index=False)
        console.print(f"[green]Saved {len(records)} records to {output}[/green]")

    preview = Table(title="Predictions (first 10 rows)")
    for col in records.columns[3:]:
        preview.add_column(str(col))
    for _, row in records.head(10).iterrows():
        preview.add_row(*[
            f"{v:.2f}" if isinstance(v, float) else str(v) for v in row.iloc[3:]
        ])
    console.print(preview)


@app.command()
def version() -> None:
    """Show version information."""
    from carepredict import __version__

    console.print(f"carepredict version {__version__}")


if __name__ == "__main__":
    app()
