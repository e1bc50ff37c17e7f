#!filepath: batchscore/cli.py
from typing import Any, Dict, Optional

import typer
from pydantic import ValidationError
from rich import print

from batchscore import __version__
from batchscore.config.app_config import AppConfig
from batchscore.config.scoring_config import ScoringConfig
from batchscore.utils.errors import BatchScoreError
from batchscore.workflows.score_workflow import init_logging, run_scoring

app = typer.Typer(help="batchscore: score delimited tables with a PMML model")

CONFIG_ERROR_EXIT = 2


@app.command()
def version():
    print(f"v{__version__}")


@app.command()
def run(
    input: str = typer.Argument(..., help="input table (header row, tab separated)"),
    output: str = typer.Argument(..., help="scored output table"),
    trap: str = typer.Argument(..., help="trapped records table"),
    pmml: Optional[str] = typer.Option(None, "--pmml", help="PMML model definition"),
    measure: Optional[str] = typer.Option(
        None, "--measure", help="known results: validate and write a confusion matrix"
    ),
    rmse: Optional[str] = typer.Option(
        None, "--rmse", help="known results: write per-group RMSE"
    ),
    measure_output: Optional[str] = typer.Option(None, "--measure-output"),
    join_key: Optional[str] = typer.Option(None, "--join-key"),
    group_field: Optional[str] = typer.Option(None, "--group-field"),
    workers: Optional[int] = typer.Option(None, "--workers"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size"),
    dot: Optional[str] = typer.Option(None, "--dot", help="write the flow as Graphviz DOT"),
    debug: bool = typer.Option(False, "--debug", help="log record snapshots"),
    strict: bool = typer.Option(False, "--assert", help="fail the run on any mismatch"),
    config: Optional[str] = typer.Option(None, "--config", help="YAML config file"),
):
    """
    Score INPUT with the model, writing OUTPUT and TRAP (and measures).
    """
    overrides: Dict[str, Any] = {
        "input": input,
        "output": output,
        "trap": trap,
        "model": pmml,
        "validation_source": measure,
        "error_source": rmse,
        "measure_output": measure_output,
        "join_key": join_key,
        "group_field": group_field,
        "workers": workers,
        "batch_size": batch_size,
        "dot_output": dot,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if debug:
        overrides["debug"] = True
    if strict:
        overrides["assert_strict"] = True

    try:
        app_cfg = AppConfig.load(config)
        cfg = ScoringConfig(**{**app_cfg.scoring.model_dump(), **overrides})
    except (FileNotFoundError, ValidationError) as e:
        print(f"[red]invalid configuration:[/red] {e}")
        raise typer.Exit(code=CONFIG_ERROR_EXIT)

    init_logging(app_cfg.log)

    try:
        result = run_scoring(cfg)
    except BatchScoreError as e:
        print(f"[red]{type(e).__name__}:[/red] {e}")
        raise typer.Exit(code=CONFIG_ERROR_EXIT)

    colour = {0: "green", 1: "red", 3: "yellow"}[result.exit_code]
    print(
        f"[{colour}]{result.status.value}[/{colour}] "
        f"processed={result.records_processed} output={result.records_output} "
        f"trapped={result.records_trapped} violations={result.assertion_violations}"
    )
    raise typer.Exit(code=result.exit_code)


if __name__ == "__main__":
    app()

# python -m batchscore.cli run data/iris.tsv out/classify.tsv out/trap.tsv --pmml data/iris.pmml
