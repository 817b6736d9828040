"""Command-line interface for cellsig.

Provides commands to score signatures on an ``.h5ad`` file and to smooth
the resulting score columns over a kNN graph.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import click

from .. import __version__
from ..errors import CellsigError


def setup_logging(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Setup logging for CLI commands."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    return logging.getLogger("cellsig")


def _attach_log_file(logger: logging.Logger, log_file: Optional[str]) -> None:
    if not log_file:
        return
    from ..io.logging import get_logger

    _, path = get_logger(logger.name, log_file, level=logging.DEBUG)
    click.echo(f"Logging to: {path}")


def _read_adata(path: str):
    # Import here to avoid slow startup
    import anndata as ad

    return ad.read_h5ad(path)


@click.group()
@click.version_option(version=__version__, prog_name="cellsig")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool) -> None:
    """cellsig: rank-based signature scoring for single-cell data.

    Examples:

        # Score signatures and keep ranks for later runs
        cellsig score -i data.h5ad -s signatures.yaml -o scored.h5ad --store-ranks

        # Smooth scores over the PCA neighborhood graph
        cellsig smooth -i scored.h5ad -o smoothed.h5ad --k 15
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["logger"] = setup_logging(verbose, debug)


@cli.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Input AnnData file (.h5ad)")
@click.option("--signatures", "-s", "signatures_path", required=True,
              type=click.Path(exists=True), help="Signature file (YAML or JSON)")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output AnnData file (.h5ad)")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Scoring configuration file (YAML)")
@click.option("--layer", default=None, help="Expression layer to score instead of X")
@click.option("--max-rank", type=int, default=None, help="Ranking horizon")
@click.option("--chunk-size", type=int, default=None, help="Cells per chunk")
@click.option("--n-workers", type=int, default=None, help="Parallel workers")
@click.option("--w-neg", type=float, default=None, help="Weight of negative features")
@click.option("--ties-method", type=click.Choice(["average", "min", "max", "first", "last", "dense"]),
              default=None, help="Tie resolution method")
@click.option("--suffix/--no-suffix", default=None,
              help="Append the name suffix (default _UCell) to score columns")
@click.option("--store-ranks", is_flag=True, help="Keep ranks in the output for reuse")
@click.option("--overwrite", is_flag=True, help="Replace existing score columns")
@click.option("--scores-csv", type=click.Path(), default=None,
              help="Also write the score table as CSV")
@click.option("--log-file", type=click.Path(), default=None, help="Write a timestamped log file")
@click.option("--record", type=click.Path(), default=None,
              help="Append a YAML run record to this file")
@click.pass_context
def score(
    ctx: click.Context,
    input_path: str,
    signatures_path: str,
    output_path: str,
    config: Optional[str],
    layer: Optional[str],
    max_rank: Optional[int],
    chunk_size: Optional[int],
    n_workers: Optional[int],
    w_neg: Optional[float],
    ties_method: Optional[str],
    suffix: Optional[bool],
    store_ranks: bool,
    overwrite: bool,
    scores_csv: Optional[str],
    log_file: Optional[str],
    record: Optional[str],
) -> None:
    """Score signatures for every cell and add them to obs."""
    logger = ctx.obj["logger"]
    _attach_log_file(logger, log_file)

    from ..core.scoring import DEFAULT_NAME_SUFFIX, ScoringConfig
    from ..io import load_signatures, log_yaml, score_adata

    try:
        cfg = ScoringConfig.from_yaml(Path(config)) if config else ScoringConfig()
        overrides: Dict[str, Any] = {
            key: value
            for key, value in {
                "max_rank": max_rank,
                "chunk_size": chunk_size,
                "n_workers": n_workers,
                "w_neg": w_neg,
                "ties_method": ties_method,
            }.items()
            if value is not None
        }
        if suffix is not None:
            overrides["name_suffix"] = (cfg.name_suffix or DEFAULT_NAME_SUFFIX) if suffix else None
        if store_ranks:
            overrides["store_ranks"] = True
        cfg = ScoringConfig.from_dict({**cfg.to_dict(), **overrides})

        signatures = load_signatures(signatures_path, logger=logger)
        logger.info("Scoring %s with %d signatures", input_path, len(signatures))
        adata = _read_adata(input_path)
        result = score_adata(
            adata, signatures, cfg, layer=layer, overwrite=overwrite, logger=logger
        )
    except (CellsigError, FileNotFoundError) as exc:
        raise click.ClickException(str(exc)) from exc

    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    adata.write_h5ad(out)
    if scores_csv:
        Path(scores_csv).parent.mkdir(parents=True, exist_ok=True)
        result.scores.to_csv(scores_csv)
    if record:
        log_yaml(record, {"input": input_path, "output": str(out),
                          "config": cfg.to_dict(), "result": result.to_dict()})

    click.echo(f"Scored {result.scores.shape[0]} cells x {result.scores.shape[1]} signatures")
    if result.empty_signatures:
        click.echo(f"Empty signatures (scored 0): {', '.join(result.empty_signatures)}")
    click.echo(f"Output saved to: {out}")


@cli.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Input AnnData file (.h5ad)")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output AnnData file (.h5ad)")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Smoothing configuration file (YAML)")
@click.option("--k", "k", type=int, default=None, help="Neighbors per cell")
@click.option("--weighting", type=click.Choice(["uniform", "distance"]), default=None,
              help="Neighbor weighting scheme")
@click.option("--embedding", default=None, help="Embedding key in obsm (default X_pca)")
@click.option("--include-self/--exclude-self", default=None,
              help="Count each cell among its own neighbors")
@click.option("--columns", default=None, help="Comma-separated obs columns to smooth")
@click.option("--suffix", default=None, help="Suffix for smoothed columns (default _kNN)")
@click.option("--overwrite", is_flag=True, help="Replace existing smoothed columns")
@click.pass_context
def smooth(
    ctx: click.Context,
    input_path: str,
    output_path: str,
    config: Optional[str],
    k: Optional[int],
    weighting: Optional[str],
    embedding: Optional[str],
    include_self: Optional[bool],
    columns: Optional[str],
    suffix: Optional[str],
    overwrite: bool,
) -> None:
    """Smooth score columns over the kNN graph of an embedding."""
    logger = ctx.obj["logger"]

    from ..core.smoothing import SmoothingConfig
    from ..io import smooth_adata

    try:
        cfg = SmoothingConfig.from_yaml(Path(config)) if config else SmoothingConfig()
        overrides: Dict[str, Any] = {
            key: value
            for key, value in {
                "k": k,
                "weighting": weighting,
                "embedding_key": embedding,
                "include_self": include_self,
                "suffix": suffix,
            }.items()
            if value is not None
        }
        if columns:
            overrides["columns"] = [c.strip() for c in columns.split(",") if c.strip()]
        cfg = SmoothingConfig.from_dict({**cfg.to_dict(), **overrides})

        adata = _read_adata(input_path)
        smoothed = smooth_adata(adata, cfg, overwrite=overwrite, logger=logger)
    except CellsigError as exc:
        raise click.ClickException(str(exc)) from exc

    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    adata.write_h5ad(out)
    click.echo(f"Smoothed {smoothed.shape[1]} columns (k={cfg.k}, weighting={cfg.weighting})")
    click.echo(f"Output saved to: {out}")


def main() -> None:
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
