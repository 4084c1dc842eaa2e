import typer

from strikegrid.config import settings
from strikegrid.strategy.trust import TrustLedger


def main(
    path: str = typer.Option(None, help="Trust file (defaults to TRUST_FILE)"),
):
    """Print the per-source trust weights."""
    ledger = TrustLedger(path or settings.trust_file)
    scores = ledger.snapshot()
    typer.echo(f"trust file: {ledger.path} ({len(scores)} sources)")
    for source, weight in sorted(scores.items(), key=lambda kv: -kv[1]):
        typer.echo(f" {source}: {weight:.4f}")


if __name__ == "__main__":
    typer.run(main)
