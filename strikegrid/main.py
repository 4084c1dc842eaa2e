import asyncio
import logging
from typing import Optional

import typer
import uvicorn

from strikegrid.config import ConfigError, settings
from strikegrid.exec.executor import WalletLocks
from strikegrid.ingest.board import SignalBoard
from strikegrid.ingest.sentiment import SignalAcquisition
from strikegrid.networks import load_networks
from strikegrid.runtime.noise import is_noise
from strikegrid.runtime.supervisor import Orchestrator
from strikegrid.runtime.worker import make_worker
from strikegrid.server import create_app
from strikegrid.strategy import grid
from strikegrid.strategy.trust import TrustLedger
from strikegrid.tools import trust_cli


app = typer.Typer()
app.command("trust")(trust_cli.main)

# --- Logging setup ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(threadName)s - %(message)s",
)
logger = logging.getLogger("strikegrid")


def handle_loop_exception(loop, context):
    exc = context.get("exception")
    msg = str(exc) if exc else context.get("message", "")
    if is_noise(msg):
        logger.debug(f"[loop] {msg}")
        return
    logger.error(f"[loop] uncaught: {msg}")


def build_orchestrator(names) -> tuple[Orchestrator, SignalBoard, TrustLedger]:
    profiles = load_networks(names)
    ledger = TrustLedger(settings.trust_file)
    locks = WalletLocks()
    acquisition = SignalAcquisition()
    board = SignalBoard()
    # stream: a shared scanner fills the board; interval: each worker's own scan does
    stream = settings.trigger == "stream"

    def factory(profile):
        return make_worker(
            profile,
            settings,
            ledger,
            locks,
            acquisition=acquisition,
            board=board if stream else None,
            signal_sink=None if stream else board,
        )

    orch = Orchestrator(
        profiles,
        factory,
        board=board if stream else None,
        acquisition=acquisition,
        cfg=settings,
    )
    return orch, board, ledger


async def serve(names, port: int, with_server: bool = True):
    asyncio.get_running_loop().set_exception_handler(handle_loop_exception)
    orch, board, _ = build_orchestrator(names)
    await orch.start()
    try:
        if with_server:
            config = uvicorn.Config(
                create_app(orch, board), host="0.0.0.0", port=port, log_level="warning"
            )
            await uvicorn.Server(config).serve()
        else:
            await orch.wait()
    finally:
        await orch.stop()


@app.command()
def run(
    trigger: Optional[str] = typer.Option(None, help="stream | interval"),
    networks: Optional[str] = typer.Option(None, help="comma-separated network names"),
    port: Optional[int] = typer.Option(None, help="health endpoint port"),
    ping: bool = typer.Option(False, help="send a zero-value test tx at startup"),
    server: bool = typer.Option(True, help="serve the health endpoint"),
    debug: bool = typer.Option(False, help="verbose logs"),
):
    if debug:
        logger.setLevel(logging.DEBUG)
    if trigger:
        settings.trigger = trigger.strip().lower()
    if networks:
        settings.networks = networks
    if ping:
        settings.startup_ping = True

    try:
        if settings.trigger not in ("stream", "interval"):
            raise ConfigError(f"unknown trigger {settings.trigger!r}")
        settings.require_credentials()
        names = settings.network_names()
        load_networks(names)
    except (ConfigError, KeyError) as e:
        logger.error(f"startup aborted: {e}")
        raise typer.Exit(code=1)

    logger.info(f"Starting strikegrid (trigger={settings.trigger}, networks={','.join(names)})")
    try:
        asyncio.run(serve(names, port or settings.port, with_server=server))
    except KeyboardInterrupt:
        logger.info("Stopped.")


@app.command()
def scan():
    """Run one signal scan and print the accepted targets."""
    signals = SignalAcquisition().scan()
    if not signals:
        typer.echo(f"no signals; discovery target {settings.default_ticker}")
    for sig in signals:
        typer.echo(f"{sig.ticker} sentiment={sig.sentiment:.3f} source={sig.source}")


@app.command("grid")
def show_grid(
    balance: int = typer.Argument(..., help="wallet balance in wei"),
    reserve: Optional[int] = typer.Option(None, help="reserve in wei"),
    overhead: int = typer.Option(0, help="fee overhead in wei"),
):
    """Print the tier ladder for a balance."""
    tiers = grid.plan(balance, settings.min_reserve_wei if reserve is None else reserve, overhead)
    if not tiers:
        typer.echo("no capital above reserve")
    for t in tiers:
        typer.echo(f"{t.label:<16} amount={t.amount} flash={t.flash}")


if __name__ == "__main__":
    app()
