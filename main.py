"""
EdgeNode Wallet Runner - Main Entry Point

Loads wallets and proxies, then starts the BatchScheduler, which keeps
every wallet's light node connected and reports point balances on a
fixed schedule.

Usage:
    python main.py              # Run continuously (sweep every hour)
    python main.py --once       # Single sweep, then exit
    python main.py --register 5 # Register 5 new wallets after each sweep
"""
from dotenv import load_dotenv

# Load environment variables from .env file into os.environ
load_dotenv()

import asyncio
import argparse
import logging
import signal
import sys

from edgenode.config import NodeSettings
from edgenode.logging_setup import setup_logging
from edgenode.orchestrator import BatchScheduler
from edgenode.proxy_manager import ProxyManager
from edgenode.registration import AutoRegistrar
from edgenode.wallet_manager import WalletFileError, load_wallets

logger = logging.getLogger(__name__)


async def main() -> int:
    """
    Main execution loop.

    1. Parses command line arguments.
    2. Loads settings and configures logging.
    3. Loads wallets (fatal on a malformed file) and proxies.
    4. Starts the BatchScheduler and waits for SIGTERM or interruption.
    """
    parser = argparse.ArgumentParser(description="EdgeNode wallet runner")
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    parser.add_argument("--register", type=int, help="Wallets to register after each sweep")
    parser.add_argument("--batch-size", type=int, help="Override the concurrency window")
    args = parser.parse_args()

    settings = NodeSettings()
    if args.register is not None:
        settings.auto_register_count = max(0, args.register)
    if args.batch_size:
        settings.batch_size = max(1, args.batch_size)

    setup_logging(settings.log_level)

    try:
        wallets = load_wallets(settings.wallets_file)
    except WalletFileError as e:
        logger.critical(f"Cannot start: {e}")
        return 1

    proxy_manager = ProxyManager(settings)
    if not wallets and settings.auto_register_count <= 0:
        logger.info("No Wallets found, create wallets first (run with --register N)")
        return 0

    scheduler = BatchScheduler(settings, wallets, proxy_manager)
    registrar = AutoRegistrar(settings, proxy_manager, stop_event=scheduler.stop_event)
    scheduler.registration_hook = registrar.run

    def handle_sigterm():
        logger.info("🛑 Received SIGTERM. Initiating graceful shutdown...")
        scheduler.stop()

    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGTERM, handle_sigterm)

    try:
        await scheduler.run_forever(max_sweeps=1 if args.once else None)
    except asyncio.CancelledError:
        logger.info("👋 Stopping runner (cancelled)...")
        scheduler.stop()
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("👋 Stopping runner (KeyboardInterrupt)...")
