"""
Perp Executor — Main Orchestrator.
Wires the execution engine together and serves the dashboard API until shutdown.
"""

from __future__ import annotations
import asyncio
import os
import sys
import signal
import logging

from dotenv import load_dotenv

# Load .env file before anything else
load_dotenv()

# Create data dir before FileHandler
os.makedirs("data", exist_ok=True)

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s | %(levelname)-7s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("data/executor.log"),
    ],
)
logger = logging.getLogger(__name__)

from config import AppConfig
from dashboard import Dashboard
from exchange.hyperliquid_rest import HyperliquidRestClient
from exchange.models import MarginMode
from notifications.telegram import TelegramNotifier
from storage.database import Database
from trading.asset_catalog import AssetCatalog
from trading.execution_supervisor import ExecutionSupervisor
from trading.leverage import LeverageConfigurator
from trading.order_submitter import OrderSubmitter
from trading.price_oracle import PriceOracle
from trading.tick_negotiator import TickSizeNegotiator


class App:
    """Main application orchestrator."""

    def __init__(self, config: AppConfig):
        self.config = config
        self._stop_event = asyncio.Event()

        signer = None
        if config.exchange.can_sign:
            from exchange.signing import HyperliquidSigner
            signer = HyperliquidSigner(
                config.exchange.api_secret,
                is_mainnet=not config.exchange.testnet,
            )
        else:
            logger.warning("[BOOT] HYPERLIQUID_API_SECRET not set. Running read-only.")

        self.db = Database(config.storage.db_path)
        self.client = HyperliquidRestClient(
            base_url=config.exchange.base_url,
            signer=signer,
            call_timeout_sec=config.execution.call_timeout_sec,
        )
        self.notifier = TelegramNotifier(
            bot_token=config.notifications.telegram_bot_token,
            chat_id=config.notifications.telegram_chat_id,
            enabled=config.notifications.enabled,
        )

        # Engine
        self.catalog = AssetCatalog(self.client, config.catalog.price_magnitude_thresholds)
        self.oracle = PriceOracle(self.client)
        self.leverage = LeverageConfigurator(self.client, MarginMode(config.execution.margin_mode))
        self.submitter = OrderSubmitter(self.client)
        self.negotiator = TickSizeNegotiator(
            self.submitter,
            config.execution.tick_size_candidates,
            max_sig_figs=config.execution.max_sig_figs,
        )
        self.supervisor = ExecutionSupervisor(
            client=self.client,
            catalog=self.catalog,
            oracle=self.oracle,
            leverage=self.leverage,
            negotiator=self.negotiator,
            trade_log=self.db,
            config=config.execution,
            notifier=self.notifier,
        )
        self.dashboard = Dashboard(self.supervisor, self.client, self.db, config)

    async def start(self):
        self.db.connect()
        await self.dashboard.start()
        network = "testnet" if self.config.exchange.testnet else "mainnet"
        logger.info(
            f"[BOOT] Executor ready on {network}. "
            f"Trading {'ENABLED' if self.config.execution.trading_enabled else 'disabled'}, "
            f"deadline {self.config.execution.deadline_sec}s, "
            f"tick candidates {[str(t) for t in self.config.execution.tick_size_candidates]}"
        )
        await self.notifier.send_status(f"Started ({network})")
        await self._stop_event.wait()

    async def stop(self):
        logger.info("[BOOT] Shutting down...")
        await self.dashboard.stop()
        await self.client.close()
        await self.notifier.close()
        self.db.close()
        self._stop_event.set()


async def main():
    """Entry point."""
    try:
        config = AppConfig.from_env()
    except ValueError as e:
        logger.critical(f"Invalid configuration: {e}")
        sys.exit(1)

    app = App(config)

    # Graceful shutdown handler
    if sys.platform != "win32":
        loop = asyncio.get_running_loop()

        def handle_signal(sig):
            logger.info(f"Received signal {sig}. Initiating shutdown...")
            asyncio.create_task(app.stop())

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received in main loop.")
        await app.stop()
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        await app.stop()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
