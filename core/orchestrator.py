"""
Sync Orchestrator — Run coordination for the ZC Portal stock synchronization.

This module is the core of the job. It ties together all other modules
(StateStore, CatalogClient, StockMapper) into a single linear run:

  Step 1: RUN CONTROL
      Takes the run-lock without waiting; a run that finds the lock taken
      logs and returns, leaving the active run's status alone. A run that
      finds the persisted status set to "stopped" honors that cancellation
      and returns. Otherwise the status becomes "running".

  Step 2: AUTHENTICATION
      CatalogClient.request_token() exchanges the secure key for a token.
      The token lives only in this run; without one the run ends.

  Step 3: PAGE LOOP
      Products are fetched in pages of BATCH_SIZE starting at offset 0.
      Before every page the stop flag is checked. Failures are handled as:
        transport error   -> end of run
        rate limited      -> wait RATE_LIMIT_WAIT, then retry the same offset
        other API error   -> end of run
        empty page        -> normal completion
      A page shorter than BATCH_SIZE is the last one.

  Step 4: STOCK UPDATE
      Every record of the page goes through StockMapper.apply(), one at a
      time. Updated counts as success, Failed as an error, Skipped is only
      tallied separately.

  Step 5: SUMMARY
      Totals are written to the log and the status is set to "stopped",
      whatever ended the run.

Waits (the rate-limit cooldown and the short delay between pages) poll the
stop flag every POLL_INTERVAL seconds, so a stop request is honored within
seconds even during the hour-long cooldown.

Configuration:
    All settings are loaded from environment variables (typically via .env file).
    Required: ZC_SECURE_KEY (or a key stored with `run.py set-key`),
    WC_STORE_URL, WC_CONSUMER_KEY, WC_CONSUMER_SECRET.
    See config/settings.py for defaults.

Typical usage:
    orchestrator = SyncOrchestrator.from_env("./.env")
    if orchestrator.validate_config():
        counters = orchestrator.start()
"""

import logging
import os
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from config import DEFAULT_SETTINGS
from .catalog_client import CatalogClient, PageStatus
from .product_store import WooCommerceProductStore
from .state_store import RunStatus, StateStore
from .stock_mapper import Failed, StockMapper, Updated

logger = logging.getLogger(__name__)


@dataclass
class SyncCounters:
    total_updated: int = 0
    total_errors: int = 0
    total_skipped: int = 0
    pages_fetched: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid integer %s=%r, using %s", name, raw, default)
        return default


def load_settings() -> Dict[str, Any]:
    """Read the job configuration from the environment, falling back to DEFAULT_SETTINGS."""
    return {
        "SECURE_KEY": os.getenv("ZC_SECURE_KEY", "").strip(),
        "API_URL": os.getenv("ZC_API_URL", DEFAULT_SETTINGS["API_URL"]),
        "BATCH_SIZE": _env_int("SYNC_BATCH_SIZE", DEFAULT_SETTINGS["BATCH_SIZE"]),
        "RATE_LIMIT_WAIT": _env_int("SYNC_RATE_LIMIT_WAIT", DEFAULT_SETTINGS["RATE_LIMIT_WAIT"]),
        "MAX_LOG_ENTRIES": _env_int("SYNC_MAX_LOG_ENTRIES", DEFAULT_SETTINGS["MAX_LOG_ENTRIES"]),
        "REQUEST_TIMEOUT": _env_int("SYNC_REQUEST_TIMEOUT", DEFAULT_SETTINGS["REQUEST_TIMEOUT"]),
        "BATCH_DELAY": _env_int("SYNC_BATCH_DELAY", DEFAULT_SETTINGS["BATCH_DELAY"]),
        "POLL_INTERVAL": _env_int("SYNC_POLL_INTERVAL", DEFAULT_SETTINGS["POLL_INTERVAL"]),
        "RECENT_LOG_LIMIT": _env_int("SYNC_RECENT_LOG_LIMIT", DEFAULT_SETTINGS["RECENT_LOG_LIMIT"]),
        "DATA_DIR": os.getenv("SYNC_DATA_DIR", DEFAULT_SETTINGS["DATA_DIR"]),
        "SCHEDULE_AT": os.getenv("SYNC_SCHEDULE_AT", DEFAULT_SETTINGS["SCHEDULE_AT"]),
        "WC_STORE_URL": os.getenv("WC_STORE_URL", "").strip(),
        "WC_CONSUMER_KEY": os.getenv("WC_CONSUMER_KEY", "").strip(),
        "WC_CONSUMER_SECRET": os.getenv("WC_CONSUMER_SECRET", "").strip(),
        "WC_API_VERSION": os.getenv("WC_API_VERSION", DEFAULT_SETTINGS["WC_API_VERSION"]),
        "WC_VERIFY_SSL": os.getenv("WC_VERIFY_SSL", str(DEFAULT_SETTINGS["WC_VERIFY_SSL"])).lower() == "true",
        "WC_TIMEOUT": _env_int("WC_TIMEOUT", DEFAULT_SETTINGS["WC_TIMEOUT"]),
        "DEBUG": os.getenv("DEBUG", str(DEFAULT_SETTINGS["DEBUG"])).lower() == "true",
    }


class SyncOrchestrator:
    """Orchestrates one stock synchronization run and its start/stop/status triggers.

    Attributes:
        store: StateStore holding status, log, secure key, and the run-lock.
        client: CatalogClient for the ZC Portal API.
        mapper: StockMapper applying records to the local product store.
        secure_key: Secure key from configuration; the stored key is used when empty.
        batch_size: Products per page.
        rate_limit_wait: Cooldown after a rate-limit reply, in seconds.
        batch_delay: Pause between pages, in seconds.
        poll_interval: How often waits re-check the stop flag, in seconds.
        recent_log_limit: Log lines returned by status_report().
        settings: The loaded configuration (filled by from_env()).
        counters: Counters of the current or last run.
    """

    def __init__(
        self,
        store: StateStore,
        client: CatalogClient,
        mapper: StockMapper,
        secure_key: Optional[str] = None,
        batch_size: int = DEFAULT_SETTINGS["BATCH_SIZE"],
        rate_limit_wait: float = DEFAULT_SETTINGS["RATE_LIMIT_WAIT"],
        batch_delay: float = DEFAULT_SETTINGS["BATCH_DELAY"],
        poll_interval: float = DEFAULT_SETTINGS["POLL_INTERVAL"],
        recent_log_limit: int = DEFAULT_SETTINGS["RECENT_LOG_LIMIT"],
        debug: bool = False,
    ):
        self.store = store
        self.client = client
        self.mapper = mapper
        self.secure_key = secure_key or ""
        self.batch_size = batch_size
        self.rate_limit_wait = rate_limit_wait
        self.batch_delay = batch_delay
        self.poll_interval = poll_interval
        self.recent_log_limit = recent_log_limit
        self.debug = debug
        self.settings: Dict[str, Any] = {}
        self.counters = SyncCounters()
        self._stop_event = threading.Event()

    @classmethod
    def from_env(cls, env_file: str = "./.env") -> "SyncOrchestrator":
        """Build an orchestrator and its collaborators from the environment.

        Args:
            env_file: Path to a .env file. If the file exists, it is loaded via
                      python-dotenv. Otherwise, falls back to system environment.
        """
        env_path = Path(env_file)
        if env_path.exists():
            load_dotenv(env_path)
            logger.info("Loaded configuration from: %s", env_file)
        else:
            logger.warning("%s not found, using defaults/environment", env_file)

        settings = load_settings()
        store = StateStore(settings["DATA_DIR"], max_entries=settings["MAX_LOG_ENTRIES"])
        client = CatalogClient(
            settings["API_URL"],
            store=store,
            timeout=settings["REQUEST_TIMEOUT"],
            debug=settings["DEBUG"],
        )
        products = WooCommerceProductStore.from_credentials(
            settings["WC_STORE_URL"],
            settings["WC_CONSUMER_KEY"],
            settings["WC_CONSUMER_SECRET"],
            version=settings["WC_API_VERSION"],
            timeout=settings["WC_TIMEOUT"],
            verify_ssl=settings["WC_VERIFY_SSL"],
        )
        orchestrator = cls(
            store,
            client,
            StockMapper(products, store),
            secure_key=settings["SECURE_KEY"],
            batch_size=settings["BATCH_SIZE"],
            rate_limit_wait=settings["RATE_LIMIT_WAIT"],
            batch_delay=settings["BATCH_DELAY"],
            poll_interval=settings["POLL_INTERVAL"],
            recent_log_limit=settings["RECENT_LOG_LIMIT"],
            debug=settings["DEBUG"],
        )
        orchestrator.settings = settings
        return orchestrator

    def validate_config(self) -> bool:
        """Validate that all required configuration values are present.

        Returns:
            True if all required values are present, False otherwise.
            Prints specific error messages for each missing value.
        """
        errors = []
        if not self._resolve_secure_key():
            errors.append("ZC_SECURE_KEY is required (or store one with `run.py set-key`)")
        for name in ("WC_STORE_URL", "WC_CONSUMER_KEY", "WC_CONSUMER_SECRET"):
            if name in self.settings and not self.settings[name]:
                errors.append(f"{name} is required")
        if self.batch_size <= 0:
            errors.append("SYNC_BATCH_SIZE must be a positive integer")

        if errors:
            print("\nConfiguration Errors:")
            for err in errors:
                print(f"  - {err}")
            return False
        return True

    # Triggers ---------------------------------------------------------

    def run(self) -> SyncCounters:
        """Execute one synchronization run.

        Honors a stop requested before the call: if the persisted status is
        "stopped", nothing is fetched. Never raises for API, network, or
        per-product failures; those end up in the log.

        Returns:
            The counters of this run (all zero when the run did not start).
        """
        return self._run(rearm=False)

    def start(self) -> SyncCounters:
        """Re-arm the job (status back to idle) and run it.

        This is what the on-demand and scheduled triggers call: the previous
        run always leaves the status at "stopped", which run() alone would
        read as a cancellation.
        """
        return self._run(rearm=True)

    def stop(self) -> None:
        """Ask the active run to stop at its next check."""
        self.store.set_status(RunStatus.STOPPED)
        self._stop_event.set()
        self.store.append_log("Stop requested.")

    def status_report(self, limit: Optional[int] = None) -> Dict[str, Any]:
        """Current status plus the most recent log entries, newest first."""
        entries = self.store.read_recent_log(limit if limit is not None else self.recent_log_limit)
        return {
            "status": self.store.get_status().value,
            "log": [str(entry) for entry in entries],
        }

    def clear_log(self) -> None:
        self.store.clear_log()

    def reset(self) -> None:
        """Forget the log and return to idle."""
        self.store.clear_log()
        self.store.reset_status_to_idle()

    # Run --------------------------------------------------------------

    def _run(self, rearm: bool) -> SyncCounters:
        counters = SyncCounters()
        if not self.store.run_lock.acquire():
            self.store.append_log("Synchronization already running; skipping this trigger.")
            return counters

        try:
            self._stop_event.clear()
            if rearm:
                self.store.reset_status_to_idle()

            if self.store.get_status() is RunStatus.STOPPED:
                self.store.append_log("Synchronization was stopped manually.")
                return counters

            self.store.set_status(RunStatus.RUNNING)
            self.counters = counters
            self.store.append_log("=== Stock synchronization started ===")
            try:
                self._sync(counters)
            except Exception as e:
                logger.exception("Synchronization aborted")
                self.store.append_log(f"ERROR: Synchronization aborted: {e}")
            finally:
                self.store.set_status(RunStatus.STOPPED)
        finally:
            self.store.run_lock.release()

        return counters

    def _sync(self, counters: SyncCounters) -> None:
        token = self.client.request_token(self._resolve_secure_key())
        if not token:
            self.store.append_log("ERROR: Synchronization aborted - cannot obtain a token.")
            return

        offset = 0
        while True:
            if self._stop_requested():
                self.store.append_log("Synchronization was stopped by the user.")
                break

            page = self.client.fetch_products_page(token, offset, self.batch_size)

            if page.status is PageStatus.TRANSPORT_ERROR:
                self.store.append_log(f"ERROR: API connection error: {page.error}")
                break

            if page.status is PageStatus.RATE_LIMITED:
                self.store.append_log(f"ERROR: API returned an error: {page.error}")
                self.store.append_log(
                    f"RATE LIMIT: Waiting {self.rate_limit_wait / 60:g} minutes before retrying offset {offset}..."
                )
                if not self._wait(self.rate_limit_wait):
                    self.store.append_log("Synchronization was stopped by the user during the rate-limit wait.")
                    break
                continue

            if page.status is PageStatus.GRAPHQL_ERROR:
                self.store.append_log(f"ERROR: API returned an error: {page.error}")
                break

            counters.pages_fetched += 1
            records = page.records
            if not records:
                self.store.append_log("All products have been processed.")
                break

            self.store.append_log(f"Processing batch: {offset + 1} - {offset + len(records)}")

            for record in records:
                outcome = self.mapper.apply(record)
                if isinstance(outcome, Updated):
                    counters.total_updated += 1
                elif isinstance(outcome, Failed):
                    counters.total_errors += 1
                else:
                    counters.total_skipped += 1
                if self.debug:
                    logger.debug("Offset %d: %s", offset, outcome)

            offset += self.batch_size
            self._wait(self.batch_delay)

            if len(records) != self.batch_size:
                break

        self.store.append_log("=== Stock synchronization finished ===")
        self.store.append_log(f"Total updated: {counters.total_updated} products")
        if counters.total_errors > 0:
            self.store.append_log(f"Total errors: {counters.total_errors}")
        if counters.total_skipped > 0:
            self.store.append_log(f"Total skipped: {counters.total_skipped}")

    def _resolve_secure_key(self) -> str:
        return self.secure_key or self.store.get_secure_key()

    def _stop_requested(self) -> bool:
        return self._stop_event.is_set() or self.store.get_status() is RunStatus.STOPPED

    def _wait(self, seconds: float) -> bool:
        """Sleep for up to `seconds`, checking the stop flag every poll_interval.

        Returns:
            True if the full time elapsed, False as soon as a stop was requested.
        """
        deadline = time.monotonic() + seconds
        while True:
            if self._stop_requested():
                return False
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return True
            self._stop_event.wait(min(remaining, self.poll_interval))
