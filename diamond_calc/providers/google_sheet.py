import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Sequence
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter

from diamond_calc.config import SHEET_TABS, get_config
from diamond_calc.db import load_settings, save_synced_settings, utc_now_iso
from diamond_calc.models import SyncResult
from diamond_calc.providers.base import PriceSheetProvider, SheetFetchError
from diamond_calc.sheet_parser import parse_and_merge_settings

logger = logging.getLogger(__name__)


class GoogleSheetProvider(PriceSheetProvider):
    """
    Fetches the tabs of a Google Sheet that has been published to the web.

    Each tab is read through the gviz CSV export, which works with tab names
    rather than numeric gids. All tabs are requested at once and the fetch
    fails as a whole if any one of them fails.
    """

    provider_name = "google"
    endpoint_base = "https://docs.google.com/spreadsheets/d"

    def __init__(self, sheet_id: str | None = None, timeout_seconds: float | None = None):
        config = get_config()
        self.sheet_id = (sheet_id if sheet_id is not None else config.google_sheet_id).strip()
        self.timeout_seconds = timeout_seconds or config.request_timeout_seconds

        self.session = requests.Session()
        adapter = HTTPAdapter(pool_connections=1, pool_maxsize=len(SHEET_TABS))
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def tab_url(self, tab_name: str) -> str:
        return (
            f"{self.endpoint_base}/{self.sheet_id}/gviz/tq"
            f"?tqx=out:csv&sheet={quote(tab_name, safe='')}&tq={quote('select *', safe='')}"
        )

    def _fetch_tab(self, tab_name: str) -> str:
        try:
            response = self.session.get(self.tab_url(tab_name), timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            raise SheetFetchError(f'Failed to fetch "{tab_name}" tab: {exc}') from exc
        if not response.ok:
            raise SheetFetchError(f'Failed to fetch "{tab_name}" tab (HTTP {response.status_code})')
        if not response.encoding:
            response.encoding = "utf-8"
        return response.text

    def fetch_tabs(self, tab_names: Sequence[str]) -> dict[str, str]:
        if not self.sheet_id:
            raise SheetFetchError(
                "Google Sheet ID is not configured. Set GOOGLE_SHEET_ID in your .env file."
            )

        with ThreadPoolExecutor(max_workers=len(tab_names), thread_name_prefix="SheetFetch") as executor:
            futures = {name: executor.submit(self._fetch_tab, name) for name in tab_names}
            # Joined in tab order; the first failure is reported after every request settles
            return {name: future.result() for name, future in futures.items()}


class LocalCsvProvider(PriceSheetProvider):
    """Reads each tab from ``<directory>/<tab>.csv``, e.g. an exported copy of the sheet."""

    provider_name = "local"

    def __init__(self, directory: Path | None = None):
        self.directory = directory or get_config().price_sheet_dir

    def fetch_tabs(self, tab_names: Sequence[str]) -> dict[str, str]:
        texts: dict[str, str] = {}
        for name in tab_names:
            path = self.directory / f"{name}.csv"
            try:
                texts[name] = path.read_text(encoding="utf-8-sig")
            except OSError as exc:
                raise SheetFetchError(f'Failed to read "{name}" tab from {path}: {exc}') from exc
        return texts


def build_provider_from_env() -> PriceSheetProvider:
    provider_name = get_config().price_sheet_provider
    if provider_name == "google":
        return GoogleSheetProvider()
    if provider_name == "local":
        return LocalCsvProvider()
    raise SheetFetchError("Unsupported PRICE_SHEET_PROVIDER. Use 'google' or 'local'.")


def sync_from_sheet(conn: sqlite3.Connection, provider: PriceSheetProvider | None = None) -> SyncResult:
    """
    Refreshes the stored settings from the price sheet.

    All tabs are fetched before anything is parsed. On any failure the
    stored settings are left as they were and the error comes back in the
    result rather than as an exception.
    """
    current = load_settings(conn)
    try:
        provider = provider or build_provider_from_env()
        logger.info("Syncing settings from %s price sheet", provider.provider_name)
        tabs = provider.fetch_tabs(SHEET_TABS)
        merged = parse_and_merge_settings(current, tabs["rates"], tabs["stones"], tabs["slabs"])
        synced_at = utc_now_iso()
        save_synced_settings(conn, merged, synced_at)
    except (SheetFetchError, ValueError, sqlite3.Error) as exc:
        logger.warning("Price sheet sync failed: %s", exc)
        return SyncResult(success=False, error=str(exc))

    logger.info("Price sheet sync complete: %d stone types", len(merged.stone_types))
    return SyncResult(
        success=True,
        settings=merged,
        synced_at=synced_at,
        stone_type_count=len(merged.stone_types),
    )

