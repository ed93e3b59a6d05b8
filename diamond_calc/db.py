import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from diamond_calc.config import get_config
from diamond_calc.models import (
    EstimateFilters,
    EstimateRecord,
    EstimateStone,
    Settings,
    SettingsShapeError,
    StoneSlab,
    StoneType,
)

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"
LAST_SYNCED_KEY = "last_synced_at"

DEFAULT_SLABS: tuple[StoneSlab, ...] = (
    StoneSlab("LGDRDVVSEFWD1", 0.0001, 0.0089, 25000),
    StoneSlab("LGDRDVVSEFWD2", 0.0089, 0.0129, 25000),
    StoneSlab("LGDRDVVSEFWD3", 0.0129, 0.0169, 20000),
    StoneSlab("LGDRDVVSEFWD4", 0.0169, 0.0339, 20000),
    StoneSlab("LGDRDVVSEFP08", 0.0339, 0.0749, 20000),
    StoneSlab("LGDRDVVSEFP10", 0.0749, 0.0849, 22000),
    StoneSlab("LGDRDVVSEFP15", 0.0849, 0.1399, 22000),
    StoneSlab("LGDRDVVSEFP18", 0.1399, 0.1799, 22000),
    StoneSlab("LGDRDVVSEFP20", 0.1799, 0.2299, 25000),
    StoneSlab("LGDRDVVSEFP25", 0.2299, 0.2999, 25000),
    StoneSlab("LGDRDVVSEFS03", 0.2999, 0.3999, 25000),
    StoneSlab("LGDRDVVSEFS04", 0.3999, 0.4999, 28000),
    StoneSlab("LGDRDVVSEFS05", 0.4999, 0.5999, 30000),
)

DEFAULT_SETTINGS = Settings(
    gold_rate_24k=15000,
    purity_percentages={"24": 100, "22": 92, "18": 76, "14": 60},
    making_charge_flat=3600,
    making_charge_per_gram=1800,
    gst_rate=0.03,
    stone_types=(
        StoneType(
            stone_id="LGD-RD-VVS-EF",
            name="Lab grown round VVS/EF",
            category="Diamond",
            clarity="VVS",
            color="EF",
            slabs=DEFAULT_SLABS,
        ),
    ),
)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_connection(db_path: Path | None = None) -> sqlite3.Connection:
    target = db_path or get_config().db_path
    target.parent.mkdir(parents=True, exist_ok=True)
    # Streamlit may serve reruns from a different thread
    conn = sqlite3.connect(target, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    cursor = conn.cursor()

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS app_state (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS estimates (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            product_name TEXT NOT NULL,
            product_image_url TEXT,
            purity TEXT NOT NULL,
            net_gold_weight REAL NOT NULL,
            stones_json TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """
    )

    cursor.execute(
        """
        INSERT OR IGNORE INTO app_state (key, value, updated_at)
        VALUES (?, ?, ?)
        """,
        (SETTINGS_KEY, json.dumps(DEFAULT_SETTINGS.to_dict()), utc_now_iso()),
    )

    conn.commit()


def _get_state(conn: sqlite3.Connection, key: str) -> str | None:
    row = conn.execute("SELECT value FROM app_state WHERE key = ?", (key,)).fetchone()
    return None if row is None else str(row["value"])


def _set_state(conn: sqlite3.Connection, key: str, value: str, commit: bool = True) -> None:
    conn.execute(
        """
        INSERT INTO app_state (key, value, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """,
        (key, value, utc_now_iso()),
    )
    if commit:
        conn.commit()


def load_settings(conn: sqlite3.Connection) -> Settings:
    """
    Returns the stored settings.

    A missing or malformed blob never blocks startup: it is logged and the
    built-in defaults are returned instead.
    """
    raw = _get_state(conn, SETTINGS_KEY)
    if raw is None:
        return DEFAULT_SETTINGS
    try:
        return Settings.from_dict(json.loads(raw))
    except (json.JSONDecodeError, SettingsShapeError) as exc:
        logger.warning("Stored settings are invalid, using defaults: %s", exc)
        return DEFAULT_SETTINGS


def save_settings(conn: sqlite3.Connection, settings: Settings) -> None:
    _set_state(conn, SETTINGS_KEY, json.dumps(settings.to_dict()))


def get_last_synced_at(conn: sqlite3.Connection) -> str | None:
    return _get_state(conn, LAST_SYNCED_KEY)


def save_synced_settings(conn: sqlite3.Connection, settings: Settings, synced_at: str) -> None:
    """Stores sync output and its timestamp in one transaction."""
    with conn:
        _set_state(conn, SETTINGS_KEY, json.dumps(settings.to_dict()), commit=False)
        _set_state(conn, LAST_SYNCED_KEY, synced_at, commit=False)


def _stones_from_json(payload: str | None) -> tuple[EstimateStone, ...]:
    try:
        parsed = json.loads(payload or "[]")
    except json.JSONDecodeError:
        return ()
    if not isinstance(parsed, list):
        return ()

    stones = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        try:
            stones.append(
                EstimateStone(
                    stone_type_id=str(item.get("stoneTypeId", "")),
                    name=str(item.get("name", "")),
                    weight=float(item.get("weight", 0) or 0),
                    quantity=int(item.get("quantity", 1) or 1),
                )
            )
        except (TypeError, ValueError):
            logger.debug("Skipping malformed stored stone: %s", item)
    return tuple(stones)


def _record_from_row(row: sqlite3.Row) -> EstimateRecord:
    return EstimateRecord(
        id=int(row["id"]),
        created_at=row["created_at"],
        product_name=row["product_name"],
        product_image_url=row["product_image_url"],
        purity=row["purity"],
        net_gold_weight=float(row["net_gold_weight"]),
        stones=_stones_from_json(row["stones_json"]),
    )


def validate_product_name(product_name: str) -> str:
    cleaned = product_name.strip()
    if not cleaned:
        raise ValueError("Product name is required to save.")
    return cleaned


def save_estimate(conn: sqlite3.Connection, record: EstimateRecord) -> int:
    product_name = validate_product_name(record.product_name)

    cursor = conn.cursor()
    cursor.execute(
        """
        INSERT INTO estimates
        (product_name, product_image_url, purity, net_gold_weight, stones_json, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            product_name,
            record.product_image_url,
            record.purity,
            record.net_gold_weight,
            json.dumps([stone.to_dict() for stone in record.stones]),
            record.created_at or utc_now_iso(),
        ),
    )
    conn.commit()
    estimate_id = int(cursor.lastrowid)
    logger.info("Saved estimate #%d (%s)", estimate_id, product_name)
    return estimate_id


def get_estimate(conn: sqlite3.Connection, estimate_id: int) -> EstimateRecord | None:
    row = conn.execute("SELECT * FROM estimates WHERE id = ?", (estimate_id,)).fetchone()
    return None if row is None else _record_from_row(row)


def list_estimates(
    conn: sqlite3.Connection,
    filters: EstimateFilters | None = None,
    limit: int = 1000,
) -> list[EstimateRecord]:
    """
    Returns stored estimates, newest first, after the filters that do not
    depend on price. Price ranges are applied once totals are computed.
    """
    filters = filters or EstimateFilters()
    clauses: list[str] = []
    params: list[Any] = []

    search = filters.search.strip()
    if search:
        clauses.append("LOWER(product_name) LIKE ? ESCAPE '\\'")
        params.append(f"%{_escape_like(search.lower())}%")
    if filters.purities:
        placeholders = ",".join("?" for _ in filters.purities)
        clauses.append(f"purity IN ({placeholders})")
        params.extend(filters.purities)
    if filters.gold_weight_min is not None:
        clauses.append("net_gold_weight >= ?")
        params.append(filters.gold_weight_min)
    if filters.gold_weight_max is not None:
        clauses.append("net_gold_weight <= ?")
        params.append(filters.gold_weight_max)

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    query = f"SELECT * FROM estimates {where} ORDER BY created_at DESC, id DESC"

    # stones are stored as JSON, so membership is checked after decoding and
    # the limit applies to the matching records
    if filters.stone_type_ids:
        wanted = set(filters.stone_type_ids)
        records = [
            record
            for record in (_record_from_row(row) for row in conn.execute(query, params))
            if any(stone.stone_type_id in wanted for stone in record.stones)
        ]
        return records[:limit]

    rows = conn.execute(f"{query} LIMIT ?", [*params, limit]).fetchall()
    return [_record_from_row(row) for row in rows]


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def delete_estimate(conn: sqlite3.Connection, estimate_id: int) -> bool:
    cursor = conn.execute("DELETE FROM estimates WHERE id = ?", (estimate_id,))
    conn.commit()
    deleted = cursor.rowcount > 0
    if deleted:
        logger.info("Deleted estimate #%d", estimate_id)
    return deleted
