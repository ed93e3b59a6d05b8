import sqlite3
from dataclasses import replace

import pandas as pd
import streamlit as st

from diamond_calc.db import get_last_synced_at, load_settings, save_settings
from diamond_calc.models import Settings
from diamond_calc.providers.google_sheet import sync_from_sheet
from diamond_calc.sheet_parser import attach_slabs, parse_slabs, parse_stones
from diamond_calc.ui.formatting import format_inr, format_timestamp

STONE_COLUMNS = ["stoneId", "name", "type", "clarity", "color"]
SLAB_COLUMNS = ["stoneId", "code", "fromWeight", "toWeight", "pricePerCarat", "discount"]


def catalog_frames(settings: Settings) -> tuple[pd.DataFrame, pd.DataFrame]:
    stones_df = pd.DataFrame(
        [
            {
                "stoneId": stone_type.stone_id,
                "name": stone_type.name,
                "type": stone_type.category,
                "clarity": stone_type.clarity,
                "color": stone_type.color,
            }
            for stone_type in settings.stone_types
        ],
        columns=STONE_COLUMNS,
    )
    slabs_df = pd.DataFrame(
        [
            {"stoneId": stone_type.stone_id, **slab.to_dict()}
            for stone_type in settings.stone_types
            for slab in stone_type.slabs
        ],
        columns=SLAB_COLUMNS,
    )
    return stones_df, slabs_df


def _frame_rows(df: pd.DataFrame) -> list[dict[str, str]]:
    # Same shape the sheet parser sees: lower-cased headers, text cells
    cleaned = df.fillna("").astype(str)
    cleaned.columns = [str(column).strip().lower() for column in cleaned.columns]
    return cleaned.to_dict("records")


def apply_catalog_edits(settings: Settings, stones_df: pd.DataFrame, slabs_df: pd.DataFrame) -> Settings:
    # Edits replace the catalog outright, so an empty table removes every stone type
    stone_types = attach_slabs(parse_stones(_frame_rows(stones_df)), parse_slabs(_frame_rows(slabs_df)))
    return replace(settings, stone_types=stone_types)


def _render_sync(conn: sqlite3.Connection) -> None:
    st.markdown("### Sync from price sheet")
    st.caption(f"Last synced: {format_timestamp(get_last_synced_at(conn))}")
    if st.button("Sync now", type="primary"):
        with st.spinner("Fetching rates, stones and slabs..."):
            result = sync_from_sheet(conn)
        if result.success:
            st.success(f"Synced {result.stone_type_count} stone types at {format_timestamp(result.synced_at)}.")
        else:
            st.error(f"Sync failed, previous settings kept. {result.error}")


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Settings")

    _render_sync(conn)
    current = load_settings(conn)

    st.divider()
    with st.form("rates_form"):
        col1, col2 = st.columns(2)
        with col1:
            gold_rate_24k = st.number_input(
                "24K gold rate (₹/g)",
                value=float(current.gold_rate_24k),
                step=100.0,
            )
            making_charge_flat = st.number_input(
                "Making charge, flat (under 2 g)",
                value=float(current.making_charge_flat),
                step=100.0,
            )
            making_charge_per_gram = st.number_input(
                "Making charge per gram (2 g and over)",
                value=float(current.making_charge_per_gram),
                step=50.0,
            )
            gst_pct = st.number_input(
                "GST (%)",
                value=float(current.gst_rate * 100),
                step=0.5,
            )
        with col2:
            percentages: dict[str, float] = {}
            for purity in current.purities:
                percentages[purity] = st.number_input(
                    f"{purity}K (% of 24K)",
                    value=float(current.purity_percentages[purity]),
                    step=0.5,
                    key=f"purity_pct_{purity}",
                )

        submitted = st.form_submit_button("Save rates", type="primary")

    if submitted:
        save_settings(
            conn,
            replace(
                current,
                gold_rate_24k=gold_rate_24k,
                making_charge_flat=making_charge_flat,
                making_charge_per_gram=making_charge_per_gram,
                gst_rate=gst_pct / 100,
                purity_percentages=percentages,
            ),
        )
        st.success("Rates saved.")
        st.rerun()

    st.markdown("### Gold rates")
    st.dataframe(
        pd.DataFrame(
            [
                {
                    "Purity": gold_rate.label,
                    "% of 24K": current.purity_percentages[gold_rate.purity],
                    "Rate (₹/g)": format_inr(gold_rate.rate),
                }
                for gold_rate in current.gold_rates
            ]
        ),
        hide_index=True,
        width="stretch",
    )

    st.markdown("### Stone catalog")
    st.caption("Slab order matters: the first slab covering the per-piece weight is used.")
    stones_df, slabs_df = catalog_frames(current)
    edited_stones = st.data_editor(stones_df, num_rows="dynamic", hide_index=True, key="stones_editor")
    edited_slabs = st.data_editor(slabs_df, num_rows="dynamic", hide_index=True, key="slabs_editor")

    if st.button("Save catalog"):
        updated = apply_catalog_edits(current, edited_stones, edited_slabs)
        save_settings(conn, updated)
        st.success(f"Catalog saved with {len(updated.stone_types)} stone types.")
        st.rerun()
