import sqlite3
from pathlib import Path

import pandas as pd
import streamlit as st

from diamond_calc.db import delete_estimate, list_estimates, load_settings
from diamond_calc.history import SORT_OPTIONS, active_filter_count, estimates_to_frame, price_estimates
from diamond_calc.models import EstimateFilters
from diamond_calc.ui.calculator import render_breakdown
from diamond_calc.ui.formatting import format_inr, format_timestamp


def _optional_number(label: str, key: str) -> float | None:
    raw = st.text_input(label, key=key).strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        st.warning(f"{label}: '{raw}' is not a number and was ignored.")
        return None


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Saved Estimates")
    st.caption("Prices are recalculated from the current settings every time this page loads.")

    settings = load_settings(conn)

    col1, col2 = st.columns([3, 1])
    with col1:
        search_text = st.text_input("Search product name")
    with col2:
        sort = st.selectbox("Sort", options=list(SORT_OPTIONS.keys()), format_func=SORT_OPTIONS.get)

    with st.expander("Filters"):
        f1, f2 = st.columns(2)
        with f1:
            purities = st.multiselect("Purity", options=settings.purities, format_func=lambda p: f"{p}K")
            gold_min = _optional_number("Gold weight min (g)", "history_gold_min")
            price_min = _optional_number("Price min (₹)", "history_price_min")
        with f2:
            stone_names = {stone_type.stone_id: stone_type.name for stone_type in settings.stone_types}
            stone_type_ids = st.multiselect(
                "Stone types",
                options=list(stone_names.keys()),
                format_func=lambda sid: stone_names.get(sid, sid),
            )
            gold_max = _optional_number("Gold weight max (g)", "history_gold_max")
            price_max = _optional_number("Price max (₹)", "history_price_max")

    filters = EstimateFilters(
        search=search_text,
        purities=tuple(purities),
        stone_type_ids=tuple(stone_type_ids),
        gold_weight_min=gold_min,
        gold_weight_max=gold_max,
        price_min=price_min,
        price_max=price_max,
    )

    records = list_estimates(conn, filters)
    priced = price_estimates(records, settings, filters, sort=sort)
    filter_count = active_filter_count(filters)

    if not priced:
        st.info("No estimates match your filters." if filter_count else "No estimates saved yet.")
        return

    st.caption(f"{len(priced)} shown" + (f" · {filter_count} filter(s) active" if filter_count else ""))

    export_df = estimates_to_frame(priced)
    st.download_button(
        "Export shown estimates CSV",
        data=export_df.to_csv(index=False).encode("utf-8"),
        file_name="estimates.csv",
        mime="text/csv",
    )
    display_df = export_df.copy()
    display_df["created_at"] = display_df["created_at"].map(format_timestamp)
    for column in ["gold_cost", "making_cost", "stone_cost", "gst", "total"]:
        display_df[column] = display_df[column].map(format_inr)
    st.dataframe(display_df, hide_index=True, width="stretch")

    st.markdown("### Estimate details")
    by_id = {int(item.record.id): item for item in priced}
    selected_id = st.selectbox(
        "Select estimate",
        options=list(by_id.keys()),
        format_func=lambda estimate_id: f"#{estimate_id} - {by_id[estimate_id].record.product_name}",
    )
    selected = by_id[selected_id]

    info_col, image_col = st.columns([3, 1])
    with info_col:
        st.write(
            {
                "product_name": selected.record.product_name,
                "created_at": format_timestamp(selected.record.created_at),
                "purity": f"{selected.record.purity}K",
                "net_gold_weight_g": selected.record.net_gold_weight,
            }
        )
        if selected.record.stones:
            st.dataframe(
                pd.DataFrame(
                    [
                        {
                            "stone": stone.name or stone.stone_type_id,
                            "stone_type_id": stone.stone_type_id,
                            "weight_ct": stone.weight,
                            "pieces": stone.quantity,
                        }
                        for stone in selected.record.stones
                    ]
                ),
                hide_index=True,
                width="stretch",
            )
    with image_col:
        image_url = selected.record.product_image_url
        if image_url and (image_url.startswith("http") or Path(image_url).exists()):
            st.image(image_url, caption=selected.record.product_name, width=180)

    render_breakdown(selected.breakdown)

    if st.button("Delete estimate", type="secondary"):
        if delete_estimate(conn, selected_id):
            st.success(f"Estimate #{selected_id} deleted.")
        else:
            st.error(f"Estimate #{selected_id} no longer exists.")
        st.rerun()
