import sqlite3

import pandas as pd
import streamlit as st

from diamond_calc.config import get_config
from diamond_calc.db import load_settings, save_estimate, validate_product_name
from diamond_calc.images import ALLOWED_IMAGE_TYPES, LocalImageStore, resolve_image_url
from diamond_calc.models import (
    EstimateRecord,
    EstimateStone,
    Found,
    PriceBreakdown,
    PricingInput,
    StoneEntry,
)
from diamond_calc.pricing import MAKING_CHARGE_THRESHOLD_GRAMS, compute_breakdown
from diamond_calc.ui.formatting import format_carats, format_grams, format_inr

ROWS_KEY = "calculator_stone_rows"


def _next_row_id() -> int:
    st.session_state["calculator_row_seq"] = st.session_state.get("calculator_row_seq", 0) + 1
    return int(st.session_state["calculator_row_seq"])


def render_breakdown(breakdown: PriceBreakdown) -> None:
    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Gold", format_inr(breakdown.gold_cost))
    m2.metric("Making", format_inr(breakdown.making_cost))
    m3.metric("Stones", format_inr(breakdown.total_stone_cost))
    m4.metric("Total", format_inr(breakdown.total))

    if breakdown.making_rule == "flat":
        making_detail = f"Flat fee (under {MAKING_CHARGE_THRESHOLD_GRAMS:g} g)"
    elif breakdown.making_rule == "per_gram":
        making_detail = (
            f"{format_grams(breakdown.net_gold_weight)} × {format_inr(breakdown.making_charge_per_gram)}"
        )
    else:
        making_detail = "No gold weight"

    rows = [
        {"Line": f"Gold rate ({breakdown.purity}K)", "Detail": "per gram", "Amount": format_inr(breakdown.gold_rate_value)},
        {
            "Line": "Gold cost",
            "Detail": f"{format_grams(breakdown.net_gold_weight)} × {format_inr(breakdown.gold_rate_value)}",
            "Amount": format_inr(breakdown.gold_cost),
        },
        {"Line": "Making charge", "Detail": making_detail, "Amount": format_inr(breakdown.making_cost)},
    ]
    for line in breakdown.stone_lines:
        stone_type = line.stone_type
        if stone_type is None:
            detail = f"Unknown stone type '{line.entry.stone_type_id}'"
        elif line.slab is None:
            detail = f"No slab for {format_carats(line.entry.weight)} / {line.entry.quantity} pcs"
        else:
            detail = (
                f"{line.slab.code}: {format_carats(line.entry.weight)} × {format_inr(line.price_per_carat)}/ct"
            )
        rows.append(
            {
                "Line": stone_type.name if stone_type is not None else "Stone",
                "Detail": detail,
                "Amount": format_inr(line.cost),
            }
        )
    rows.extend(
        [
            {"Line": "Sub total", "Detail": "", "Amount": format_inr(breakdown.sub_total)},
            {"Line": f"GST ({breakdown.gst_rate * 100:.1f}%)", "Detail": "", "Amount": format_inr(breakdown.gst)},
            {"Line": "Total", "Detail": "", "Amount": format_inr(breakdown.total)},
        ]
    )
    st.dataframe(pd.DataFrame(rows), hide_index=True, width="stretch")
    st.caption(f"Gross weight: {breakdown.gross_weight:,.3f} (net gold g + stone ct)")


def save_calculated_estimate(
    conn: sqlite3.Connection,
    store: LocalImageStore,
    product_name: str,
    uploaded_image,
    breakdown: PriceBreakdown,
) -> int:
    """Saves the raw inputs behind a breakdown. The image is uploaded only once the name is valid."""
    product_name = validate_product_name(product_name)
    stones = []
    for line in breakdown.stone_lines:
        lookup = line.lookup
        stones.append(
            EstimateStone(
                stone_type_id=line.entry.stone_type_id,
                name=lookup.stone_type.name if isinstance(lookup, Found) else "",
                weight=line.entry.weight,
                quantity=line.entry.quantity,
            )
        )
    return save_estimate(
        conn,
        EstimateRecord(
            product_name=product_name,
            product_image_url=resolve_image_url(store, uploaded_image, None),
            purity=breakdown.purity,
            net_gold_weight=breakdown.net_gold_weight,
            stones=tuple(stones),
        ),
    )


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Calculator")

    settings = load_settings(conn)
    gold_rates = settings.gold_rates
    if not gold_rates:
        st.error("No purities configured. Add purity percentages in Settings.")
        return

    stone_options = {stone_type.stone_id: stone_type for stone_type in settings.stone_types}
    if ROWS_KEY not in st.session_state:
        st.session_state[ROWS_KEY] = [_next_row_id()]

    col1, col2 = st.columns(2)
    with col1:
        purity_labels = [gold_rate.purity for gold_rate in gold_rates]
        default_purity = "22" if "22" in purity_labels else purity_labels[0]
        purity = st.radio(
            "Purity",
            options=purity_labels,
            index=purity_labels.index(default_purity),
            format_func=lambda value: f"{value}K · {format_inr(next(g.rate for g in gold_rates if g.purity == value))}/g",
            horizontal=True,
        )
    with col2:
        net_gold_weight = st.number_input("Net gold weight (g)", min_value=0.0, value=0.0, step=0.01, format="%.3f")

    st.markdown("### Stones")
    entries: list[StoneEntry] = []
    for row_id in list(st.session_state[ROWS_KEY]):
        c1, c2, c3, c4 = st.columns([3, 2, 1, 1])
        with c1:
            stone_type_id = st.selectbox(
                "Stone type",
                options=list(stone_options.keys()),
                format_func=lambda sid: f"{stone_options[sid].name} ({stone_options[sid].category})",
                key=f"stone_type_{row_id}",
            )
        with c2:
            weight = st.number_input(
                "Total weight (ct)",
                min_value=0.0,
                value=0.0,
                step=0.001,
                format="%.4f",
                key=f"stone_weight_{row_id}",
            )
        with c3:
            quantity = st.number_input("Pieces", min_value=1, value=1, step=1, key=f"stone_qty_{row_id}")
        with c4:
            st.write("")
            if st.button("Remove", key=f"remove_stone_{row_id}"):
                st.session_state[ROWS_KEY].remove(row_id)
                st.rerun()
        if stone_type_id:
            entries.append(StoneEntry(stone_type_id=stone_type_id, weight=float(weight), quantity=int(quantity)))

    if st.button("Add stone"):
        st.session_state[ROWS_KEY].append(_next_row_id())
        st.rerun()

    breakdown = compute_breakdown(
        settings,
        PricingInput(net_gold_weight=float(net_gold_weight), purity=purity, stones=tuple(entries)),
    )

    st.markdown("### Breakdown")
    render_breakdown(breakdown)

    st.divider()
    st.markdown("### Save estimate")
    with st.form("save_estimate_form"):
        product_name = st.text_input("Product name")
        product_image = st.file_uploader("Product image (optional)", type=ALLOWED_IMAGE_TYPES)
        save_submit = st.form_submit_button("Save estimate", type="primary")

    if save_submit:
        try:
            estimate_id = save_calculated_estimate(
                conn, LocalImageStore(get_config().image_dir), product_name, product_image, breakdown
            )
        except ValueError as exc:
            st.error(str(exc))
        else:
            st.success(f"Estimate #{estimate_id} saved. Its price will follow the current rates.")
