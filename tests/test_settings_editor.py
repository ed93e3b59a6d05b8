from streamlit.testing.v1 import AppTest

from diamond_calc.ui.settings import apply_catalog_edits, catalog_frames


def _settings_page_with_out_of_range_rates():
    import sqlite3
    from dataclasses import replace

    from diamond_calc.db import DEFAULT_SETTINGS, init_db, save_settings
    from diamond_calc.ui import settings as settings_page

    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    init_db(conn)
    save_settings(
        conn,
        replace(DEFAULT_SETTINGS, purity_percentages={"24": 100, "26": 108.3, "9": -5}, gst_rate=1.5),
    )
    settings_page.render(conn)


def test_frames_round_trip_unchanged(settings):
    stones_df, slabs_df = catalog_frames(settings)
    assert list(stones_df["stoneId"]) == ["RD-VVS"]
    assert list(slabs_df["code"]) == ["RD-S1", "RD-S2", "RD-S3"]
    assert apply_catalog_edits(settings, stones_df, slabs_df) == settings


def test_edited_slab_price_is_applied(settings):
    stones_df, slabs_df = catalog_frames(settings)
    slabs_df.loc[slabs_df["code"] == "RD-S3", "pricePerCarat"] = 32000
    updated = apply_catalog_edits(settings, stones_df, slabs_df)
    assert updated.stone_types[0].slabs[2].price_per_carat == 32000
    assert updated.gold_rate_24k == settings.gold_rate_24k


def test_removed_stone_drops_its_slabs(settings):
    stones_df, slabs_df = catalog_frames(settings)
    stones_df.loc[len(stones_df)] = ["EM-AA", "Emerald AA", "Gemstone", "", "Green"]
    stones_df = stones_df[stones_df["stoneId"] != "RD-VVS"]
    updated = apply_catalog_edits(settings, stones_df, slabs_df)
    assert [stone.stone_id for stone in updated.stone_types] == ["EM-AA"]
    assert updated.stone_types[0].category == "Gemstone"
    assert updated.stone_types[0].slabs == ()


def test_deleting_every_row_empties_the_catalog(settings):
    stones_df, slabs_df = catalog_frames(settings)
    updated = apply_catalog_edits(settings, stones_df.iloc[0:0], slabs_df.iloc[0:0])
    assert updated.stone_types == ()
    assert updated.gold_rates == settings.gold_rates


def test_settings_page_renders_synced_rates_outside_form_range():
    app = AppTest.from_function(_settings_page_with_out_of_range_rates)
    app.run(timeout=30)
    assert not app.exception
    labels = [number_input.label for number_input in app.number_input]
    assert "26K (% of 24K)" in labels
    assert "9K (% of 24K)" in labels
