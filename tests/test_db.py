import json

import pytest

from diamond_calc.db import (
    DEFAULT_SETTINGS,
    delete_estimate,
    get_estimate,
    get_last_synced_at,
    init_db,
    list_estimates,
    load_settings,
    save_estimate,
    save_settings,
    save_synced_settings,
)
from diamond_calc.models import EstimateFilters, EstimateRecord, EstimateStone


def _record(name, purity="22", weight=3.0, stones=(), created_at=""):
    return EstimateRecord(
        product_name=name,
        purity=purity,
        net_gold_weight=weight,
        stones=tuple(stones),
        created_at=created_at,
    )


class TestSettingsPersistence:
    def test_fresh_database_has_defaults(self, conn):
        assert load_settings(conn) == DEFAULT_SETTINGS
        assert get_last_synced_at(conn) is None

    def test_init_db_does_not_overwrite_saved_settings(self, conn, settings):
        save_settings(conn, settings)
        init_db(conn)
        assert load_settings(conn) == settings

    def test_round_trip_keeps_slab_discount(self, conn, settings):
        save_settings(conn, settings)
        loaded = load_settings(conn)
        assert loaded == settings
        assert loaded.stone_types[0].slabs[0].discount == 0

    @pytest.mark.parametrize(
        "blob",
        [
            "not json",
            json.dumps([1, 2, 3]),
            json.dumps({"goldRate24k": "15000"}),
            json.dumps({**DEFAULT_SETTINGS.to_dict(), "purityPercentages": {}}),
            json.dumps({**DEFAULT_SETTINGS.to_dict(), "stoneTypes": [{"stoneId": "x", "slabs": "nope"}]}),
        ],
    )
    def test_invalid_blob_falls_back_to_defaults(self, conn, blob):
        conn.execute("UPDATE app_state SET value = ? WHERE key = 'settings'", (blob,))
        conn.commit()
        assert load_settings(conn) == DEFAULT_SETTINGS

    def test_save_synced_settings_stores_timestamp(self, conn, settings):
        save_synced_settings(conn, settings, "2026-10-18T09:00:00+00:00")
        assert load_settings(conn) == settings
        assert get_last_synced_at(conn) == "2026-10-18T09:00:00+00:00"


class TestEstimateStore:
    def test_save_and_get(self, conn):
        stones = [EstimateStone("RD-VVS", "Round VVS/EF", 0.25, 5)]
        estimate_id = save_estimate(conn, _record("Halo ring", stones=stones))
        stored = get_estimate(conn, estimate_id)
        assert stored.id == estimate_id
        assert stored.product_name == "Halo ring"
        assert stored.stones == tuple(stones)
        assert stored.created_at

    def test_name_is_required(self, conn):
        with pytest.raises(ValueError):
            save_estimate(conn, _record("   "))

    def test_stored_row_has_no_price_columns(self, conn):
        columns = {row["name"] for row in conn.execute("PRAGMA table_info(estimates)").fetchall()}
        assert not {column for column in columns if "price" in column or "total" in column}

    def test_delete(self, conn):
        estimate_id = save_estimate(conn, _record("Studs"))
        assert delete_estimate(conn, estimate_id) is True
        assert get_estimate(conn, estimate_id) is None
        assert delete_estimate(conn, estimate_id) is False

    def test_list_is_newest_first(self, conn):
        save_estimate(conn, _record("old", created_at="2026-01-01T00:00:00+00:00"))
        save_estimate(conn, _record("new", created_at="2026-06-01T00:00:00+00:00"))
        assert [record.product_name for record in list_estimates(conn)] == ["new", "old"]

    def test_filters(self, conn):
        save_estimate(conn, _record("Solitaire Ring", purity="18", weight=2.5, stones=[EstimateStone("RD", "Round", 0.5, 1)]))
        save_estimate(conn, _record("Emerald pendant", purity="22", weight=6.0, stones=[EstimateStone("EM", "Emerald", 1.0, 1)]))
        save_estimate(conn, _record("Plain band", purity="22", weight=4.0))

        def names(filters):
            return sorted(record.product_name for record in list_estimates(conn, filters))

        assert names(EstimateFilters(search="ring")) == ["Solitaire Ring"]
        assert names(EstimateFilters(purities=("22",))) == ["Emerald pendant", "Plain band"]
        assert names(EstimateFilters(gold_weight_min=3.0, gold_weight_max=6.0)) == ["Emerald pendant", "Plain band"]
        assert names(EstimateFilters(stone_type_ids=("EM", "RD"))) == ["Emerald pendant", "Solitaire Ring"]
        assert names(EstimateFilters(purities=("22",), stone_type_ids=("EM",))) == ["Emerald pendant"]

    def test_stone_filter_looks_past_the_newest_page(self, conn):
        save_estimate(
            conn,
            _record("emerald", stones=[EstimateStone("EM", "Emerald", 1.0, 1)], created_at="2026-01-01T00:00:00+00:00"),
        )
        for day in range(2, 5):
            save_estimate(conn, _record(f"plain {day}", created_at=f"2026-01-0{day}T00:00:00+00:00"))

        found = list_estimates(conn, EstimateFilters(stone_type_ids=("EM",)), limit=3)
        assert [record.product_name for record in found] == ["emerald"]

    def test_stone_filter_still_applies_limit(self, conn):
        for day in range(1, 5):
            save_estimate(
                conn,
                _record(f"ring {day}", stones=[EstimateStone("RD", "Round", 0.2, 1)], created_at=f"2026-01-0{day}T00:00:00+00:00"),
            )
        found = list_estimates(conn, EstimateFilters(stone_type_ids=("RD",)), limit=2)
        assert [record.product_name for record in found] == ["ring 4", "ring 3"]

    @pytest.mark.parametrize(
        "search,expected",
        [
            ("100%", ["100% gold"]),
            ("a_b", ["a_b band"]),
            ("back\\slash", ["back\\slash"]),
        ],
    )
    def test_search_treats_wildcards_literally(self, conn, search, expected):
        for name in ["100% gold", "1000 gold", "a_b band", "axb band", "back\\slash"]:
            save_estimate(conn, _record(name))
        found = list_estimates(conn, EstimateFilters(search=search))
        assert [record.product_name for record in found] == expected
