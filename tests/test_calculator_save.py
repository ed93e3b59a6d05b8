import pytest

from diamond_calc.db import get_estimate, list_estimates
from diamond_calc.images import LocalImageStore
from diamond_calc.models import PricingInput, StoneEntry
from diamond_calc.pricing import compute_breakdown
from diamond_calc.ui.calculator import save_calculated_estimate


class FakeUpload:
    name = "ring.png"

    def getvalue(self):
        return b"\x89PNG"


@pytest.fixture
def breakdown(settings):
    return compute_breakdown(
        settings,
        PricingInput(net_gold_weight=5, purity="18", stones=(StoneEntry("RD-VVS", 0.5, 1), StoneEntry("gone", 0.1, 1))),
    )


@pytest.mark.parametrize("name", ["", "   "])
def test_blank_name_uploads_nothing(conn, tmp_path, breakdown, name):
    store = LocalImageStore(tmp_path / "images")
    with pytest.raises(ValueError, match="Product name is required"):
        save_calculated_estimate(conn, store, name, FakeUpload(), breakdown)
    assert not (tmp_path / "images").exists()
    assert list_estimates(conn) == []


def test_saves_inputs_and_image(conn, tmp_path, breakdown):
    store = LocalImageStore(tmp_path / "images")
    estimate_id = save_calculated_estimate(conn, store, " Solitaire ", FakeUpload(), breakdown)

    stored = get_estimate(conn, estimate_id)
    assert stored.product_name == "Solitaire"
    assert stored.purity == "18"
    assert stored.net_gold_weight == 5
    assert [(stone.stone_type_id, stone.name) for stone in stored.stones] == [
        ("RD-VVS", "Round VVS/EF"),
        ("gone", ""),
    ]
    assert stored.product_image_url.endswith(".png")
    assert len(list((tmp_path / "images").iterdir())) == 1
