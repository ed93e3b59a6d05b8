import sqlite3

import pytest

from diamond_calc.db import init_db
from diamond_calc.models import Settings, StoneSlab, StoneType


@pytest.fixture
def conn() -> sqlite3.Connection:
    connection = sqlite3.connect(":memory:")
    connection.row_factory = sqlite3.Row
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture
def round_diamond() -> StoneType:
    return StoneType(
        stone_id="RD-VVS",
        name="Round VVS/EF",
        category="Diamond",
        clarity="VVS",
        color="EF",
        slabs=(
            StoneSlab("RD-S1", 0.001, 0.1, 20000),
            StoneSlab("RD-S2", 0.1, 0.4999, 25000),
            StoneSlab("RD-S3", 0.4999, 0.5999, 30000),
        ),
    )


@pytest.fixture
def settings(round_diamond: StoneType) -> Settings:
    return Settings(
        gold_rate_24k=15000,
        purity_percentages={"24": 100, "22": 92, "18": 76, "14": 60},
        making_charge_flat=3600,
        making_charge_per_gram=1800,
        gst_rate=0.03,
        stone_types=(round_diamond,),
    )
