from pathlib import Path

import streamlit as st
from dotenv import load_dotenv

# Load environment variables from local .env file before reading config.
load_dotenv(dotenv_path=Path(__file__).parent / ".env")

from diamond_calc.config import get_config  # noqa: E402
from diamond_calc.db import get_connection, init_db  # noqa: E402
from diamond_calc.logger import setup_logging  # noqa: E402
from diamond_calc.ui import calculator, history, settings  # noqa: E402

st.set_page_config(page_title="Diamond Jewelry Calculator", page_icon="💎", layout="wide")


@st.cache_resource
def _get_app_connection():
    conn = get_connection()
    init_db(conn)
    return conn


def main() -> None:
    config = get_config()
    setup_logging(config.log_level)

    st.title("💎 Diamond Jewelry Calculator")
    st.caption("Gold, making charges and stone slabs priced from the live rate sheet")

    conn = _get_app_connection()

    page = st.sidebar.radio("Navigate", ["Calculator", "Saved Estimates", "Settings"])

    if page == "Calculator":
        calculator.render(conn)
    elif page == "Saved Estimates":
        history.render(conn)
    elif page == "Settings":
        settings.render(conn)


if __name__ == "__main__":
    main()
