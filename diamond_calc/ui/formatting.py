from datetime import datetime, timezone


def format_inr(value: float) -> str:
    return f"₹{value:,.0f}"


def format_grams(value: float) -> str:
    return f"{value:,.3f} g"


def format_carats(value: float) -> str:
    return f"{value:,.4f} ct"


def format_timestamp(timestamp_iso: str | None) -> str:
    if not timestamp_iso:
        return "Never"
    try:
        parsed = datetime.fromisoformat(timestamp_iso)
    except ValueError:
        return timestamp_iso
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
