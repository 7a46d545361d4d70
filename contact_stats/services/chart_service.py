from collections.abc import Sequence


def format_date_label(day: str) -> str:
    """Turn a `YYYY-MM-DD` string into an `MM/DD` axis label."""

    _, month, day_of_month = day.split("-")
    return f"{month}/{day_of_month}"


def build_chart_payload(
    week: int,
    display_series: Sequence[tuple[str, int]],
    month_label: str,
    is_loading: bool,
    display_year: int,
    max_week: int,
) -> dict[str, object]:
    """Build the line chart payload for one week of daily counts."""

    dates = [day for day, _ in display_series]
    data = [count for _, count in display_series]

    return {
        "title": f"{month_label} {display_year}".strip(),
        "week": week,
        "month_label": month_label,
        "is_loading": is_loading,
        "series_name": f"Week {week} Data",
        "categories": [format_date_label(day) for day in dates],
        "dates": dates,
        "data": data,
        "total": sum(data),
        "can_go_previous": week != 1,
        "can_go_next": week <= max_week,
    }
