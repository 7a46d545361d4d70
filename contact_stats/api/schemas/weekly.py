from pydantic import BaseModel


class WeekChart(BaseModel):
    """Line chart payload for one week of daily contact counts."""

    title: str
    week: int
    month_label: str
    is_loading: bool
    series_name: str
    categories: list[str]
    dates: list[str]
    data: list[int]
    total: int
    can_go_previous: bool
    can_go_next: bool
