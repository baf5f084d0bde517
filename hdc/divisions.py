"""Divisions and season calendar for the championship."""

DIVISION_NAMES: dict[int, str] = {
    1: "Division One",
    2: "Division Two",
    3: "Division Three",
    4: "Division Four",
}

SEASON_WEEKS = 5


def get_division_name(division_id: int) -> str | None:
    """Return the display name for a division id.

    Returns None when the division is not part of the season.
    """

    return DIVISION_NAMES.get(division_id)


def is_valid_week(week: int) -> bool:
    return 1 <= week <= SEASON_WEEKS
