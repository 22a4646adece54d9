from datetime import timedelta

DEFAULT_BACKOFF_MINUTES = (0, 1, 2, 5, 10, 20, 40, 80)


def validate_backoff_table(table):
    """Return the table as a tuple, rejecting empty or descending tables."""
    table = tuple(int(minutes) for minutes in table)
    if not table:
        raise ValueError("backoff table must not be empty")
    if any(minutes < 0 for minutes in table):
        raise ValueError("backoff table must not contain negative durations")
    if any(later < earlier for earlier, later in zip(table, table[1:])):
        raise ValueError(f"backoff table must be ascending: {table}")
    return table


def backoff_for(attempt: int, table=DEFAULT_BACKOFF_MINUTES) -> timedelta:
    """Delay before the next try, indexed by the attempt count (clamped to the table)."""
    index = min(max(attempt, 0), len(table) - 1)
    return timedelta(minutes=table[index])
