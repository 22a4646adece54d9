"""Total score and category icon derived from the five scored dimensions."""
from typing import Optional

from tribu.outbox.groups import Category


def parse_score(value) -> Optional[float]:
    """'' / None -> None; accepts decimal commas ('0,5')."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", ".")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def compute_total(conf, emo, ene, est, rep) -> Optional[float]:
    """(emo + ene + est + rep) * (1 + conf); unscored dimensions count as 0, no conf means no total."""
    conf = parse_score(conf)
    if conf is None:
        return None
    subtotal = sum(parse_score(v) or 0.0 for v in (emo, ene, est, rep))
    return subtotal * (1 + conf)


def compute_category(conf, total) -> Optional[Category]:
    conf = parse_score(conf)
    if conf is None:
        return None

    if conf == -2:
        return Category.TOOLS
    if conf == 2:
        return Category.HEART
    if conf == 1.5:
        return Category.UNDER_CONSTRUCTION
    if conf == 1:
        return Category.GREEN
    if conf == 0.5:
        return Category.ROADWORK
    if conf == -1:
        return Category.RED
    if (total or 0) > 0:
        return Category.YELLOW
    return Category.WHITE


def compute_icon(conf, total) -> str:
    category = compute_category(conf, total)
    return category.icon if category else ""
