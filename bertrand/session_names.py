"""
Readable session names: a timestamp prefix plus a random word.
"""

from datetime import datetime
import random
from typing import Optional


NAME_CATEGORIES = {
    "animals": [
        "panda", "tiger", "lion", "elephant", "giraffe", "dolphin", "penguin", "koala",
        "kangaroo", "zebra", "cheetah", "gorilla", "wolf", "bear", "fox", "deer",
        "owl", "eagle", "falcon", "whale", "octopus", "peacock", "jaguar", "otter",
        "lynx", "bison", "moose", "beaver", "badger", "lemur", "meerkat", "alpaca",
    ],
    "flowers": [
        "rose", "lily", "tulip", "daisy", "orchid", "sunflower", "dahlia", "iris",
        "peony", "lotus", "jasmine", "violet", "poppy", "magnolia", "daffodil", "marigold",
        "hibiscus", "lavender", "azalea", "bluebell", "camellia", "gardenia", "zinnia", "aster",
    ],
    "cars": [
        "mustang", "corvette", "ferrari", "porsche", "tesla", "bentley", "maserati", "mclaren",
        "bugatti", "lexus", "volvo", "alpine", "lotus", "pagani", "rivian", "lucid",
        "bronco", "wrangler", "viper", "camaro", "supra", "skyline", "miata", "phantom",
    ],
    "cities": [
        "paris", "tokyo", "venice", "london", "sydney", "rome", "dubai", "singapore",
        "amsterdam", "barcelona", "prague", "vienna", "athens", "cairo", "madrid", "berlin",
        "seoul", "kyoto", "lisbon", "dublin", "oslo", "geneva", "zurich", "helsinki",
    ],
}

CATEGORY_ORDER = ["animals", "flowers", "cars", "cities"]


def generate_session_name(category: str = "animals", now: Optional[datetime] = None,
                          rng: Optional[random.Random] = None) -> str:
    """Name like '1019262215-otter': MMDDYYHHMM then a word from the category."""
    if category not in NAME_CATEGORIES:
        raise ValueError(f"Unknown name category: {category}")
    now = now or datetime.now()
    prefix = now.strftime("%m%d%y%H%M")
    word = (rng or random).choice(NAME_CATEGORIES[category])
    return f"{prefix}-{word}"


def next_category(current: str) -> str:
    """Cycle through the categories in a fixed order."""
    index = CATEGORY_ORDER.index(current)
    return CATEGORY_ORDER[(index + 1) % len(CATEGORY_ORDER)]
