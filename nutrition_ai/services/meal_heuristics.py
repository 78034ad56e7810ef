import re
import unicodedata

# Words that on their own describe the scene rather than something edible.
NON_FOOD_WORDS = frozenset(
    {
        "plate", "plates", "plato", "platos", "dish", "tray", "bandeja",
        "table", "tables", "mesa", "mesas", "mantel", "tablecloth",
        "napkin", "napkins", "servilleta", "servilletas",
        "fork", "forks", "tenedor", "tenedores", "knife", "knives", "cuchillo", "cuchillos",
        "spoon", "spoons", "cuchara", "cucharas", "utensil", "utensils", "utensilio", "utensilios",
        "cutlery", "cubiertos", "glass", "vaso", "container", "envase", "recipiente",
        "packaging", "empaque", "wrapper", "envoltorio", "box", "caja",
        "background", "fondo", "object", "objeto", "item", "none", "ninguno", "ninguna",
        "nothing", "nada", "n/a", "na", "null", "food", "comida", "alimento",
    }
)

# Any of these anywhere in the name means the model could not identify the item.
UNKNOWN_MARKERS = frozenset({"unknown", "desconocido", "desconocida", "unidentified", "unrecognized"})

FILLER_WORDS = frozenset(
    {
        "a", "an", "the", "of", "on", "with", "and", "or", "empty", "no", "some",
        "el", "la", "los", "las", "un", "una", "de", "del", "en", "con", "sin", "y", "o",
        "vacio", "vacia",
    }
)

_TOKEN_RE = re.compile(r"[\w/]+")


def _normalize(name: str) -> str:
    decomposed = unicodedata.normalize("NFKD", name.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def is_clearly_non_food_name(name: str) -> bool:
    """Flag names like "plate", "unknown item" or "mesa vacía"; "plato de arroz" passes."""
    tokens = _TOKEN_RE.findall(_normalize(name))
    if not tokens:
        return False

    if any(t in UNKNOWN_MARKERS for t in tokens):
        return True

    meaningful = [t for t in tokens if t not in FILLER_WORDS]
    if not meaningful:
        return True

    return all(t in NON_FOOD_WORDS for t in meaningful)
