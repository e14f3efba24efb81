# tavern_slots/domain/machine/entities/symbols.py
from enum import IntEnum
from typing import Dict, List, Any


class TavernSymbol(IntEnum):
    """Symbol identifiers shown on the reels."""
    KNIGHT = 0
    WIZARD = 1
    ARCHER = 2
    WARRIOR = 3
    BARMAID = 4
    KING = 5


DEFAULT_SYMBOLS: List[Dict[str, Any]] = [
    {"id": int(symbol), "name": symbol.name.capitalize()} for symbol in TavernSymbol
]


def load_symbol_ids(symbols_config: List[Dict[str, Any]]) -> List[int]:
    """
    Extract the symbol alphabet from configuration.

    Args:
        symbols_config: List of {"id": int, "name": str} entries

    Returns:
        Sorted list of unique symbol ids

    Raises:
        ValueError: If the alphabet is empty
    """
    ids = sorted({int(entry["id"]) for entry in symbols_config if "id" in entry})
    if not ids:
        raise ValueError("Symbol alphabet must contain at least one symbol")
    return ids


def symbol_name(symbol_id: int) -> str:
    try:
        return TavernSymbol(symbol_id).name.capitalize()
    except ValueError:
        return f"Symbol{symbol_id}"
