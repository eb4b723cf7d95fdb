"""
Card model and catalog.

The base pool is every element x ability combination (140 cards). Custom
cards can be generated and registered on top; generated replacement cards
refill hands when the talon runs dry.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import itertools
import logging
import random
import time

from runenkrieg.constants import (ABILITIES, ABILITY_INDEX, ABILITY_MECHANICS, ARTEFAKT,
                                  CARD_TYPE_DEFAULTS, CARD_TYPES, ELEMENTS,
                                  MECHANIC_WEIGHTS)

logger = logging.getLogger(__name__)

MAX_GENERATED_CARDS = 200
CUSTOM_CARDS_KEY = "runenkrieg-custom-cards"

_replacement_ids = itertools.count(1)


@dataclass
class Card:
    """A playable card; `id` is unique within a deck instance"""
    element: str
    ability: str
    id: str
    card_type: str = ARTEFAKT
    mechanics: List[str] = field(default_factory=list)
    lifespan: Optional[int] = None
    charges: Optional[int] = None
    origin: str = "core"

    @property
    def ability_index(self) -> int:
        return ABILITY_INDEX.get(self.ability, 0)

    @property
    def label(self) -> str:
        return f"{self.element} {self.ability}"

    def has(self, mechanic: str) -> bool:
        return mechanic in self.mechanics

    def copy(self, **changes) -> 'Card':
        changes.setdefault('mechanics', list(self.mechanics))
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'element': self.element,
            'ability': self.ability,
            'id': self.id,
            'cardType': self.card_type,
            'mechanics': list(self.mechanics),
            'lifespan': self.lifespan,
            'charges': self.charges,
            'origin': self.origin,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Card':
        return cls(
            element=data['element'],
            ability=data['ability'],
            id=data['id'],
            card_type=data.get('cardType', ARTEFAKT),
            mechanics=list(data.get('mechanics', [])),
            lifespan=data.get('lifespan'),
            charges=data.get('charges'),
            origin=data.get('origin', 'core'),
        )


def parse_card_label(label: str) -> Tuple[str, str]:
    """'Licht Avatar' -> ('Licht', 'Avatar'); splits on the first space"""
    element, _, ability = label.partition(' ')
    return element, ability


def format_card_label(element: str, ability: str) -> str:
    return f"{element} {ability}"


def ability_index(ability: str) -> int:
    return ABILITY_INDEX.get(ability, -1)


def card_type_for(element_index: int, ability_index_: int) -> str:
    return CARD_TYPES[(element_index + ability_index_) % len(CARD_TYPES)][0]


def card_from_label(label: str, card_id: Optional[str] = None, origin: str = "core") -> Card:
    """Build the catalog card for a label such as 'Wasser Funke'"""
    element, ability = parse_card_label(label)
    if element not in ELEMENTS or ability not in ABILITY_INDEX:
        raise ValueError(f"Unknown card label: {label!r}")
    ei = ELEMENTS.index(element)
    ai = ABILITY_INDEX[ability]
    card_type = card_type_for(ei, ai)
    lifespan, charges = CARD_TYPE_DEFAULTS[card_type]
    return Card(
        element=element,
        ability=ability,
        id=card_id or f"{element}-{ability}-{ei}-{ai}",
        card_type=card_type,
        mechanics=list(ABILITY_MECHANICS.get(ability, [])),
        lifespan=lifespan,
        charges=charges,
        origin=origin,
    )


def build_base_cards() -> List[Card]:
    return [card_from_label(format_card_label(element, ability))
            for element in ELEMENTS for ability in ABILITIES]


def hand_signature(hand: Iterable[Card]) -> str:
    return '|'.join(sorted(f"{c.element}-{c.ability}" for c in hand))


def sanitize_mechanics(mechanics: Iterable[Any]) -> List[str]:
    """Keep known mechanic names, first occurrence wins"""
    unique: List[str] = []
    for entry in mechanics or []:
        if isinstance(entry, str) and entry in MECHANIC_WEIGHTS and entry not in unique:
            unique.append(entry)
    return unique


def normalize_card_type(card_type: Any) -> str:
    if isinstance(card_type, str) and card_type in CARD_TYPE_DEFAULTS:
        return card_type
    return ARTEFAKT


def clamp_count(count: Any) -> int:
    try:
        value = int(count)
    except (TypeError, ValueError, OverflowError):
        return 1
    if value <= 0:
        return 1
    return min(value, MAX_GENERATED_CARDS)


def generate_custom_card_set(count: int, card_type: str, mechanics: Iterable[str]) -> List[Card]:
    """Cards cycling through elements with rising ability rank"""
    safe_count = clamp_count(count)
    type_name = normalize_card_type(card_type)
    lifespan, charges = CARD_TYPE_DEFAULTS[type_name]
    clean = sanitize_mechanics(mechanics)
    stamp = int(time.time() * 1000)

    return [
        Card(
            element=ELEMENTS[index % len(ELEMENTS)],
            ability=ABILITIES[min(index, len(ABILITIES) - 1)],
            id=f"custom-{stamp}-{index}",
            card_type=type_name,
            mechanics=list(clean),
            lifespan=lifespan,
            charges=charges,
            origin="custom",
        )
        for index in range(safe_count)
    ]


def normalize_stored_card(candidate: Any, index: int) -> Card:
    """Repair a stored custom card so it is always playable"""
    data = candidate if isinstance(candidate, dict) else {}
    element = data.get('element')
    if element not in ELEMENTS:
        element = ELEMENTS[index % len(ELEMENTS)]
    ability = data.get('ability')
    if ability not in ABILITY_INDEX:
        ability = ABILITIES[min(index, len(ABILITIES) - 1)]
    type_name = normalize_card_type(data.get('cardType'))
    lifespan, charges = CARD_TYPE_DEFAULTS[type_name]
    mechanics = data.get('mechanics')
    return Card(
        element=element,
        ability=ability,
        id=data['id'] if isinstance(data.get('id'), str) else f"custom-{int(time.time() * 1000)}-{index}",
        card_type=type_name,
        mechanics=sanitize_mechanics(mechanics if isinstance(mechanics, list) else []),
        lifespan=data['lifespan'] if isinstance(data.get('lifespan'), int) else lifespan,
        charges=data['charges'] if isinstance(data.get('charges'), int) else charges,
        origin="custom",
    )


class CardCatalog:
    """
    Base pool plus registered custom cards.

    With a ModelStore the custom cards persist under CUSTOM_CARDS_KEY;
    without one they live in memory only.
    """

    def __init__(self, store=None, rng: random.Random = None):
        self.store = store
        self.rng = rng or random.Random()
        self._base = build_base_cards()
        self._custom: Optional[List[Card]] = None
        self._listeners: List[Callable[[List[Card]], None]] = []

    def base_cards(self) -> List[Card]:
        return [c.copy() for c in self._base]

    def custom_cards(self) -> List[Card]:
        if self._custom is None:
            self._custom = self._read_custom()
        return [c.copy() for c in self._custom]

    def all_cards(self) -> List[Card]:
        return self.base_cards() + self.custom_cards()

    def _read_custom(self) -> List[Card]:
        if self.store is None:
            return []
        stored = self.store.get(CUSTOM_CARDS_KEY)
        if not isinstance(stored, list):
            return []
        return [normalize_stored_card(entry, i) for i, entry in enumerate(stored)]

    def register_custom_cards(self, cards: List[Card]):
        if not cards:
            return
        merged = self.custom_cards() + [c.copy(origin="custom") for c in cards]
        self._custom = merged
        if self.store is not None:
            self.store.set(CUSTOM_CARDS_KEY, [c.to_dict() for c in merged])
        snapshot = self.all_cards()
        for listener in self._listeners:
            listener(snapshot)

    def generate_and_register(self, count: int, card_type: str, mechanics: Iterable[str]) -> List[Card]:
        cards = generate_custom_card_set(count, card_type, mechanics)
        self.register_custom_cards(cards)
        return cards

    def subscribe(self, listener: Callable[[List[Card]], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        listener(self.all_cards())

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def shuffled_deck(self) -> List[Card]:
        deck = self.all_cards()
        self.rng.shuffle(deck)
        return deck

    def random_template(self) -> Card:
        cards = self.all_cards()
        if not cards:
            raise ValueError("Card catalog is empty")
        return self.rng.choice(cards)

    def replacement_card(self) -> Card:
        """Random catalog card with a fresh id and origin 'generated'"""
        template = self.random_template()
        return template.copy(id=f"generated-{next(_replacement_ids)}-{self.rng.randrange(1 << 30):x}",
                             origin="generated")
