"""
Runenkrieg game tables: elements, abilities, mechanics, card types,
element hierarchy, synergies, heroes and weather.

Names stay in German because they are the game's vocabulary and appear
verbatim in card labels, context keys and serialized models.
"""

ELEMENTS = (
    "Feuer",
    "Wasser",
    "Erde",
    "Luft",
    "Blitz",
    "Eis",
    "Magie",
    "Schatten",
    "Licht",
    "Chaos",
)

# Ordered by strength: index = ability rank 0..13
ABILITIES = (
    "Funke",
    "Strahl",
    "Flamme",
    "Glut",
    "Feuerball",
    "Inferno",
    "Nova",
    "Supernova",
    "Apokalypse",
    "Weltenbrand",
    "Akolyth",
    "Priesterin",
    "Elementar",
    "Avatar",
)
ABILITY_INDEX = {name: index for index, name in enumerate(ABILITIES)}
MAX_ABILITY_INDEX = len(ABILITIES) - 1

KETTENEFFEKTE = "Ketteneffekte"
ELEMENTARRESONANZ = "Elementarresonanz"
UEBERLADUNG = "Überladung"
FUSION = "Fusion"
WETTERBINDUNG = "Wetterbindung"
VERBUENDETER = "Verbündeter"
SEGEN_FLUCH = "Segen/Fluch"

MECHANIC_WEIGHTS = {
    KETTENEFFEKTE: 1.5,
    ELEMENTARRESONANZ: 2,
    UEBERLADUNG: 2.5,
    FUSION: 3,
    WETTERBINDUNG: 1.8,
    VERBUENDETER: 1.3,
    SEGEN_FLUCH: 1.1,
}

ABILITY_MECHANICS = {
    "Funke": [KETTENEFFEKTE],
    "Strahl": [WETTERBINDUNG],
    "Flamme": [ELEMENTARRESONANZ],
    "Glut": [KETTENEFFEKTE],
    "Feuerball": [UEBERLADUNG],
    "Inferno": [ELEMENTARRESONANZ, UEBERLADUNG],
    "Nova": [FUSION],
    "Supernova": [FUSION, UEBERLADUNG],
    "Apokalypse": [FUSION, ELEMENTARRESONANZ],
    "Weltenbrand": [FUSION, UEBERLADUNG, KETTENEFFEKTE],
    "Akolyth": [VERBUENDETER],
    "Priesterin": [SEGEN_FLUCH],
    "Elementar": [ELEMENTARRESONANZ, WETTERBINDUNG],
    "Avatar": [FUSION, ELEMENTARRESONANZ, WETTERBINDUNG],
}

ARTEFAKT = "Artefakt"
BESCHWOERUNG = "Beschwörung"
RUNENSTEIN = "Runenstein"
VERBUENDETER_TYPE = "Verbündeter"
SEGEN_FLUCH_TYPE = "Segen/Fluch"

# (name, default lifespan, default charges)
CARD_TYPES = (
    (ARTEFAKT, None, None),
    (BESCHWOERUNG, 3, None),
    (RUNENSTEIN, None, 1),
    (VERBUENDETER_TYPE, None, None),
    (SEGEN_FLUCH_TYPE, 2, None),
)
CARD_TYPE_DEFAULTS = {name: (lifespan, charges) for name, lifespan, charges in CARD_TYPES}

# attacker -> defender -> modifier; missing pairs mean no relationship
ELEMENT_HIERARCHY = {
    "Wasser": {"Feuer": 3, "Erde": 1, "Luft": -3, "Blitz": -3, "Eis": 3, "Chaos": -2},
    "Feuer": {"Erde": 3, "Luft": 1, "Wasser": -3, "Eis": 1, "Blitz": 1, "Schatten": 2},
    "Erde": {"Luft": 3, "Wasser": -1, "Feuer": -3, "Blitz": 3, "Eis": 1, "Chaos": 1},
    "Luft": {"Wasser": 3, "Erde": -1, "Feuer": -3, "Eis": 3, "Blitz": -1, "Schatten": -2},
    "Blitz": {"Wasser": 3, "Erde": 1, "Feuer": 1, "Luft": -3, "Eis": -1, "Schatten": 2, "Chaos": -1},
    "Eis": {"Feuer": 3, "Erde": 1, "Wasser": -3, "Luft": 1, "Blitz": 3, "Chaos": -2},
    "Magie": {"Feuer": 1, "Wasser": 1, "Erde": 1, "Luft": 1, "Blitz": 2, "Eis": 2, "Schatten": 3, "Licht": -2},
    "Schatten": {"Licht": 3, "Magie": -2, "Chaos": 1},
    "Licht": {"Schatten": 3, "Magie": 2, "Chaos": -1},
    "Chaos": {"Magie": 1, "Licht": 2, "Schatten": -2, "Feuer": -1, "Blitz": 2},
}

# (element pair, label, modifier)
ELEMENT_SYNERGIES = (
    (("Wasser", "Blitz"), "Überladung", 2),
    (("Feuer", "Erde"), "Lavafeld", 1.5),
    (("Licht", "Schatten"), "Balancebruch", 2.5),
    (("Eis", "Luft"), "Frostwind", 1.2),
    (("Erde", "Licht"), "Lebendige Bastion", 1.8),
)

HEROES = {
    "Drache": {"element": "Feuer", "bonus": 2},
    "Zauberer": {"element": "Magie", "bonus": 3},
}
HERO_NAMES = tuple(HEROES)

WEATHER_EFFECTS = {
    "Regen": {"Wasser": 1, "Feuer": -1},
    "Windsturm": {"Luft": 2, "Erde": -1},
    "Erdbeben": {},
}
WEATHER_TYPES = tuple(WEATHER_EFFECTS)

START_TOKENS = 5
HAND_SIZE = 4
MAX_ROUNDS = 200

# Round winners as recorded in history and training data
PLAYER_WINS = "spieler"
AI_WINS = "gegner"
ROUND_DRAW = "unentschieden"


def element_advantage(attacker: str, defender: str) -> float:
    return ELEMENT_HIERARCHY.get(attacker, {}).get(defender, 0)


def weather_modifier(weather: str, element: str) -> float:
    return WEATHER_EFFECTS.get(weather, {}).get(element, 0)


def hero_bonus(hero: str, element: str) -> float:
    info = HEROES.get(hero)
    if info and info["element"] == element:
        return info["bonus"]
    return 0
