"""
Personality vectors, trait classification and compensating-trait lookups.
"""

from __future__ import annotations

import random
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum

TRAIT_MIN = 0.0
TRAIT_MAX = 100.0
TRAIT_DEFAULT = 50.0


class TraitFamily(StrEnum):
    POLITICAL = "political"
    MORAL = "moral"
    BEHAVIORAL = "behavioral"
    STYLE = "style"
    CULTURAL = "cultural"


class Trait(StrEnum):
    """The closed set of personality dimensions every agent carries."""

    PROGRESSIVE = "progressive"
    CONSERVATIVE = "conservative"
    LIBERTARIAN = "libertarian"
    AUTHORITARIAN = "authoritarian"

    RELIGIOSITY = "religiosity"
    MORALITY = "morality"
    PRAGMATISM = "pragmatism"
    IDEALISM = "idealism"

    AGGRESSION = "aggression"
    COOPERATION = "cooperation"
    SELFISHNESS = "selfishness"
    ALTRUISM = "altruism"

    ANALYTICAL = "analytical"
    EMOTIONAL = "emotional"
    HUMOROUS = "humorous"
    CONFRONTATIONAL = "confrontational"

    WOKE = "woke"
    TRADITIONAL = "traditional"
    POPULIST = "populist"
    ELITIST = "elitist"

    @property
    def family(self) -> TraitFamily:
        return TRAIT_FAMILIES[self]


TRAIT_FAMILIES: dict[Trait, TraitFamily] = {
    Trait.PROGRESSIVE: TraitFamily.POLITICAL,
    Trait.CONSERVATIVE: TraitFamily.POLITICAL,
    Trait.LIBERTARIAN: TraitFamily.POLITICAL,
    Trait.AUTHORITARIAN: TraitFamily.POLITICAL,
    Trait.RELIGIOSITY: TraitFamily.MORAL,
    Trait.MORALITY: TraitFamily.MORAL,
    Trait.PRAGMATISM: TraitFamily.MORAL,
    Trait.IDEALISM: TraitFamily.MORAL,
    Trait.AGGRESSION: TraitFamily.BEHAVIORAL,
    Trait.COOPERATION: TraitFamily.BEHAVIORAL,
    Trait.SELFISHNESS: TraitFamily.BEHAVIORAL,
    Trait.ALTRUISM: TraitFamily.BEHAVIORAL,
    Trait.ANALYTICAL: TraitFamily.STYLE,
    Trait.EMOTIONAL: TraitFamily.STYLE,
    Trait.HUMOROUS: TraitFamily.STYLE,
    Trait.CONFRONTATIONAL: TraitFamily.STYLE,
    Trait.WOKE: TraitFamily.CULTURAL,
    Trait.TRADITIONAL: TraitFamily.CULTURAL,
    Trait.POPULIST: TraitFamily.CULTURAL,
    Trait.ELITIST: TraitFamily.CULTURAL,
}

# Trait adapted upward when a downvote pushes an agent away from its dominant trait.
COMPENSATING_TRAITS: dict[Trait, Trait] = {
    Trait.PROGRESSIVE: Trait.PRAGMATISM,
    Trait.CONSERVATIVE: Trait.PRAGMATISM,
    Trait.LIBERTARIAN: Trait.COOPERATION,
    Trait.AUTHORITARIAN: Trait.COOPERATION,
    Trait.RELIGIOSITY: Trait.ANALYTICAL,
    Trait.MORALITY: Trait.PRAGMATISM,
    Trait.PRAGMATISM: Trait.IDEALISM,
    Trait.IDEALISM: Trait.PRAGMATISM,
    Trait.AGGRESSION: Trait.PRAGMATISM,
    Trait.COOPERATION: Trait.AGGRESSION,
    Trait.SELFISHNESS: Trait.ALTRUISM,
    Trait.ALTRUISM: Trait.PRAGMATISM,
    Trait.ANALYTICAL: Trait.EMOTIONAL,
    Trait.EMOTIONAL: Trait.ANALYTICAL,
    Trait.HUMOROUS: Trait.ANALYTICAL,
    Trait.CONFRONTATIONAL: Trait.COOPERATION,
    Trait.WOKE: Trait.PRAGMATISM,
    Trait.TRADITIONAL: Trait.PRAGMATISM,
    Trait.POPULIST: Trait.ANALYTICAL,
    Trait.ELITIST: Trait.POPULIST,
}


@dataclass(frozen=True)
class TraitRule:
    """A notable-trait threshold producing a human-readable label."""

    trait: Trait
    threshold: float
    label: str

    @property
    def family(self) -> TraitFamily:
        return self.trait.family


# Evaluation order matters: the first label produced is the dominant trait.
CLASSIFICATION_RULES: tuple[TraitRule, ...] = (
    TraitRule(Trait.PROGRESSIVE, 70, "strongly progressive"),
    TraitRule(Trait.PROGRESSIVE, 55, "progressive"),
    TraitRule(Trait.CONSERVATIVE, 70, "strongly conservative"),
    TraitRule(Trait.CONSERVATIVE, 55, "conservative"),
    TraitRule(Trait.RELIGIOSITY, 70, "deeply religious"),
    TraitRule(Trait.RELIGIOSITY, 55, "faith-oriented"),
    TraitRule(Trait.PRAGMATISM, 70, "highly pragmatic"),
    TraitRule(Trait.IDEALISM, 70, "strongly idealistic"),
    TraitRule(Trait.AGGRESSION, 70, "aggressive"),
    TraitRule(Trait.COOPERATION, 70, "collaborative"),
    TraitRule(Trait.SELFISHNESS, 70, "self-interested"),
    TraitRule(Trait.ALTRUISM, 70, "altruistic"),
    TraitRule(Trait.WOKE, 70, "socially progressive"),
    TraitRule(Trait.TRADITIONAL, 70, "traditional values"),
    TraitRule(Trait.POPULIST, 70, "populist"),
    TraitRule(Trait.ANALYTICAL, 70, "data-driven"),
    TraitRule(Trait.EMOTIONAL, 70, "emotionally compelling"),
    TraitRule(Trait.HUMOROUS, 70, "witty"),
    TraitRule(Trait.CONFRONTATIONAL, 70, "confrontational"),
)


def clamp(value: float, low: float = TRAIT_MIN, high: float = TRAIT_MAX) -> float:
    return max(low, min(high, value))


@dataclass
class PersonalityVector:
    """Fixed mapping of every `Trait` to a value in [0, 100]."""

    values: dict[Trait, float] = field(
        default_factory=lambda: {trait: TRAIT_DEFAULT for trait in Trait}
    )

    def __post_init__(self) -> None:
        filled = {trait: TRAIT_DEFAULT for trait in Trait}
        for key, value in self.values.items():
            filled[Trait(key)] = clamp(float(value))
        self.values = filled

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, float] | None) -> PersonalityVector:
        """Build a vector from a partial mapping; missing traits default to 50.

        Raises ValueError for keys that are not known traits.
        """
        return cls(values={Trait(key): value for key, value in (mapping or {}).items()})

    def __getitem__(self, trait: Trait | str) -> float:
        return self.values[Trait(trait)]

    def __iter__(self) -> Iterator[Trait]:
        return iter(self.values)

    def adapt(self, trait: Trait | str, delta: float) -> float:
        """Apply a bounded delta to a single trait and return the new value."""
        key = Trait(trait)
        self.values[key] = clamp(self.values[key] + delta)
        return self.values[key]

    def copy(self) -> PersonalityVector:
        return PersonalityVector(values=dict(self.values))

    def as_dict(self) -> dict[str, float]:
        return {trait.value: value for trait, value in self.values.items()}


def classify(personality: PersonalityVector) -> list[TraitRule]:
    """Evaluate the ordered rules; each trait contributes at most one label."""
    matched: list[TraitRule] = []
    seen: set[Trait] = set()
    for rule in CLASSIFICATION_RULES:
        if rule.trait in seen:
            continue
        if personality[rule.trait] > rule.threshold:
            matched.append(rule)
            seen.add(rule.trait)
    return matched


def profile_summary(personality: PersonalityVector) -> str:
    return ", ".join(rule.label for rule in classify(personality))


def dominant_trait(personality: PersonalityVector) -> Trait:
    """Trait behind the first classification label.

    With no notable trait, falls back to the highest-valued trait; ties go
    to the earliest trait in declaration order.
    """
    rules = classify(personality)
    if rules:
        return rules[0].trait
    best = next(iter(Trait))
    for trait in Trait:
        if personality[trait] > personality[best]:
            best = trait
    return best


def compensating_trait(trait: Trait) -> Trait:
    return COMPENSATING_TRAITS[trait]


def random_personality(rng: random.Random | None = None) -> PersonalityVector:
    """Random but coherent personality: political lean drives political and cultural traits."""
    rng = rng or random.Random()
    lean_left = rng.random() < 0.5

    def span(base: float, width: float) -> float:
        return base + rng.random() * width

    return PersonalityVector(
        values={
            Trait.PROGRESSIVE: span(60, 30) if lean_left else span(20, 30),
            Trait.CONSERVATIVE: span(20, 30) if lean_left else span(60, 30),
            Trait.LIBERTARIAN: span(30, 40),
            Trait.AUTHORITARIAN: span(30, 40),
            Trait.RELIGIOSITY: span(20, 60),
            Trait.MORALITY: span(40, 40),
            Trait.PRAGMATISM: span(30, 50),
            Trait.IDEALISM: span(30, 50),
            Trait.AGGRESSION: span(20, 60),
            Trait.COOPERATION: span(30, 50),
            Trait.SELFISHNESS: span(20, 60),
            Trait.ALTRUISM: span(20, 60),
            Trait.ANALYTICAL: span(30, 50),
            Trait.EMOTIONAL: span(30, 50),
            Trait.HUMOROUS: span(10, 40),
            Trait.CONFRONTATIONAL: span(20, 60),
            Trait.WOKE: span(60, 30) if lean_left else span(10, 30),
            Trait.TRADITIONAL: span(10, 30) if lean_left else span(60, 30),
            Trait.POPULIST: span(30, 50),
            Trait.ELITIST: span(30, 50),
        }
    )
