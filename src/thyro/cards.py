"""Dashboard cards: pure derivation from profile, config and today's activity.

Rule matrix:
    symptomLog          config.log_symptoms
    medicationReminder  profile.on_medication
    lidCountdown        profile.stage == raiPrep
    raiPrecautions      profile.stage in {raiPrep, raiIsolation}
    tgTrend             profile.condition == cancer and profile.stage == surveillance
    heartRateLog        profile.condition == hyper
    appointments        config.track_appointments

Nothing here is stored: the card list is rebuilt from scratch on every change.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from thyro.models import Condition, Profile, Stage, UserConfig

if TYPE_CHECKING:
    from thyro.activity import SymptomLog
    from thyro.stores.entity_store import EntityStore

logger = logging.getLogger(__name__)


class CardType(str, Enum):
    SYMPTOM_LOG = "symptomLog"
    MEDICATION_REMINDER = "medicationReminder"
    LID_COUNTDOWN = "lidCountdown"
    RAI_PRECAUTIONS = "raiPrecautions"
    TG_TREND = "tgTrend"
    HEART_RATE_LOG = "heartRateLog"
    APPOINTMENTS = "appointments"

    @property
    def tag(self) -> str:
        return self.value


@dataclass(frozen=True)
class CardDescriptor:
    type: CardType
    enabled: bool
    position: int


_RAI_STAGES = frozenset({Stage.RAI_PREP, Stage.RAI_ISOLATION})


def enabled_cards(profile: Profile | None, config: UserConfig | None) -> frozenset[CardType]:
    """Cards switched on by the rule matrix. Missing records enable nothing."""
    enabled: set[CardType] = set()
    if config is not None:
        if config.log_symptoms:
            enabled.add(CardType.SYMPTOM_LOG)
        if config.track_appointments:
            enabled.add(CardType.APPOINTMENTS)
    if profile is not None:
        if profile.on_medication:
            enabled.add(CardType.MEDICATION_REMINDER)
        if profile.stage == Stage.RAI_PREP:
            enabled.add(CardType.LID_COUNTDOWN)
        if profile.stage in _RAI_STAGES:
            enabled.add(CardType.RAI_PRECAUTIONS)
        if profile.condition == Condition.CANCER and profile.stage == Stage.SURVEILLANCE:
            enabled.add(CardType.TG_TREND)
        if profile.condition == Condition.HYPER:
            enabled.add(CardType.HEART_RATE_LOG)
    return frozenset(enabled)


def order_cards(enabled: Iterable[CardType], logged_today: bool) -> list[CardType]:
    """Display order.

    An unlogged symptom card leads, then the RAI cards (countdown before
    precautions), then everything else by tag. A symptom card already logged
    today drops to the end.
    """
    remaining = set(enabled)
    ordered: list[CardType] = []

    symptom = CardType.SYMPTOM_LOG in remaining
    remaining.discard(CardType.SYMPTOM_LOG)
    if symptom and not logged_today:
        ordered.append(CardType.SYMPTOM_LOG)

    # lidCountdown is only ever enabled at stage raiPrep.
    for card in (CardType.LID_COUNTDOWN, CardType.RAI_PRECAUTIONS):
        if card in remaining:
            ordered.append(card)
            remaining.discard(card)

    ordered.extend(sorted(remaining, key=lambda c: c.tag))

    if symptom and logged_today:
        ordered.append(CardType.SYMPTOM_LOG)
    return ordered


def build_cards(
    profile: Profile | None, config: UserConfig | None, logged_today: bool
) -> list[CardDescriptor]:
    ordered = order_cards(enabled_cards(profile, config), logged_today)
    return [CardDescriptor(type=card, enabled=True, position=i) for i, card in enumerate(ordered)]


CardsListener = Callable[[list[CardDescriptor]], None]


class CardBoard:
    """Keeps the current card list in step with the stores and the symptom log."""

    def __init__(
        self,
        profiles: EntityStore[Profile],
        configs: EntityStore[UserConfig],
        symptoms: SymptomLog,
    ) -> None:
        self._profiles = profiles
        self._configs = configs
        self._symptoms = symptoms
        self._listeners: list[CardsListener] = []
        self.cards: list[CardDescriptor] = []
        self._unsubscribers = [
            profiles.subscribe(lambda _change: self.recompute()),
            configs.subscribe(lambda _change: self.recompute()),
            symptoms.subscribe(self.recompute),
        ]
        self.recompute()

    def subscribe(self, listener: CardsListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def recompute(self) -> list[CardDescriptor]:
        cards = build_cards(
            self._profiles.value, self._configs.value, self._symptoms.logged_today()
        )
        changed = cards != self.cards
        self.cards = cards
        if changed:
            logger.debug("Cards regenerated: %s", [c.type.tag for c in cards])
            for listener in list(self._listeners):
                try:
                    listener(cards)
                except Exception as e:
                    logger.error("Card listener failed: %s", e)
        return cards

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
