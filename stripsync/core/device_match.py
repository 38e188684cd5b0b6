"""Advertisement-to-strip matching logic.

Advertisements are classified by an ordered rule table evaluated
first-match-wins. A definite match ends discovery immediately; otherwise the
retained candidates are ranked by signal strength once the observation window
elapses.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from stripsync.core.config import Settings
from stripsync.core.model import Advertisement, CandidateDevice, MatchReport, MatchVerdict
from stripsync.transports.base import AdvertisementSource

LOGGER = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown"
_BASE_UUID_RE = re.compile(r"^0000([0-9a-f]{4})-0000-1000-8000-00805f9b34fb$")


def short_service_id(uuid: str) -> str:
    """Reduce a Bluetooth base UUID to its 16-bit form; other ids pass through."""
    normalized = uuid.strip().lower()
    match = _BASE_UUID_RE.match(normalized)
    return match.group(1) if match else normalized


@dataclass(frozen=True)
class MatchRule:
    name: str
    verdict: MatchVerdict
    applies: Callable[[Advertisement], bool]


def build_rules(settings: Settings) -> tuple[MatchRule, ...]:
    service_id = short_service_id(settings.service_id)
    exclude_names = settings.exclude_names
    vendor_keywords = settings.vendor_keywords

    def _excluded_name(adv: Advertisement) -> bool:
        return adv.name is not None and any(token in adv.name for token in exclude_names)

    def _advertises_service(adv: Advertisement) -> bool:
        return service_id in {short_service_id(s) for s in adv.service_ids}

    def _vendor_name(adv: Advertisement) -> bool:
        return adv.name is not None and any(token in adv.name for token in vendor_keywords)

    return (
        MatchRule("host-device-name", MatchVerdict.EXCLUDE, _excluded_name),
        MatchRule("not-connectable", MatchVerdict.EXCLUDE, lambda adv: not adv.connectable),
        MatchRule("target-service", MatchVerdict.DEFINITE, _advertises_service),
        MatchRule("unnamed", MatchVerdict.CANDIDATE, lambda adv: not adv.name),
        MatchRule("vendor-keyword", MatchVerdict.CANDIDATE, _vendor_name),
    )


def classify(adv: Advertisement, rules: tuple[MatchRule, ...]) -> MatchVerdict:
    for rule in rules:
        if rule.applies(adv):
            return rule.verdict
    return MatchVerdict.IGNORE


class AdvertisementMatcher:
    """Accumulates candidates from advertisements, one entry per identifier.

    The first sighting of an identifier fixes its name and position in the
    ranking; later sightings only refresh the signal strength.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.rules = build_rules(settings or Settings())
        self._candidates: dict[str, CandidateDevice] = {}
        self.definite: CandidateDevice | None = None

    @property
    def done(self) -> bool:
        return self.definite is not None

    def observe(self, adv: Advertisement) -> MatchVerdict:
        if self.done:
            return MatchVerdict.IGNORE

        verdict = classify(adv, self.rules)
        name = adv.name or UNKNOWN_NAME
        if verdict is MatchVerdict.DEFINITE:
            LOGGER.info("Found strip advertising target service: %s (%s)", adv.identifier, name)
            self.definite = CandidateDevice(
                identifier=adv.identifier,
                name=name,
                rssi=adv.rssi,
                connectable=adv.connectable,
            )
        elif verdict is MatchVerdict.CANDIDATE:
            existing = self._candidates.get(adv.identifier)
            if existing is None:
                LOGGER.debug("Checking candidate: [%s] Name: %s", adv.identifier, name)
                self._candidates[adv.identifier] = CandidateDevice(
                    identifier=adv.identifier,
                    name=name,
                    rssi=adv.rssi,
                    connectable=adv.connectable,
                )
            elif existing.rssi != adv.rssi:
                self._candidates[adv.identifier] = CandidateDevice(
                    identifier=existing.identifier,
                    name=existing.name,
                    rssi=adv.rssi,
                    connectable=existing.connectable,
                )
        return verdict

    def finalize(self) -> tuple[CandidateDevice, ...]:
        # sorted() is stable, so equal signal strengths keep first-seen order.
        return tuple(sorted(self._candidates.values(), key=lambda c: c.rssi, reverse=True))

    def report(self) -> MatchReport:
        if self.definite is not None:
            return MatchReport(definite=self.definite, candidates=())
        return MatchReport(definite=None, candidates=self.finalize())


async def discover(
    source: AdvertisementSource,
    settings: Settings | None = None,
    *,
    window_s: float | None = None,
) -> MatchReport:
    """Observe ``source`` until a definite match or until the window elapses."""
    settings = settings or Settings()
    window = settings.scan_window_s if window_s is None else window_s
    matcher = AdvertisementMatcher(settings)

    async def _consume() -> None:
        async for adv in source.advertisements():
            matcher.observe(adv)
            if matcher.done:
                return

    async with source:
        try:
            await asyncio.wait_for(_consume(), timeout=window)
        except asyncio.TimeoutError:
            LOGGER.debug("Observation window of %.1fs elapsed without a definite match", window)

    return matcher.report()
