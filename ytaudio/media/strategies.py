"""
The extraction strategy ladder, expressed as data.
"""

from dataclasses import dataclass

from ytaudio.models.config import ServiceConfig

BEST_AUDIO_SELECTOR = "bestaudio/best"
# Prefer modest bitrates first: the best stream is often the one being blocked.
RELAXED_AUDIO_SELECTOR = "bestaudio[abr<=128]/worstaudio/bestaudio/best"


@dataclass(frozen=True)
class ExtractionStrategy:
    """One parameter set for a single invocation of the extraction tool."""

    name: str
    selector: str
    credential_source: str | None
    socket_timeout: int
    retries: int
    fragment_retries: int = 3

    @property
    def is_anonymous(self) -> bool:
        return self.credential_source is None


def build_strategy_ladder(config: ServiceConfig) -> list[ExtractionStrategy]:
    """
    Builds the ordered ladder: the primary attempt, one relaxed attempt per
    fallback credential source, then a relaxed anonymous attempt.
    """
    ladder = [
        ExtractionStrategy(
            name="primary",
            selector=BEST_AUDIO_SELECTOR,
            credential_source=config.default_browser or None,
            socket_timeout=30,
            retries=3,
        )
    ]
    for browser in config.fallback_browsers:
        if browser == config.default_browser:
            continue
        ladder.append(
            ExtractionStrategy(
                name=f"fallback:{browser}",
                selector=RELAXED_AUDIO_SELECTOR,
                credential_source=browser,
                socket_timeout=60,
                retries=10,
                fragment_retries=10,
            )
        )
    ladder.append(
        ExtractionStrategy(
            name="anonymous",
            selector=RELAXED_AUDIO_SELECTOR,
            credential_source=None,
            socket_timeout=60,
            retries=10,
            fragment_retries=10,
        )
    )
    return ladder
