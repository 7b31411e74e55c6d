"""
Provides checks for the integrity of extracted audio artifacts.
"""

import logging

import mutagen
from mutagen import MutagenError

log = logging.getLogger(__name__)


class FileIntegrityChecker:
    """A collection of static methods for validating artifact integrity."""

    @staticmethod
    def check_audio(filepath: str) -> bool:
        """
        Performs a basic integrity check on an audio file of any supported type.

        Checks that mutagen recognises the container and reports a positive
        duration.

        Args:
            filepath: Path to the audio file.

        Returns:
            True if the file appears to be valid audio, False otherwise.
        """
        try:
            audio = mutagen.File(filepath)
        except MutagenError as e:
            log.warning(f"Integrity check failed for '{filepath}': {e}")
            return False
        except OSError as e:
            log.warning(f"Integrity check could not read '{filepath}': {e}")
            return False

        if audio is None:
            log.warning(f"Integrity check failed for '{filepath}': Unknown format.")
            return False
        if audio.info and getattr(audio.info, "length", 0) > 0:
            return True
        log.warning(
            f"Integrity check failed for '{filepath}': No valid stream info."
        )
        return False
