# manual.py
from .controller import Controller, PlaybackOutcome
from .library import Library


def trigger(library: Library, card_id: str, audio_player) -> PlaybackOutcome:
    """
    Plays the track for `card_id` as if the card had just been presented to
    an idle reader. Uses a throwaway controller, so no loop state is touched.
    Raises the resolution or audio error instead of reporting it.
    """
    outcome = Controller(library, audio_player).present(card_id)
    if outcome.error is not None:
        raise outcome.error
    return outcome
