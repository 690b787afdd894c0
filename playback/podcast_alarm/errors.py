"""
Exception types raised by the alarm pipeline
"""


class AlarmError(Exception):
    """Base class for every failure the alarm pipeline reports"""


class NoContentError(AlarmError):
    """No feed yielded a playable, unplayed episode"""


class FeedFetchError(AlarmError):
    """A feed could not be downloaded or parsed"""

    def __init__(self, feed_url: str, reason: str):
        self.feed_url = feed_url
        self.reason = reason
        super().__init__(f"Failed to parse feed {feed_url}: {reason}")


class FeedValidationError(AlarmError):
    """A feed parsed but contains nothing the alarm could play"""


class DuplicateFeedError(AlarmError):
    """A feed with the same URL is already subscribed"""


class NoSpeakersConfiguredError(AlarmError):
    """The alarm has no selected speakers"""


class NoSpeakersAvailableError(AlarmError):
    """None of the selected speakers answered discovery"""


class PlaybackStartError(AlarmError):
    """The coordinator refused the final play command"""
