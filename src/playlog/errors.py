"""Errors raised across playlog.

Library exceptions (spotipy, requests, SQLAlchemy) are translated into these
at the module that talks to the library, so callers only catch our own types.
"""


class PlaylogError(Exception):
    pass


class TokenError(PlaylogError):
    pass


class NoCredentialError(TokenError):
    """No credential stored yet, someone has to go through the auth redirect."""

    def __init__(self, message="No tokens found, please authenticate first."):
        super().__init__(message)


class AuthExchangeError(TokenError):
    pass


class RefreshError(TokenError):
    pass


class ProviderRequestError(PlaylogError):
    pass


class StoreError(PlaylogError):
    pass


class DuplicatePlayError(StoreError):
    def __init__(self, played_at):
        self.played_at = played_at
        super().__init__(f"Play at {played_at.isoformat()} is already recorded.")


class MissingArtworkVariant(PlaylogError):
    def __init__(self, width: int, available: list):
        self.width = width
        self.available = available
        super().__init__(f"No {width}px artwork among sizes {available}.")
