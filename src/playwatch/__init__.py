"""playwatch: Spotify playlist change tracker."""

__version__ = "0.1.0"
