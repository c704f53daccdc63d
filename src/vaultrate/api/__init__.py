"""HTTP and server-sent-event API over the rate cache."""

from vaultrate.api.app import create_app

__all__ = ["create_app"]
