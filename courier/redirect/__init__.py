"""Redirect following."""

from courier.redirect.follower import RedirectFollower, is_redirect, keeps_credentials


__all__ = ["RedirectFollower", "is_redirect", "keeps_credentials"]
