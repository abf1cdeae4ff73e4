"""Session-based OAuth2/OpenID front-end gateway."""

__version__ = "0.1.0"
