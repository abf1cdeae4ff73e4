"""Core building blocks: settings, security, encryption, OAuth registry, sessions."""
