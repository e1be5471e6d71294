"""Role-gated tutorial portal: access policy, session lifecycle and admin services."""

__version__ = "1.0.0"
