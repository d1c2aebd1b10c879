"""
External collaborators consumed through narrow interfaces.
"""

from expense_capture.integrations.identity import IdentityProvider, StaticIdentityProvider

__all__ = ["IdentityProvider", "StaticIdentityProvider"]
