"""
AskMe authentication service.

Signed cookie sessions and Microsoft Entra ID sign-in for the AskMe chat
application.
"""

__version__ = "1.0.0"
