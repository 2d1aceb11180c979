"""
Authentication Package

This package holds the authentication and session-continuity core of the
AskMe chat application.

Modules:
- codec: base64url helpers for token segments
- signer: HMAC-SHA256 signing and constant-time verification
- tokens: signed session tokens, legacy mock tokens, pseudonymous ids
- session: the session cookie as the only persistence for a session
- oidc: authorization code flow with Microsoft Entra ID
- credentials: local email/password checks
- facade: sign in / sign out / current user
- routes: HTTP endpoints (/auth/*)

The authentication flow:
1. Client signs in locally (/auth/login) or starts SSO (/auth/oidc/login)
2. User authenticates with Microsoft Entra ID
3. The callback exchanges the code and fetches the user's profile
4. A signed session token is issued and stored in the session cookie
5. Every later request re-verifies the cookie (/auth/session)
"""
