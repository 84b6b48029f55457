"""Identity resolution and session bridging.

Learn: Two credential paths resolve a principal:
1. Email/password → Administrator store first, then Profile store
2. Google OAuth → Profile store, provisioning a Profile on first login

Both produce one `Identity`, which is frozen into a signed session token.
Every time the session is read, a second short-lived token is minted for
the row-level-secured data store (never for administrators).
"""
