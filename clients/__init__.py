"""
clients — authenticated read-only wrappers around each platform's API.

A client is always built with ``await <Client>.from_connection_id(...)``,
which loads the stored connection, decrypts its token and refreshes it
when the platform's freshness rule says so, before any data call is made.
"""
