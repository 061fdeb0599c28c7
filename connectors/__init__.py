"""
connectors — OAuth account linking for creator platforms.

Provides a per-platform connector framework that handles:
  • authorization-URL generation (with PKCE where required)
  • callback handling (state / CSRF validation, code → token exchange)
  • platform account discovery
  • AES-256-GCM encryption of tokens at rest
  • connection storage, refresh write-back and deactivation

Each platform (YouTube, Instagram, TikTok) is a subclass of BaseConnector.
"""
