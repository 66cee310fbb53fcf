"""warelay - WhatsApp Web session relay for realtime frontends."""

__version__ = "0.1.0"
__logo__ = "📡"
