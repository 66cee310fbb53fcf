"""Realtime relay between the WhatsApp session and Socket.IO frontends."""
