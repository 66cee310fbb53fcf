"""WhatsApp session: state, bridge adapter, formatter and controller."""
