"""Message handlers for envelopes and protocols."""
