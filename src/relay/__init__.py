"""Twilio ConversationRelay session handling.

One WebSocket connection carries one call. `RelaySessionHandler` owns the
`CallSession` for that connection and turns relay events into speak directives.
"""
