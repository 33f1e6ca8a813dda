"""
Handlers for the Twilio Media Streams WebSocket protocol.

Key components:
- TwilioMediaStreamAdapter: Parses inbound Twilio frames (connected, start,
  media, mark, dtmf, stop), routes them to a TelephonyEventHandler and sends
  media, mark and clear frames back for the current stream.
"""
