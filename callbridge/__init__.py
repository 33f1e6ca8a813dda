"""
Call Bridge - Twilio Media Streams to OpenAI Realtime API

This application answers phone calls through Twilio and lets an OpenAI Realtime
model talk to the caller. Twilio streams the call audio (8 kHz G.711 mu-law,
base64 in JSON frames) over a WebSocket; the bridge forwards it unchanged to an
OpenAI Realtime session and plays the model's audio back to the caller.

Architecture Overview:
- FastAPI server exposing the Twilio voice webhook and media-stream WebSocket
- One CallBridge per call, joining a telephony adapter and an AI adapter
- Server-side VAD with explicit response requests and barge-in handling
- A process-wide CallRegistry of active calls
- Post-call summarization of the question/answer log

Key Components:
- bot: The OpenAI Realtime adapter and the CallBridge state machine
- config: Constants, logging setup and environment-driven settings
- handlers: The Twilio Media Streams adapter
- models: Wire schemas, per-call session state and the call registry
- services: Post-call summarization
- websocket_manager: Serves each /media-stream connection with a CallBridge

Getting Started:
1. Set up environment variables:
   - OPENAI_API_KEY: Your OpenAI API key
   - WS_HOST: Public host name Twilio should stream to (optional)
   - PORT / HOST: Where to bind the server (default 0.0.0.0:8000)
   - LOG_LEVEL: Logging level (default INFO)
   - LOG_FILE: Rotated log file path, empty to log to stdout only

2. Start the server:
   ```bash
   python -m callbridge.main
   ```

3. Point the Twilio phone number's voice webhook at
   http://your-server:8000/incoming-call
"""
