"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for configuration values and making it easier to
maintain consistent naming throughout the codebase.
"""

# Logger name used throughout the application
LOGGER_NAME = "call_bridge"

# OpenAI Realtime API
DEFAULT_REALTIME_MODEL = "gpt-realtime-2025-08-28"
OPENAI_REALTIME_URL = "wss://api.openai.com/v1/realtime"
DEFAULT_VOICE = "echo"
DEFAULT_TRANSCRIPTION_MODEL = "gpt-4o-mini-transcribe"
DEFAULT_SUMMARY_MODEL = "gpt-4o-mini"

# Twilio Media Streams carry 8kHz mu-law; the model is told to speak the same codec
AUDIO_FORMAT_G711_ULAW = "g711_ulaw"

# Server VAD thresholds
VAD_THRESHOLD = 0.6
VAD_PREFIX_PADDING_MS = 200
VAD_SILENCE_DURATION_MS = 300

# Timeouts (seconds)
AI_READY_TIMEOUT = 5.0
RESPONSE_TIMEOUT = 20.0
HANGUP_GRACE_SECONDS = 5.0

# Twilio Media Streams event names
TWILIO_EVENT_CONNECTED = "connected"
TWILIO_EVENT_START = "start"
TWILIO_EVENT_MEDIA = "media"
TWILIO_EVENT_MARK = "mark"
TWILIO_EVENT_STOP = "stop"
TWILIO_EVENT_DTMF = "dtmf"

# OpenAI Realtime client events
MESSAGE_TYPE_AUDIO_APPEND = "input_audio_buffer.append"

# OpenAI Realtime server events
EVENT_SESSION_CREATED = "session.created"
EVENT_SESSION_UPDATED = "session.updated"
EVENT_RESPONSE_CREATED = "response.created"
EVENT_RESPONSE_DONE = "response.done"
EVENT_AUDIO_DELTA = "response.audio.delta"
EVENT_OUTPUT_AUDIO_DELTA = "response.output_audio.delta"
EVENT_TEXT_DELTA = "response.output_text.delta"
EVENT_TEXT_DONE = "response.output_text.done"
EVENT_AUDIO_TRANSCRIPT_DELTA = "response.audio_transcript.delta"
EVENT_AUDIO_TRANSCRIPT_DONE = "response.audio_transcript.done"
EVENT_OUTPUT_AUDIO_TRANSCRIPT_DELTA = "response.output_audio_transcript.delta"
EVENT_OUTPUT_AUDIO_TRANSCRIPT_DONE = "response.output_audio_transcript.done"
EVENT_INPUT_TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
EVENT_SPEECH_STARTED = "input_audio_buffer.speech_started"
EVENT_SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
EVENT_ERROR = "error"

# Prefix for playback acknowledgment marks sent to Twilio
MARK_NAME_PREFIX = "reply"

# Assistant replies that end the call once played
GOODBYE_PATTERN = r"goodbye|\bbye\b"

DEFAULT_INSTRUCTIONS = (
    "You are a friendly, professional customer support agent answering a phone call. "
    "Speak English only. Keep replies short (one or two sentences) and ask one question "
    "at a time. Collect the caller's name, email and phone number, classify the request "
    "as support, sales or billing, propose a next step, and ask whether they are satisfied."
)

DEFAULT_GREETING = (
    "Greet the caller in one short sentence, introduce yourself as the support assistant "
    "and ask how you can help today. Do not ask for their name or email yet."
)
