"""Carrier audio handling.

Twilio Media Streams deliver 8 kHz G.711 mu-law frames over a WebSocket per call.
``g711`` decodes them to PCM/WAV; ``media_stream`` routes them to the configured
speech provider for the lifetime of the stream.
"""
