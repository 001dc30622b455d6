"""
sms — Clinic SMS dispatch with channel selection and fallback.

Sub-modules:
    channels/       — Per-gateway delivery backends (Twilio, media server, SMSAPI)
    dispatcher      — Core orchestration: gate, channel routing, one-hop fallback
    gate            — Go / no-go check before any channel is touched
    phone_numbers   — Recipient resolution and mobile / foreign classification
    factory         — Builds a dispatcher from settings
    models          — Data structures shared across the system
"""
