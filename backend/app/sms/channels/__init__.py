"""
channels — Per-gateway SMS delivery backends.

Each channel class exposes:
    send(request) → DeliveryAttempt

plus a gateway-flavoured convenience method returning bool
(send_twilio_sms, send_sms, send_sms_api_sms).

Channels never raise for recipient or transport problems; they log and
report a failed attempt.  Retry logic lives inside the media-server
channel, fallback logic in the dispatcher.
"""
