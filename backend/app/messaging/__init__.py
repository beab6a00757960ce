"""
messaging — Multi-channel message dispatch.

Sub-modules:
    channels/          — Per-channel transports (Brevo email, WhatsApp)
    dispatcher         — Concurrent fan-out and outcome aggregation
    recipient_filter   — Per-channel recipient eligibility
    models             — Value objects shared across the system
"""
