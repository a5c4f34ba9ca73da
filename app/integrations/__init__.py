"""app.integrations — External service gateway modules.

All outbound HTTP calls to third-party APIs go through a gateway in this
package, never via bare `requests` calls in services or blueprints.

This mirrors the `app/ai/gateway.py` pattern: every call is
authenticated by the gateway, bounded by a timeout and logged.

Current gateways:
  kinescope_gateway.KinescopeGateway — Kinescope video hosting REST API
  telegram_gateway.TelegramGateway   — Telegram Bot API (agency chat)
"""
