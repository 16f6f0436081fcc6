"""
connectors — universal outbound API connector layer.

Provides a registry-driven dispatch pipeline that handles:
  • Connector configs for Slack, Jira, GitHub, Google, Stripe, Twilio, SendGrid, …
  • Per-connector auth (API key, Basic, Bearer, OAuth2)
  • OAuth2 authorize URL / code exchange / refresh with a shared token cache
  • Fixed-window rate limiting in a shared store
  • Retry with linear or exponential backoff
  • One normalized ConnectorResponse per logical call

Entry point: connectors.service.ApiConnectorService
"""
