"""
connectors: session-bound channels to the upstream automation service.

Provides:
  • BaseConnector, the interface every channel implements
  • McpConnector, the streamable-HTTP MCP client channel
  • ConnectorRegistry, one connector per browser session
  • LocationService, IP geolocation used to enrich new channels
"""
