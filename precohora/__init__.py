"""Preço da Hora fuel-price acquisition package.

This package contains the components of the acquisition service:
- browser: Playwright session ownership and per-request tab provisioning
- strategies: ordered selector strategies for the portal's controls
- extractor: card parsing and the raw-markup fallback scanner
- scraper: the navigation/extraction engine with its fallback ladder
- cache: TTL result cache keyed by canonical query fingerprints
- geocoding: postal code and city name to coordinate resolution
- service: orchestration of the public lookup flows into response envelopes
- api: FastAPI routes
- models: Pydantic value types and input validation
- logger: Structured JSON logging configuration
- exceptions: Custom exception hierarchy
"""

__version__ = "1.0.0"
