"""Test suite for the PrecoHora API.

This package contains hermetic tests following the pytest framework.
Test modules mirror the precohora/ package for discoverability.

Testing Philosophy:
    - Playwright is mocked with pytest-mock; ViaCEP with httpx.MockTransport
    - Property-based checks (hypothesis) for parsers fed by untrusted input
    - Focus coverage on the extraction fallback ladder and the cache
"""
