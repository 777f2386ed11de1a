"""
Relay Tests

Unit tests for the agent layer (router, agents, tool bridge, sanitizer,
dispatcher, streaming) and the HTTP routes.

No external services are needed: the Claude client and the data services
are replaced with mocks.

Running Tests:
    # Run all tests
    pytest tests -v

    # Run one module
    pytest tests/unit/test_router.py -v
"""
