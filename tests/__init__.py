"""
Test Suite for e2e-testing

Test Structure:
- unit/: poller, configuration, HTTP and Fleet clients, services, installers
  and step handlers, with Docker and Kibana mocked
- e2e/: pytest-bdd feature files and step bindings run against real containers

Running Tests:
    pytest tests/unit                    # Unit tests only
    E2E_ENABLED=true pytest tests/e2e    # Scenarios, requires Docker
    pytest -m "not e2e"                  # Everything but the scenarios
"""
