# ABOUTME: Utilities package initialization for the Anypoint Runtime Manager MCP Server
# ABOUTME: Contains the API client, logging, and safety utilities

"""
Anypoint MCP Utilities Package

Shared utilities:
    - client.py: Runtime Manager API client and create-or-update orchestration
    - logging.py: Structured logging with correlation IDs and audit trail
    - safety.py: Read-only mode, undeploy confirmation, rate limiting
"""
