"""
Package entry point for python -m execution.

USAGE:
    python -m search_gateway_mcp           # Run HTTP gateway
    python -m search_gateway_mcp serve     # Run HTTP gateway
    python -m search_gateway_mcp report    # Print analytics summary
"""

from search_gateway_mcp.cli import main

if __name__ == "__main__":
    main()
