"""
codeintel-mcp

Multi-language code intelligence served to AI agents over MCP (JSON-RPC 2.0 on HTTP).
"""

SERVER_NAME = "codeintel-mcp"
__version__ = "1.0.0"
