__version__ = '1.0.0'

SERVER_NAME = 'playwright-mcp-server'
PROTOCOL_VERSION = '2024-11-05'
