"""MCP server for the iLovePDF / iLoveIMG document-processing API."""

__version__ = "2.0.0"
