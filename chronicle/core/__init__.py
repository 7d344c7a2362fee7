"""Application core: database, logging, security and error handling."""
