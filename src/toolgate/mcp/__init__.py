"""Model Context Protocol binding for the gateway."""
