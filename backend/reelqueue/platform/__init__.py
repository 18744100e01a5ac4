"""Platform concerns: tenant context and authentication."""
