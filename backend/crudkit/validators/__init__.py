"""CrudKit — request-independent validators (HTTP method gate)."""
