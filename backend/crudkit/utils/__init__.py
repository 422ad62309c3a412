"""CrudKit — query building and response serialization helpers."""
